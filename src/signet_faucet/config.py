"""
Configuration management using pydantic-settings.

Every field can be set from the environment with the ``FAUCET_`` prefix,
e.g. ``FAUCET_RPC_PASSWORD`` or ``FAUCET_BATCH_INTERVAL=30``.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from signet_faucet.amounts import AMOUNT_TIERS
from signet_faucet.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONSOLIDATION_FEE_RATE,
    DEFAULT_MEMO,
)
from signet_faucet.errors import ConfigurationError


def _parse_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FAUCET_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    # Bitcoin Core RPC
    rpc_url: str = "http://127.0.0.1:38332"
    rpc_user: str = ""
    rpc_password: str = ""
    rpc_timeout: float = Field(default=5.0, gt=0)
    wallet_name: str = "faucet"

    # Storage
    data_dir: Path = Path("./data")
    database_url: str | None = None

    # Background jobs (seconds)
    batch_interval: float = Field(default=60.0, gt=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    balance_refresh_interval: float = Field(default=300.0, gt=0)
    auto_consolidation_interval: float = Field(
        default=0.0, ge=0, description="0 disables auto-consolidation"
    )
    shutdown_timeout: float = Field(default=30.0, gt=0)
    stale_processing_grace: float = Field(
        default=600.0,
        ge=0,
        description="Records in processing longer than this at startup are marked failed",
    )

    # Payout amounts
    enabled_amount_tiers: str = "1,2,3"
    default_amount_tier: int = 2
    payout_memo: str = DEFAULT_MEMO

    # Admission
    max_withdrawals_per_source_24h: int = Field(default=2, ge=0)
    source_allowlist: str = "127.0.0.1"

    # UTXO consolidation
    consolidation_amount_threshold: Decimal = Field(default=Decimal("0.001"), gt=0)
    consolidation_max_utxos: int = Field(default=5, ge=1)
    consolidation_min_utxos: int = Field(default=2, ge=1)
    consolidation_fee_rate: Decimal = Field(default=DEFAULT_CONSOLIDATION_FEE_RATE, gt=0)
    consolidation_memo: str = DEFAULT_MEMO

    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_config(self) -> Settings:
        if self.consolidation_min_utxos > self.consolidation_max_utxos:
            raise ValueError(
                f"invalid consolidation config, min: {self.consolidation_min_utxos} "
                f"> max: {self.consolidation_max_utxos}"
            )

        tiers = self.get_enabled_amount_tiers()
        if not tiers:
            raise ValueError("at least one amount tier must be enabled")
        if self.default_amount_tier not in tiers:
            raise ValueError(
                f"default_amount_tier {self.default_amount_tier} is not in enabled amount tiers"
            )
        return self

    def get_enabled_amount_tiers(self) -> list[int]:
        tiers = []
        for item in _parse_csv(self.enabled_amount_tiers):
            try:
                tier = int(item)
            except ValueError:
                raise ValueError(f"invalid amount tier: {item} (must be 1-4)") from None
            if tier not in AMOUNT_TIERS:
                raise ValueError(f"invalid amount tier: {item} (must be 1-4)")
            tiers.append(tier)
        return tiers

    def get_source_allowlist(self) -> set[str]:
        return set(_parse_csv(self.source_allowlist))

    def get_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'faucet.db'}"

    def require_rpc_credentials(self) -> None:
        if not self.rpc_user:
            raise ConfigurationError("bitcoin RPC user required (set FAUCET_RPC_USER)")
        if not self.rpc_password:
            raise ConfigurationError("bitcoin RPC password required (set FAUCET_RPC_PASSWORD)")


def get_settings() -> Settings:
    return Settings()
