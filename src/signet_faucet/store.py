"""
Durable store of payout requests.

Each request row doubles as the audit log: rows are never deleted and only
the batch processor moves them through the lifecycle
pending -> processing -> broadcast | failed.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy import (
    BigInteger,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
    text,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from signet_faucet.constants import SATS_PER_BTC
from signet_faucet.errors import DuplicateAddressError, InvalidTransitionError, StoreError
from signet_faucet.models import ALLOWED_TRANSITIONS, PayoutStatus

STALE_PROCESSING_ERROR = (
    "interrupted while processing; check the wallet for a broadcast to this "
    "address before resubmitting"
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(UTC).replace(tzinfo=None)


def btc_to_sats(amount: Decimal) -> int:
    return int((amount * SATS_PER_BTC).to_integral_exact())


class Base(DeclarativeBase):
    pass


class PayoutRequest(Base):
    __tablename__ = "payout_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    address: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    source: Mapped[str] = mapped_column(String(64), index=True, default="")
    txid: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    # Satoshis, so the stored amount is exact
    amount_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), index=True, nullable=False, default=PayoutStatus.PENDING.value
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def amount(self) -> Decimal:
        return Decimal(self.amount_sats) / SATS_PER_BTC

    @property
    def payout_status(self) -> PayoutStatus:
        return PayoutStatus(self.status)

    def __repr__(self) -> str:
        return f"PayoutRequest#{self.id} <{self.address} {self.amount:.8f} {self.status}>"


# Columns list_by_status may order on; a leading "-" sorts descending
_ORDERABLE = {
    "id": PayoutRequest.id,
    "created_at": PayoutRequest.created_at,
    "amount": PayoutRequest.amount_sats,
}


class PayoutStore:
    """SQLAlchemy-backed payout request table."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        engine_kwargs: dict = {"echo": echo, "future": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False, future=True
        )

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"store operation failed: {e}") from e
        finally:
            session.close()

    def create_tables(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"failed to initialize database: {e}") from e

    def ping(self) -> bool:
        try:
            with self._session() as session:
                session.execute(text("SELECT 1"))
            return True
        except StoreError as e:
            logger.warning(f"Store health check failed: {e}")
            return False

    def create(self, address: str, amount: Decimal, source: str = "") -> PayoutRequest:
        """
        Queue a new pending payout.

        Raises:
            DuplicateAddressError: A request for ``address`` already exists
            StoreError: Any other database failure
        """
        if amount <= 0:
            raise StoreError(f"amount must be positive, got {amount}")

        now = utcnow()
        record = PayoutRequest(
            address=address,
            source=source,
            amount_sats=btc_to_sats(amount),
            status=PayoutStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session() as session:
                session.add(record)
        except IntegrityError as e:
            if self.get_by_address(address) is not None:
                raise DuplicateAddressError(address) from e
            raise StoreError(f"failed to insert payout request for {address}: {e}") from e
        return record

    def get_by_address(self, address: str) -> PayoutRequest | None:
        query = select(PayoutRequest).where(PayoutRequest.address == address)
        with self._session() as session:
            return session.scalars(query).first()

    def get(self, record_id: int) -> PayoutRequest | None:
        with self._session() as session:
            return session.get(PayoutRequest, record_id)

    def list_by_status(
        self,
        status: PayoutStatus | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[PayoutRequest]:
        query = select(PayoutRequest)
        if status is not None:
            query = query.where(PayoutRequest.status == status.value)
        if order_by:
            column = _ORDERABLE.get(order_by.lstrip("-"))
            if column is None:
                raise ValueError(f"Cannot order payout requests by {order_by!r}")
            query = query.order_by(column.desc() if order_by.startswith("-") else column)
        if limit is not None and limit > 0:
            query = query.limit(limit)

        with self._session() as session:
            return list(session.scalars(query).all())

    def count_by_status(self, status: PayoutStatus) -> int:
        query = select(func.count(PayoutRequest.id)).where(PayoutRequest.status == status.value)
        with self._session() as session:
            return session.scalar(query) or 0

    def count_from_source_since(self, source: str, since: datetime) -> int:
        query = select(func.count(PayoutRequest.id)).where(
            PayoutRequest.source == source, PayoutRequest.created_at > since
        )
        with self._session() as session:
            return session.scalar(query) or 0

    def total_amount_broadcast(self) -> Decimal:
        query = select(func.coalesce(func.sum(PayoutRequest.amount_sats), 0)).where(
            PayoutRequest.status == PayoutStatus.BROADCAST.value
        )
        with self._session() as session:
            total_sats = session.scalar(query) or 0
        return Decimal(total_sats) / SATS_PER_BTC

    def transition(
        self,
        record_id: int,
        from_status: PayoutStatus,
        to_status: PayoutStatus,
        txid: str | None = None,
        error: str | None = None,
    ) -> bool:
        """
        Move a record from ``from_status`` to ``to_status`` atomically.

        Returns:
            False when the record was no longer in ``from_status``

        Raises:
            InvalidTransitionError: The lifecycle has no such edge, or the
                terminal state is missing its txid/error text
        """
        if from_status.is_terminal:
            raise InvalidTransitionError(f"{from_status.value} is a terminal status")
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidTransitionError(
                f"{from_status.value} -> {to_status.value} is not a valid transition"
            )
        if to_status == PayoutStatus.BROADCAST and not txid:
            raise InvalidTransitionError("broadcast requires a txid")
        if to_status == PayoutStatus.FAILED and not error:
            raise InvalidTransitionError("failed requires error text")

        values: dict = {"status": to_status.value, "updated_at": utcnow()}
        if txid is not None:
            values["txid"] = txid
        if error is not None:
            values["error"] = error

        query = (
            update(PayoutRequest)
            .where(PayoutRequest.id == record_id, PayoutRequest.status == from_status.value)
            .values(**values)
        )
        with self._session() as session:
            result = session.execute(query)
            return result.rowcount == 1

    def fail_stale_processing(self, older_than: timedelta, now: datetime | None = None) -> int:
        """
        Mark records stuck in ``processing`` for longer than ``older_than`` as failed.

        A record is only left in processing when the process died between
        claiming it and recording the node's answer, so the payout may or may
        not be on chain. Failing it (never requeueing) rules out a double pay.
        """
        cutoff = (now or utcnow()) - older_than
        query = select(PayoutRequest).where(
            PayoutRequest.status == PayoutStatus.PROCESSING.value,
            PayoutRequest.updated_at < cutoff,
        )
        with self._session() as session:
            stale = list(session.scalars(query).all())

        failed = 0
        for record in stale:
            if self.transition(
                record.id,
                PayoutStatus.PROCESSING,
                PayoutStatus.FAILED,
                error=STALE_PROCESSING_ERROR,
            ):
                logger.warning(
                    f"Marked stuck payout #{record.id} to {record.address} as failed "
                    f"(processing since {record.updated_at:%Y-%m-%d %H:%M:%S})"
                )
                failed += 1
        return failed

    def close(self) -> None:
        self.engine.dispose()
