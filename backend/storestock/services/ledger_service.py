"""storestock — LedgerService: append-only movement ledger with materialized balances.

Every appended MovementRecord moves its balance rows in the same transaction:
the ``from`` balance is decremented by a compare-and-swap UPDATE guarded on
available quantity, the ``to`` balance is incremented (or created). A guard that
matches no row means a concurrent writer got there first.
"""
import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, and_, case, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storestock.core.errors import (
    ConcurrencyConflict,
    InvalidRequest,
    InventoryError,
    MovementNotFound,
    PersistenceFailure,
)
from storestock.models.inventory import AdjustmentCategory, MovementKind, MovementRecord, StockBalance

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}


def classify_db_error(exc: SQLAlchemyError) -> InventoryError:
    """Map a driver error to ConcurrencyConflict (retryable) or PersistenceFailure."""
    if isinstance(exc, IntegrityError):
        return ConcurrencyConflict("Stock balance changed concurrently")
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _CONFLICT_SQLSTATES or "database is locked" in str(orig):
            return ConcurrencyConflict("Conflicting concurrent write detected at commit")
    return PersistenceFailure("Inventory ledger could not commit")


def _balance_key(business_id: UUID, product_id: UUID, location_id: UUID):
    return and_(
        StockBalance.business_id == business_id,
        StockBalance.product_id == product_id,
        StockBalance.location_id == location_id,
    )


class LedgerService:
    """Immutable stock ledger. Corrections are compensating entries, never updates."""

    @staticmethod
    async def append(db: AsyncSession, records: list[MovementRecord]) -> list[MovementRecord]:
        """Write a batch of movements and their balance changes. All or nothing.

        The caller owns the transaction; on any error it must roll back.
        """
        for record in records:
            LedgerService._check_shape(record)
        try:
            for record in records:
                if record.from_location_id is not None:
                    await LedgerService._decrement(db, record)
                if record.to_location_id is not None:
                    await LedgerService._increment(db, record)
            db.add_all(records)
            await db.flush()
        except InventoryError:
            raise
        except SQLAlchemyError as exc:
            error = classify_db_error(exc)
            if isinstance(error, PersistenceFailure):
                logger.exception("Ledger append failed for %d movement(s)", len(records))
            raise error from exc
        return records

    @staticmethod
    async def commit(db: AsyncSession) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            error = classify_db_error(exc)
            if isinstance(error, PersistenceFailure):
                logger.exception("Ledger commit failed")
            raise error from exc

    @staticmethod
    def _check_shape(record: MovementRecord) -> None:
        if record.from_location_id is None and record.to_location_id is None:
            raise InvalidRequest("A movement needs at least one tracked location")
        if record.from_location_id is not None and record.from_location_id == record.to_location_id:
            raise InvalidRequest("Source and destination cannot be the same")
        if record.quantity is None or record.quantity <= 0:
            raise InvalidRequest("Movement quantity must be positive")

    @staticmethod
    async def _decrement(db: AsyncSession, record: MovementRecord) -> None:
        result = await db.execute(
            update(StockBalance)
            .where(
                _balance_key(record.business_id, record.product_id, record.from_location_id),
                StockBalance.quantity - StockBalance.reserved_quantity >= record.quantity,
            )
            .values(
                quantity=StockBalance.quantity - record.quantity,
                version=StockBalance.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflict(
                f"Balance for product {record.product_id} at {record.from_location_id} changed before commit"
            )

    @staticmethod
    async def _increment(db: AsyncSession, record: MovementRecord) -> None:
        result = await db.execute(
            update(StockBalance)
            .where(_balance_key(record.business_id, record.product_id, record.to_location_id))
            .values(
                quantity=StockBalance.quantity + record.quantity,
                version=StockBalance.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.add(StockBalance(
                business_id=record.business_id,
                product_id=record.product_id,
                location_id=record.to_location_id,
                quantity=record.quantity,
                reserved_quantity=0,
            ))
            await db.flush()

    @staticmethod
    def filtered(
        business_id: UUID,
        *,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
        from_location_id: UUID | None = None,
        to_location_id: UUID | None = None,
        movement_kind: MovementKind | str | None = None,
        adjustment_category: AdjustmentCategory | str | None = None,
        reference_id: str | None = None,
        batch_id: UUID | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> Select:
        """SELECT over movements with the given filters; ``location_id`` matches either side."""
        q = select(MovementRecord).where(MovementRecord.business_id == business_id)
        if product_id:
            q = q.where(MovementRecord.product_id == product_id)
        if location_id:
            q = q.where(or_(
                MovementRecord.from_location_id == location_id,
                MovementRecord.to_location_id == location_id,
            ))
        if from_location_id:
            q = q.where(MovementRecord.from_location_id == from_location_id)
        if to_location_id:
            q = q.where(MovementRecord.to_location_id == to_location_id)
        if movement_kind:
            q = q.where(MovementRecord.movement_kind == MovementKind(movement_kind).value)
        if adjustment_category:
            q = q.where(MovementRecord.adjustment_category == AdjustmentCategory(adjustment_category).value)
        if reference_id:
            q = q.where(MovementRecord.reference_id == reference_id)
        if batch_id:
            q = q.where(MovementRecord.batch_id == batch_id)
        if date_from:
            q = q.where(MovementRecord.created_at >= date_from)
        if date_to:
            q = q.where(MovementRecord.created_at <= date_to)
        return q

    @staticmethod
    async def entries(db: AsyncSession, business_id: UUID, **filters) -> list[MovementRecord]:
        """All matching movements, oldest first."""
        q = LedgerService.filtered(business_id, **filters).order_by(
            MovementRecord.created_at, MovementRecord.id
        )
        result = await db.execute(q)
        return list(result.scalars().all())

    @staticmethod
    async def get_entry(db: AsyncSession, business_id: UUID, movement_id: UUID) -> MovementRecord:
        result = await db.execute(
            select(MovementRecord).where(
                MovementRecord.id == movement_id,
                MovementRecord.business_id == business_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise MovementNotFound(movement_id)
        return record

    @staticmethod
    async def ledger_quantity(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        location_id: UUID,
    ) -> int:
        """Signed sum of the ledger for one key: inbound minus outbound."""
        signed = case(
            (MovementRecord.to_location_id == location_id, MovementRecord.quantity),
            else_=-MovementRecord.quantity,
        )
        result = await db.execute(
            select(func.coalesce(func.sum(signed), 0)).where(
                MovementRecord.business_id == business_id,
                MovementRecord.product_id == product_id,
                or_(
                    MovementRecord.from_location_id == location_id,
                    MovementRecord.to_location_id == location_id,
                ),
            )
        )
        return int(result.scalar_one())
