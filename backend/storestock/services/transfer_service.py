"""storestock — TransferService: validates movement requests and commits them as one ledger batch.

Every entry point (internal transfer, sale, initial stock, adjustment, reversal)
goes through the same sequence:

1. shape checks (endpoints for the movement kind, self-transfer, empty lines,
   non-positive quantities) before touching the database;
2. endpoint resolution: both locations must exist and be active;
3. per-(product, location) locks, then a locked read of available quantity;
   every short line is reported, none is written;
4. one atomic ledger append and commit.

The service commits the caller's session. A ConcurrencyConflict at append or
commit time rolls back and retries up to ``TRANSFER_MAX_ATTEMPTS``.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storestock.config import get_settings
from storestock.core.errors import ConcurrencyConflict, InsufficientStock, InvalidRequest, LocationInactive
from storestock.core.locks import balance_locks
from storestock.core.redis import invalidate_stock
from storestock.models.inventory import AdjustmentCategory, MovementKind, MovementRecord
from storestock.models.location import Location
from storestock.schemas.stock import LocationStock
from storestock.schemas.transfer import (
    ExternalDestination,
    InternalDestination,
    TransferLine,
    TransferRequest,
    TransferResult,
)
from storestock.services.ledger_service import LedgerService
from storestock.services.location_service import LocationService
from storestock.services.stock_service import StockService

logger = logging.getLogger(__name__)


def _check_endpoints(request: TransferRequest) -> None:
    kind = request.movement_kind
    source = request.source_location_id
    dest = request.destination

    if kind == MovementKind.TRANSFER:
        if source is None:
            raise InvalidRequest("A transfer needs a source location")
        if dest is None:
            raise InvalidRequest("A transfer needs a destination location or an external destination")
        if isinstance(dest, ExternalDestination) and not dest.label:
            raise InvalidRequest("An external transfer needs a destination label")
    elif kind == MovementKind.SALE:
        if source is None:
            raise InvalidRequest("A sale needs a source location")
        if isinstance(dest, InternalDestination):
            raise InvalidRequest("A sale cannot have a destination location")
    elif kind == MovementKind.INITIAL_STOCK:
        if source is not None:
            raise InvalidRequest("Initial stock cannot have a source location")
        if not isinstance(dest, InternalDestination):
            raise InvalidRequest("Initial stock needs a destination location")
    elif kind == MovementKind.ADJUSTMENT:
        if source is None and not isinstance(dest, InternalDestination):
            raise InvalidRequest("An inbound adjustment needs a destination location")
        if source is not None and isinstance(dest, InternalDestination):
            raise InvalidRequest("An adjustment moves stock in or out of one location, not between two")

    if request.adjustment_category is not None and kind != MovementKind.ADJUSTMENT:
        raise InvalidRequest("Only adjustments carry an adjustment category")

    if isinstance(dest, InternalDestination) and dest.location_id == source:
        raise InvalidRequest("Source and destination cannot be the same location")


def _check_lines(lines: list[TransferLine]) -> None:
    if not lines:
        raise InvalidRequest("At least one line item is required")
    bad = [
        {"line": i, "product_id": line.product_id, "quantity": line.quantity, "message": "Quantity must be positive"}
        for i, line in enumerate(lines)
        if line.quantity <= 0
    ]
    if bad:
        raise InvalidRequest("Line quantities must be positive", bad)


def _default_reason(
    request: TransferRequest,
    source: Location | None,
    destination: Location | None,
) -> str:
    kind = request.movement_kind
    if kind == MovementKind.SALE:
        return f"Sale {request.reference_id}" if request.reference_id else "Sale"
    if kind == MovementKind.INITIAL_STOCK:
        return "Initial stock"
    if kind == MovementKind.ADJUSTMENT:
        category = request.adjustment_category
        if category is None or category == AdjustmentCategory.OTHER:
            return "Stock adjustment"
        return f"Stock adjustment ({category.value.replace('_', ' ')})"
    if destination is not None:
        return f"Transfer from {source.name} to {destination.name}"
    label = request.destination.label if isinstance(request.destination, ExternalDestination) else None
    return f"External transfer to {label}" if label else "External transfer"


class TransferService:
    """Movement orchestrator. The only writer of the ledger and balances."""

    @staticmethod
    async def execute(db: AsyncSession, request: TransferRequest) -> TransferResult:
        """Validate and commit a movement batch. All lines or none.

        Raises InvalidRequest, LocationNotFound, LocationInactive, InsufficientStock,
        ConcurrencyConflict (after the last attempt) or PersistenceFailure.
        """
        return await TransferService._run(db, request)

    @staticmethod
    async def _run(
        db: AsyncSession,
        request: TransferRequest,
        reverses: UUID | None = None,
    ) -> TransferResult:
        _check_endpoints(request)
        _check_lines(request.lines)

        attempts = max(1, get_settings().TRANSFER_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                result = await TransferService._execute_once(db, request, reverses)
            except ConcurrencyConflict:
                if reverses is not None:
                    # lost the unique reversal race to another writer
                    await TransferService._check_not_reversed(db, request.business_id, reverses)
                if attempt == attempts:
                    logger.warning("Transfer gave up after %d conflicting attempt(s)", attempts)
                    raise
                logger.warning("Transfer conflicted on attempt %d/%d; retrying", attempt, attempts)
                continue
            except (InsufficientStock, InvalidRequest, LocationInactive) as exc:
                logger.info("%s request rejected: %s", request.movement_kind.value, exc.code)
                raise
            await invalidate_stock(request.business_id, {line.product_id for line in request.lines})
            logger.info(
                "%s batch %s committed: %d line(s), %d unit(s)",
                result.movement_kind.value, result.batch_id, result.item_count, result.total_quantity,
            )
            return result
        raise AssertionError("unreachable")

    @staticmethod
    async def _execute_once(
        db: AsyncSession,
        request: TransferRequest,
        reverses: UUID | None = None,
    ) -> TransferResult:
        business_id = request.business_id
        dest = request.destination
        try:
            source = None
            destination = None
            if request.source_location_id is not None:
                source = await LocationService.require_active(
                    db, business_id, request.source_location_id, "source"
                )
            if isinstance(dest, InternalDestination):
                destination = await LocationService.require_active(
                    db, business_id, dest.location_id, "destination"
                )

            product_ids = {line.product_id for line in request.lines}
            keys = [
                (business_id, pid, loc.id)
                for pid in product_ids
                for loc in (source, destination)
                if loc is not None
            ]
            async with balance_locks.hold(keys):
                if reverses is not None:
                    await TransferService._check_not_reversed(db, business_id, reverses)
                if source is not None:
                    await TransferService._check_available(db, business_id, source.id, request.lines)

                now = datetime.now(timezone.utc)
                batch_id = uuid.uuid4()
                default_reason = _default_reason(request, source, destination)
                external_label = dest.label if isinstance(dest, ExternalDestination) else None
                category = request.adjustment_category
                if category is None and request.movement_kind == MovementKind.ADJUSTMENT:
                    category = AdjustmentCategory.OTHER
                records = [
                    MovementRecord(
                        id=uuid.uuid4(),
                        business_id=business_id,
                        batch_id=batch_id,
                        product_id=line.product_id,
                        from_location_id=source.id if source else None,
                        to_location_id=destination.id if destination else None,
                        external_label=external_label,
                        quantity=line.quantity,
                        movement_kind=request.movement_kind.value,
                        adjustment_category=category.value if category else None,
                        reason=line.reason or request.reason or default_reason,
                        reference_id=request.reference_id,
                        actor_id=request.actor_id,
                        reverses_movement_id=reverses,
                        created_at=now,
                    )
                    for line in request.lines
                ]
                await LedgerService.append(db, records)
                await LedgerService.commit(db)
        except Exception:
            await db.rollback()
            raise

        return TransferResult(
            batch_id=batch_id,
            movement_kind=request.movement_kind,
            item_count=len(records),
            total_quantity=sum(r.quantity for r in records),
            movement_ids=[r.id for r in records],
        )

    @staticmethod
    async def _check_not_reversed(db: AsyncSession, business_id: UUID, movement_id: UUID) -> None:
        result = await db.execute(
            select(MovementRecord.id).where(
                MovementRecord.business_id == business_id,
                MovementRecord.reverses_movement_id == movement_id,
            )
        )
        if result.scalar_one_or_none() is not None:
            raise InvalidRequest(f"Movement {movement_id} is already reversed")

    @staticmethod
    async def _check_available(
        db: AsyncSession,
        business_id: UUID,
        location_id: UUID,
        lines: list[TransferLine],
    ) -> None:
        """Reject the batch if any product's requested total exceeds what is available."""
        requested: dict[UUID, int] = defaultdict(int)
        for line in lines:
            requested[line.product_id] += line.quantity

        balances = await StockService.lock_balances(db, business_id, location_id, set(requested))
        available = {
            pid: (b.quantity - b.reserved_quantity) for pid, b in balances.items()
        }
        short = [
            {
                "line": i,
                "product_id": line.product_id,
                "requested": requested[line.product_id],
                "available": available.get(line.product_id, 0),
                "message": "Requested quantity exceeds available stock",
            }
            for i, line in enumerate(lines)
            if requested[line.product_id] > available.get(line.product_id, 0)
        ]
        if short:
            raise InsufficientStock(short)

    # --- collaborator entry points ---

    @staticmethod
    async def record_sale(
        db: AsyncSession,
        business_id: UUID,
        location_id: UUID,
        lines: list[TransferLine],
        reference_id: str | None = None,
        actor_id: UUID | None = None,
        customer_label: str | None = None,
        reason: str | None = None,
    ) -> TransferResult:
        """Order completion: stock leaves the selling location to an external customer."""
        return await TransferService.execute(db, TransferRequest(
            business_id=business_id,
            movement_kind=MovementKind.SALE,
            source_location_id=location_id,
            destination=ExternalDestination(label=customer_label) if customer_label else None,
            lines=lines,
            reason=reason,
            reference_id=reference_id,
            actor_id=actor_id,
        ))

    @staticmethod
    async def record_initial_stock(
        db: AsyncSession,
        business_id: UUID,
        location_id: UUID,
        lines: list[TransferLine],
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> TransferResult:
        return await TransferService.execute(db, TransferRequest(
            business_id=business_id,
            movement_kind=MovementKind.INITIAL_STOCK,
            destination=InternalDestination(location_id=location_id),
            lines=lines,
            reason=reason,
            actor_id=actor_id,
        ))

    @staticmethod
    async def record_adjustment(
        db: AsyncSession,
        business_id: UUID,
        location_id: UUID,
        lines: list[TransferLine],
        inbound: bool = False,
        reason: str | None = None,
        actor_id: UUID | None = None,
        reference_id: str | None = None,
        category: AdjustmentCategory | None = None,
    ) -> TransferResult:
        """Write-off (outbound, the default) or found stock (inbound) at one location.

        ``category`` classifies the adjustment for reporting; unclassified
        adjustments are stored as ``other``.
        """
        return await TransferService.execute(db, TransferRequest(
            business_id=business_id,
            movement_kind=MovementKind.ADJUSTMENT,
            adjustment_category=category,
            source_location_id=None if inbound else location_id,
            destination=InternalDestination(location_id=location_id) if inbound else None,
            lines=lines,
            reason=reason,
            reference_id=reference_id,
            actor_id=actor_id,
        ))

    @staticmethod
    async def reverse_movement(
        db: AsyncSession,
        business_id: UUID,
        movement_id: UUID,
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> TransferResult:
        """Append the compensating entry for a movement. The original row is never touched.

        The reversal row points back at the original through ``reverses_movement_id``,
        which is unique, so a movement is reversed at most once even across workers.
        """
        original = await LedgerService.get_entry(db, business_id, movement_id)
        both_sides = original.from_location_id is not None and original.to_location_id is not None
        category = None
        if not both_sides and original.adjustment_category:
            category = AdjustmentCategory(original.adjustment_category)
        request = TransferRequest(
            business_id=business_id,
            movement_kind=MovementKind.TRANSFER if both_sides else MovementKind.ADJUSTMENT,
            adjustment_category=category,
            source_location_id=original.to_location_id,
            destination=(
                InternalDestination(location_id=original.from_location_id)
                if original.from_location_id is not None
                else None
            ),
            lines=[TransferLine(product_id=original.product_id, quantity=original.quantity)],
            reason=reason or f"Reversal of movement {original.id}",
            reference_id=str(original.id),
            actor_id=actor_id,
        )
        return await TransferService._run(db, request, reverses=original.id)

    # --- reservations ---

    @staticmethod
    async def reserve(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
    ) -> LocationStock:
        """Hold stock for a pending order. Quantity on hand is unchanged; available drops."""
        if quantity <= 0:
            raise InvalidRequest("Quantity must be positive")
        return await TransferService._change_reserved(db, business_id, product_id, location_id, quantity)

    @staticmethod
    async def release(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: int,
    ) -> LocationStock:
        if quantity <= 0:
            raise InvalidRequest("Quantity must be positive")
        return await TransferService._change_reserved(db, business_id, product_id, location_id, -quantity)

    @staticmethod
    async def _change_reserved(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        location_id: UUID,
        delta: int,
    ) -> LocationStock:
        try:
            await LocationService.require_active(db, business_id, location_id)
            async with balance_locks.hold([(business_id, product_id, location_id)]):
                ok = await StockService.adjust_reserved(db, business_id, product_id, location_id, delta)
                if not ok:
                    levels = await StockService.stock_levels(db, business_id, [product_id], location_id)
                    row = levels[0].locations[0] if levels[0].locations else None
                    if delta > 0:
                        raise InsufficientStock([{
                            "line": 0,
                            "product_id": product_id,
                            "requested": delta,
                            "available": row.available_quantity if row else 0,
                            "message": "Requested quantity exceeds available stock",
                        }])
                    raise InvalidRequest(
                        f"Cannot release {-delta}; only {row.reserved_quantity if row else 0} reserved"
                    )
                await LedgerService.commit(db)
        except Exception:
            await db.rollback()
            raise

        levels = await StockService.stock_levels(db, business_id, [product_id], location_id)
        return levels[0].locations[0]
