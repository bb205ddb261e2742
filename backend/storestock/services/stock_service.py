"""storestock — StockService: current quantities, classified stock levels, ledger reconciliation."""
import logging
from collections import defaultdict
from uuid import UUID

from sqlalchemy import Select, func, select, union_all, update
from sqlalchemy.ext.asyncio import AsyncSession

from storestock.core.errors import InvalidRequest
from storestock.core.redis import get_cached_quantities, get_stock_generation, set_cached_quantities
from storestock.models.inventory import MovementRecord, StockBalance
from storestock.models.location import Location
from storestock.schemas.stock import BalanceDrift, LocationStock, LocationStockSummary, ProductStock, StockStatus
from storestock.services.location_service import LocationService

logger = logging.getLogger(__name__)


def classify_stock(
    quantity: int,
    available: int,
    reorder_point: int | None,
) -> StockStatus:
    """Single status rule used by every read surface."""
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if available <= 0:
        return StockStatus.NOT_AVAILABLE
    if reorder_point is not None and available <= reorder_point:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def drift_statements(business_id: UUID | None = None) -> tuple[Select, Select]:
    """(balances, ledger sums) per (business, product, location), for reconciliation.

    Usable from both AsyncSession and the Celery worker's sync Session.
    """
    inbound = select(
        MovementRecord.business_id,
        MovementRecord.product_id,
        MovementRecord.to_location_id.label("location_id"),
        MovementRecord.quantity.label("delta"),
    ).where(MovementRecord.to_location_id.is_not(None))
    outbound = select(
        MovementRecord.business_id,
        MovementRecord.product_id,
        MovementRecord.from_location_id.label("location_id"),
        (-MovementRecord.quantity).label("delta"),
    ).where(MovementRecord.from_location_id.is_not(None))
    if business_id is not None:
        inbound = inbound.where(MovementRecord.business_id == business_id)
        outbound = outbound.where(MovementRecord.business_id == business_id)
    moves = union_all(inbound, outbound).subquery()
    ledger = select(
        moves.c.business_id,
        moves.c.product_id,
        moves.c.location_id,
        func.sum(moves.c.delta).label("quantity"),
    ).group_by(moves.c.business_id, moves.c.product_id, moves.c.location_id)

    balances = select(
        StockBalance.business_id,
        StockBalance.product_id,
        StockBalance.location_id,
        StockBalance.quantity,
    )
    if business_id is not None:
        balances = balances.where(StockBalance.business_id == business_id)
    return balances, ledger


def compare_balances(balance_rows, ledger_rows) -> list[BalanceDrift]:
    """Keys whose materialized quantity differs from the ledger's signed sum."""
    ledger = {(r.business_id, r.product_id, r.location_id): int(r.quantity) for r in ledger_rows}
    drift: list[BalanceDrift] = []
    seen = set()
    for row in balance_rows:
        key = (row.business_id, row.product_id, row.location_id)
        seen.add(key)
        expected = ledger.get(key, 0)
        if row.quantity != expected:
            drift.append(BalanceDrift(
                business_id=key[0], product_id=key[1], location_id=key[2],
                balance_quantity=row.quantity, ledger_quantity=expected,
            ))
    for key, expected in ledger.items():
        if key not in seen and expected != 0:
            drift.append(BalanceDrift(
                business_id=key[0], product_id=key[1], location_id=key[2],
                balance_quantity=0, ledger_quantity=expected,
            ))
    return drift


def summarize_by_location(levels: list[ProductStock]) -> list[LocationStockSummary]:
    """Per-location product and status counts over a stock listing, ordered by name."""
    summaries: dict[UUID, LocationStockSummary] = {}
    for product in levels:
        for loc in product.locations:
            summary = summaries.get(loc.location_id)
            if summary is None:
                summary = summaries[loc.location_id] = LocationStockSummary(
                    location_id=loc.location_id,
                    location_name=loc.location_name,
                    product_count=0,
                    total_quantity=0,
                    total_available=0,
                    in_stock=0,
                    low_stock=0,
                    out_of_stock=0,
                    not_available=0,
                )
            summary.product_count += 1
            summary.total_quantity += loc.quantity
            summary.total_available += loc.available_quantity
            field = loc.status.value
            setattr(summary, field, getattr(summary, field) + 1)
    return sorted(summaries.values(), key=lambda s: s.location_name)


class StockService:
    """Read model over materialized balances. Writes go through TransferService."""

    @staticmethod
    async def current_quantity(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        location_id: UUID,
    ) -> int:
        result = await db.execute(
            select(StockBalance.quantity).where(
                StockBalance.business_id == business_id,
                StockBalance.product_id == product_id,
                StockBalance.location_id == location_id,
            )
        )
        qty = result.scalar_one_or_none()
        return int(qty) if qty is not None else 0

    @staticmethod
    async def current_quantities(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        use_cache: bool = True,
    ) -> dict[UUID, int]:
        """location_id -> quantity for one product. Redis cache-aside."""
        if use_cache:
            cached = await get_cached_quantities(business_id, product_id)
            if cached is not None:
                return cached
            generation = await get_stock_generation(business_id, product_id)

        result = await db.execute(
            select(StockBalance.location_id, StockBalance.quantity).where(
                StockBalance.business_id == business_id,
                StockBalance.product_id == product_id,
            )
        )
        quantities = {row.location_id: int(row.quantity) for row in result.all()}
        if use_cache:
            await set_cached_quantities(business_id, product_id, quantities, generation)
        return quantities

    @staticmethod
    async def lock_balances(
        db: AsyncSession,
        business_id: UUID,
        location_id: UUID,
        product_ids: set[UUID],
    ) -> dict[UUID, StockBalance]:
        """Fresh balance rows for a location, row-locked where the database supports it."""
        result = await db.execute(
            select(StockBalance)
            .where(
                StockBalance.business_id == business_id,
                StockBalance.location_id == location_id,
                StockBalance.product_id.in_(product_ids),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {b.product_id: b for b in result.scalars().all()}

    @staticmethod
    async def stock_levels(
        db: AsyncSession,
        business_id: UUID,
        product_ids: list[UUID] | None = None,
        location_id: UUID | None = None,
        status: StockStatus | None = None,
    ) -> list[ProductStock]:
        """Per-location and combined stock for products, each with one classified status.

        Stock held at a deactivated location counts toward the total but not
        toward what is available. With ``status`` only location rows in that
        status are listed and products with none are left out; totals still
        cover every location.
        """
        q = (
            select(
                StockBalance.product_id,
                StockBalance.location_id,
                StockBalance.quantity,
                StockBalance.reserved_quantity,
                StockBalance.reorder_point,
                StockBalance.max_stock,
                Location.name.label("location_name"),
                Location.is_active.label("location_active"),
            )
            .join(Location, Location.id == StockBalance.location_id)
            .where(StockBalance.business_id == business_id)
            .order_by(StockBalance.product_id, Location.name)
        )
        if product_ids:
            q = q.where(StockBalance.product_id.in_(product_ids))
        if location_id:
            q = q.where(StockBalance.location_id == location_id)
        rows = (await db.execute(q)).all()

        grouped: dict[UUID, list[LocationStock]] = defaultdict(list)
        reorder_totals: dict[UUID, int | None] = {}
        for row in rows:
            available = row.quantity - row.reserved_quantity if row.location_active else 0
            grouped[row.product_id].append(LocationStock(
                location_id=row.location_id,
                location_name=row.location_name,
                quantity=row.quantity,
                reserved_quantity=row.reserved_quantity,
                available_quantity=available,
                reorder_point=row.reorder_point,
                max_stock=row.max_stock,
                status=classify_stock(row.quantity, available, row.reorder_point),
            ))
            if row.reorder_point is not None:
                reorder_totals[row.product_id] = (reorder_totals.get(row.product_id) or 0) + row.reorder_point

        out: list[ProductStock] = []
        for pid in (dict.fromkeys(product_ids) if product_ids else grouped.keys()):
            locations = grouped.get(pid, [])
            total = sum(loc.quantity for loc in locations)
            total_available = sum(loc.available_quantity for loc in locations)
            if status is not None:
                locations = [loc for loc in locations if loc.status == status]
                if not locations:
                    continue
            out.append(ProductStock(
                product_id=pid,
                total_quantity=total,
                total_available=total_available,
                status=classify_stock(total, total_available, reorder_totals.get(pid)),
                locations=locations,
            ))
        return out

    @staticmethod
    async def set_thresholds(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        location_id: UUID,
        reorder_point: int | None,
        max_stock: int | None,
    ) -> StockBalance:
        """Catalog-supplied display thresholds. Creates an empty balance row if needed."""
        if reorder_point is not None and max_stock is not None and reorder_point > max_stock:
            raise InvalidRequest("reorder_point cannot exceed max_stock")
        await LocationService.get_location(db, business_id, location_id)
        result = await db.execute(
            select(StockBalance)
            .where(
                StockBalance.business_id == business_id,
                StockBalance.product_id == product_id,
                StockBalance.location_id == location_id,
            )
            .execution_options(populate_existing=True)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            balance = StockBalance(
                business_id=business_id,
                product_id=product_id,
                location_id=location_id,
                quantity=0,
                reserved_quantity=0,
            )
            db.add(balance)
        balance.reorder_point = reorder_point
        balance.max_stock = max_stock
        await db.flush()
        await db.refresh(balance)
        return balance

    @staticmethod
    async def adjust_reserved(
        db: AsyncSession,
        business_id: UUID,
        product_id: UUID,
        location_id: UUID,
        delta: int,
    ) -> bool:
        """Guarded change of reserved_quantity; False when the guard rejects it."""
        guard = (
            StockBalance.quantity - StockBalance.reserved_quantity >= delta
            if delta > 0
            else StockBalance.reserved_quantity >= -delta
        )
        result = await db.execute(
            update(StockBalance)
            .where(
                StockBalance.business_id == business_id,
                StockBalance.product_id == product_id,
                StockBalance.location_id == location_id,
                guard,
            )
            .values(
                reserved_quantity=StockBalance.reserved_quantity + delta,
                version=StockBalance.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def find_drift(db: AsyncSession, business_id: UUID | None = None) -> list[BalanceDrift]:
        """Keys where the materialized balance disagrees with the ledger. Empty when consistent."""
        balances_q, ledger_q = drift_statements(business_id)
        balance_rows = (await db.execute(balances_q)).all()
        ledger_rows = (await db.execute(ledger_q)).all()
        drift = compare_balances(balance_rows, ledger_rows)
        for d in drift:
            logger.error(
                "Stock drift: product=%s location=%s balance=%s ledger=%s",
                d.product_id, d.location_id, d.balance_quantity, d.ledger_quantity,
            )
        return drift
