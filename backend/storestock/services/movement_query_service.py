"""storestock — MovementQueryService: paginated movement history with resolved endpoint labels."""
import logging
import math
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storestock.config import get_settings
from storestock.core.errors import InvalidRequest
from storestock.models.inventory import MovementKind, MovementRecord
from storestock.schemas.movement import MovementFilter, MovementPage, MovementView, Pagination
from storestock.services.ledger_service import LedgerService
from storestock.services.location_service import LocationService

logger = logging.getLogger(__name__)

SOLD_LABEL = "Sold"
EXTERNAL_LABEL = "—"


def endpoint_label(
    location_id: UUID | None,
    names: dict[UUID, str],
    movement_kind: str,
    external_label: str | None,
    outbound: bool,
) -> str:
    """Display label for one side of a movement. Null endpoints get a synthetic label."""
    if location_id is not None:
        return names.get(location_id, str(location_id))
    if outbound and movement_kind == MovementKind.SALE.value:
        return external_label or SOLD_LABEL
    if outbound and external_label:
        return external_label
    return EXTERNAL_LABEL


class MovementQueryService:
    """Pure read over the ledger. Never writes, never caches."""

    @staticmethod
    async def query(
        db: AsyncSession,
        business_id: UUID,
        filters: MovementFilter | None = None,
        page: int = 1,
        page_size: int | None = None,
        ascending: bool = False,
    ) -> MovementPage:
        settings = get_settings()
        filters = filters or MovementFilter()
        page_size = page_size or settings.DEFAULT_PAGE_SIZE
        if page < 1:
            raise InvalidRequest("page must be >= 1")
        if page_size < 1 or page_size > settings.MAX_PAGE_SIZE:
            raise InvalidRequest(f"page_size must be between 1 and {settings.MAX_PAGE_SIZE}")
        if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
            raise InvalidRequest("date_from must not be after date_to")

        base = LedgerService.filtered(business_id, **filters.model_dump())
        total = (await db.execute(
            select(func.count()).select_from(base.order_by(None).subquery())
        )).scalar_one()

        if ascending:
            order = (MovementRecord.created_at.asc(), MovementRecord.id.asc())
        else:
            order = (MovementRecord.created_at.desc(), MovementRecord.id.desc())
        rows = (await db.execute(
            base.order_by(*order).offset((page - 1) * page_size).limit(page_size)
        )).scalars().all()

        location_ids = {r.from_location_id for r in rows if r.from_location_id} | {
            r.to_location_id for r in rows if r.to_location_id
        }
        names = await LocationService.display_names(db, business_id, location_ids)

        movements = [
            MovementView(
                id=r.id,
                batch_id=r.batch_id,
                product_id=r.product_id,
                from_location_id=r.from_location_id,
                to_location_id=r.to_location_id,
                from_label=endpoint_label(r.from_location_id, names, r.movement_kind, r.external_label, False),
                to_label=endpoint_label(r.to_location_id, names, r.movement_kind, r.external_label, True),
                quantity=r.quantity,
                movement_kind=r.movement_kind,
                adjustment_category=r.adjustment_category,
                reason=r.reason,
                reference_id=r.reference_id,
                actor_id=r.actor_id,
                reverses_movement_id=r.reverses_movement_id,
                created_at=r.created_at,
            )
            for r in rows
        ]
        total_pages = math.ceil(total / page_size) if total else 0
        return MovementPage(
            movements=movements,
            pagination=Pagination(
                current_page=page,
                page_size=page_size,
                total_pages=total_pages,
                total_count=total,
                has_next=page < total_pages,
                has_previous=page > 1,
            ),
        )
