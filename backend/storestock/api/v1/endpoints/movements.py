"""storestock — Movement history endpoint."""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query

from storestock.api.deps import DbSession
from storestock.models.inventory import AdjustmentCategory, MovementKind
from storestock.schemas.common import ApiResponse
from storestock.schemas.movement import MovementFilter, MovementView
from storestock.services.movement_query_service import MovementQueryService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[MovementView]])
async def list_movements(
    db: DbSession,
    business_id: UUID,
    location_id: UUID | None = Query(None, description="Either side of the movement"),
    from_location_id: UUID | None = None,
    to_location_id: UUID | None = None,
    movement_kind: MovementKind | None = None,
    adjustment_category: AdjustmentCategory | None = None,
    product_id: UUID | None = None,
    reference_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    ascending: bool = False,
):
    """Newest first by default. Pagination metadata is returned in ``meta``."""
    filters = MovementFilter(
        location_id=location_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        movement_kind=movement_kind,
        adjustment_category=adjustment_category,
        product_id=product_id,
        reference_id=reference_id,
        date_from=date_from,
        date_to=date_to,
    )
    result = await MovementQueryService.query(
        db, business_id, filters, page=page, page_size=page_size, ascending=ascending,
    )
    return ApiResponse(data=result.movements, meta=result.pagination.model_dump())
