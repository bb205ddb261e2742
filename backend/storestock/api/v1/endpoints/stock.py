"""storestock — Stock level read surface, thresholds and reservations."""
from uuid import UUID

from fastapi import APIRouter, Query

from storestock.api.deps import DbSession
from storestock.schemas.common import ApiResponse
from storestock.schemas.stock import LocationStock, LocationStockSummary, ProductStock, StockStatus, ThresholdUpdate
from storestock.schemas.transfer import ReservationRequest
from storestock.services.stock_service import StockService, summarize_by_location
from storestock.services.transfer_service import TransferService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[ProductStock]])
async def list_stock(
    db: DbSession,
    business_id: UUID,
    product_id: list[UUID] | None = Query(None),
    location_id: UUID | None = None,
    status: StockStatus | None = Query(None, description="Only location rows in this status"),
):
    """Per-location and combined stock with one classified status per product.

    ``meta.summary`` carries per-location status counts for the listed rows.
    """
    levels = await StockService.stock_levels(
        db, business_id, product_ids=product_id, location_id=location_id, status=status,
    )
    summary = summarize_by_location(levels)
    return ApiResponse(data=levels, meta={"summary": [s.model_dump(mode="json") for s in summary]})


@router.get("/summary", response_model=ApiResponse[list[LocationStockSummary]])
async def stock_summary(db: DbSession, business_id: UUID, location_id: UUID | None = None):
    """Product and status counts per location."""
    levels = await StockService.stock_levels(db, business_id, location_id=location_id)
    return ApiResponse(data=summarize_by_location(levels))


@router.get("/{product_id}", response_model=ApiResponse[ProductStock])
async def get_product_stock(product_id: UUID, business_id: UUID, db: DbSession):
    levels = await StockService.stock_levels(db, business_id, product_ids=[product_id])
    return ApiResponse(data=levels[0], meta={"breakdown": levels[0].breakdown})


@router.put("/thresholds", response_model=ApiResponse[LocationStock])
async def set_thresholds(body: ThresholdUpdate, db: DbSession):
    """Reorder point and max stock, used only for status classification."""
    await StockService.set_thresholds(
        db, body.business_id, body.product_id, body.location_id,
        body.reorder_point, body.max_stock,
    )
    levels = await StockService.stock_levels(db, body.business_id, [body.product_id], body.location_id)
    return ApiResponse(data=levels[0].locations[0])


@router.post("/reserve", response_model=ApiResponse[LocationStock])
async def reserve_stock(body: ReservationRequest, db: DbSession):
    row = await TransferService.reserve(db, body.business_id, body.product_id, body.location_id, body.quantity)
    return ApiResponse(data=row)


@router.post("/release", response_model=ApiResponse[LocationStock])
async def release_stock(body: ReservationRequest, db: DbSession):
    row = await TransferService.release(db, body.business_id, body.product_id, body.location_id, body.quantity)
    return ApiResponse(data=row)
