"""storestock — Location registry endpoints."""
from uuid import UUID

from fastapi import APIRouter, Query, status

from storestock.api.deps import DbSession
from storestock.schemas.common import ApiResponse
from storestock.schemas.location import LocationCreate, LocationResponse, LocationUpdate
from storestock.services.location_service import LocationService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[LocationResponse]])
async def list_locations(
    db: DbSession,
    business_id: UUID,
    include_inactive: bool = Query(False, description="Include deactivated locations"),
):
    """Locations of a business, primary store first."""
    items = await LocationService.list_locations(db, business_id, include_inactive=include_inactive)
    return ApiResponse(data=[LocationResponse.model_validate(i) for i in items])


@router.post("", response_model=ApiResponse[LocationResponse], status_code=status.HTTP_201_CREATED)
async def create_location(body: LocationCreate, db: DbSession):
    loc = await LocationService.create_location(
        db, body.business_id, body.code, body.name,
        kind=body.kind, localized_name=body.localized_name,
    )
    return ApiResponse(data=LocationResponse.model_validate(loc))


@router.get("/{id}", response_model=ApiResponse[LocationResponse])
async def get_location(id: UUID, business_id: UUID, db: DbSession):
    loc = await LocationService.get_location(db, business_id, id)
    return ApiResponse(data=LocationResponse.model_validate(loc))


@router.patch("/{id}", response_model=ApiResponse[LocationResponse])
async def update_location(id: UUID, business_id: UUID, body: LocationUpdate, db: DbSession):
    loc = await LocationService.update_location(db, business_id, id, **body.model_dump(exclude_unset=True))
    return ApiResponse(data=LocationResponse.model_validate(loc))


@router.post("/{id}/deactivate", response_model=ApiResponse[LocationResponse])
async def deactivate_location(id: UUID, business_id: UUID, db: DbSession):
    """Deactivated locations keep their history but can no longer be a transfer endpoint."""
    loc = await LocationService.deactivate_location(db, business_id, id)
    return ApiResponse(data=LocationResponse.model_validate(loc))


@router.post("/{id}/reactivate", response_model=ApiResponse[LocationResponse])
async def reactivate_location(id: UUID, business_id: UUID, db: DbSession):
    loc = await LocationService.reactivate_location(db, business_id, id)
    return ApiResponse(data=LocationResponse.model_validate(loc))
