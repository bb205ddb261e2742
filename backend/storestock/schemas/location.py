"""storestock — Location schemas."""
from uuid import UUID

from pydantic import BaseModel, Field

from storestock.models.location import LocationKind


class LocationCreate(BaseModel):
    business_id: UUID
    code: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    localized_name: str | None = None
    kind: LocationKind = LocationKind.RETAIL_STORE


class LocationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    localized_name: str | None = None
    kind: LocationKind | None = None


class LocationResponse(BaseModel):
    id: UUID
    business_id: UUID
    code: str
    name: str
    localized_name: str | None
    kind: str
    is_active: bool

    model_config = {"from_attributes": True}
