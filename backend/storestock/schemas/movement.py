"""storestock — Movement history schemas."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from storestock.models.inventory import AdjustmentCategory, MovementKind


class MovementFilter(BaseModel):
    location_id: UUID | None = None  # either side
    from_location_id: UUID | None = None
    to_location_id: UUID | None = None
    movement_kind: MovementKind | None = None
    adjustment_category: AdjustmentCategory | None = None
    product_id: UUID | None = None
    reference_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


class MovementView(BaseModel):
    id: UUID
    batch_id: UUID
    product_id: UUID
    from_location_id: UUID | None
    to_location_id: UUID | None
    from_label: str
    to_label: str
    quantity: int
    movement_kind: str
    adjustment_category: str | None = None
    reason: str | None
    reference_id: str | None
    actor_id: UUID | None
    reverses_movement_id: UUID | None = None
    created_at: datetime


class Pagination(BaseModel):
    current_page: int
    page_size: int
    total_pages: int
    total_count: int
    has_next: bool
    has_previous: bool


class MovementPage(BaseModel):
    movements: list[MovementView]
    pagination: Pagination
