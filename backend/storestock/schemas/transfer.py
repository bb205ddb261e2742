"""storestock — Transfer request/result schemas.

The destination is a tagged variant: ``internal`` (a tracked location) or
``external`` (free-text label such as a customer name). A request can never
carry both.
"""
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storestock.models.inventory import AdjustmentCategory, MovementKind


class InternalDestination(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["internal"] = "internal"
    location_id: UUID


class ExternalDestination(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["external"] = "external"
    label: str | None = None

    @field_validator("label")
    @classmethod
    def _blank_label_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


Destination = Annotated[Union[InternalDestination, ExternalDestination], Field(discriminator="kind")]


class TransferLine(BaseModel):
    product_id: UUID
    quantity: int
    reason: str | None = None


class TransferRequest(BaseModel):
    """Movement intent. Quantities and endpoints are validated by TransferService."""

    business_id: UUID
    movement_kind: MovementKind = MovementKind.TRANSFER
    adjustment_category: AdjustmentCategory | None = None
    source_location_id: UUID | None = None
    destination: Destination | None = None
    lines: list[TransferLine] = Field(default_factory=list)
    reason: str | None = None
    reference_id: str | None = Field(default=None, max_length=100)
    actor_id: UUID | None = None


class TransferResult(BaseModel):
    batch_id: UUID
    movement_kind: MovementKind
    item_count: int
    total_quantity: int
    movement_ids: list[UUID]


class ReverseRequest(BaseModel):
    business_id: UUID
    actor_id: UUID | None = None
    reason: str | None = None


class ReservationRequest(BaseModel):
    business_id: UUID
    product_id: UUID
    location_id: UUID
    quantity: int
