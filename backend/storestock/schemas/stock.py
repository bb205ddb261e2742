"""storestock — Stock level schemas."""
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    NOT_AVAILABLE = "not_available"


class LocationStock(BaseModel):
    location_id: UUID
    location_name: str
    quantity: int
    reserved_quantity: int
    available_quantity: int
    reorder_point: int | None
    max_stock: int | None
    status: StockStatus


class ProductStock(BaseModel):
    product_id: UUID
    total_quantity: int
    total_available: int
    status: StockStatus
    locations: list[LocationStock]

    @property
    def breakdown(self) -> str:
        """e.g. ``Main: 5 | Retail: 3 → Total: 8``"""
        parts = " | ".join(f"{loc.location_name}: {loc.quantity}" for loc in self.locations)
        return f"{parts} → Total: {self.total_quantity}" if parts else f"Total: {self.total_quantity}"


class ThresholdUpdate(BaseModel):
    business_id: UUID
    product_id: UUID
    location_id: UUID
    reorder_point: int | None = Field(default=None, ge=0)
    max_stock: int | None = Field(default=None, ge=0)


class BalanceDrift(BaseModel):
    business_id: UUID
    product_id: UUID
    location_id: UUID
    balance_quantity: int
    ledger_quantity: int


class LocationStockSummary(BaseModel):
    """Status counts for one location across the products in a stock listing."""

    location_id: UUID
    location_name: str
    product_count: int
    total_quantity: int
    total_available: int
    in_stock: int
    low_stock: int
    out_of_stock: int
    not_available: int
