"""storestock — SQLAlchemy models."""
from storestock.models.inventory import MovementKind, MovementRecord, StockBalance
from storestock.models.location import Location, LocationKind

__all__ = [
    "Location", "LocationKind",
    "StockBalance", "MovementRecord", "MovementKind",
]
