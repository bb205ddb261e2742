"""storestock — Location model (stores and warehouses)."""
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, DateTime, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from storestock.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocationKind(str, Enum):
    PRIMARY_STORE = "primary_store"
    RETAIL_STORE = "retail_store"
    WAREHOUSE = "warehouse"


class Location(Base):
    """Stock point of a business. Never hard-deleted; deactivated instead."""

    __tablename__ = "locations"
    __table_args__ = (UniqueConstraint("business_id", "code", name="uq_locations_business_code"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    localized_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=LocationKind.RETAIL_STORE.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
