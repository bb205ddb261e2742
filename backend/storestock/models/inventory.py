"""storestock — StockBalance (materialized) and MovementRecord (ledger) models."""
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from storestock.core.errors import LedgerImmutable
from storestock.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MovementKind(str, Enum):
    TRANSFER = "transfer"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    INITIAL_STOCK = "initial_stock"


class AdjustmentCategory(str, Enum):
    """Why stock was written off or found. Only adjustments carry one."""

    DAMAGE = "damage"
    EXPIRED = "expired"
    THEFT = "theft"
    LOST = "lost"
    QUALITY_ISSUE = "quality_issue"
    BREAKAGE = "breakage"
    SPOILAGE = "spoilage"
    RETURN_TO_SUPPLIER = "return_to_supplier"
    FOUND = "found"
    OTHER = "other"


class StockBalance(Base):
    """On-hand quantity for (product, location). Mutated only alongside a ledger append."""

    __tablename__ = "stock_balances"
    __table_args__ = (
        UniqueConstraint("business_id", "product_id", "location_id", name="uq_stock_balances_key"),
        CheckConstraint("quantity >= 0", name="ck_stock_balances_quantity_non_negative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_stock_balances_reserved_non_negative"),
        CheckConstraint("reserved_quantity <= quantity", name="ck_stock_balances_reserved_le_quantity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reorder_point: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_stock: Mapped[int | None] = mapped_column(Integer, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class MovementRecord(Base):
    """Append-only stock ledger. No UPDATE or DELETE.

    A null ``from_location_id`` is an external origin (initial stock, found stock);
    a null ``to_location_id`` is an external destination (sale, write-off).
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        CheckConstraint(
            "from_location_id IS NOT NULL OR to_location_id IS NOT NULL",
            name="ck_stock_movements_has_endpoint",
        ),
        Index("ix_stock_movements_business_product", "business_id", "product_id"),
        Index("ix_stock_movements_business_created_at", "business_id", "created_at"),
        # a movement is reversed at most once
        Index("uq_stock_movements_reverses_movement_id", "reverses_movement_id", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    batch_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    from_location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    to_location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    external_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    movement_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    adjustment_category: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reverses_movement_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("stock_movements.id", ondelete="RESTRICT"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


@event.listens_for(MovementRecord, "before_update")
def _block_movement_update(mapper, connection, target: MovementRecord) -> None:
    raise LedgerImmutable(f"Movement {target.id} is immutable; append a compensating entry instead")


@event.listens_for(MovementRecord, "before_delete")
def _block_movement_delete(mapper, connection, target: MovementRecord) -> None:
    raise LedgerImmutable(f"Movement {target.id} cannot be deleted")
