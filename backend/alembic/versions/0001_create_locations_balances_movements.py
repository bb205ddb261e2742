"""create locations, stock_balances and stock_movements

Revision ID: 0001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("business_id", UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("localized_name", sa.String(255), nullable=True),
        sa.Column("kind", sa.String(20), nullable=False, server_default="retail_store"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_locations_business_id", "locations", ["business_id"], unique=False)
    op.create_unique_constraint("uq_locations_business_code", "locations", ["business_id", "code"])

    # materialized balances, written only in the same transaction as a ledger insert
    op.create_table(
        "stock_balances",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("business_id", UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", UUID(as_uuid=True), nullable=False),
        sa.Column("location_id", UUID(as_uuid=True), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reorder_point", sa.Integer(), nullable=True),
        sa.Column("max_stock", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("business_id", "product_id", "location_id", name="uq_stock_balances_key"),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_balances_quantity_non_negative"),
        sa.CheckConstraint("reserved_quantity >= 0", name="ck_stock_balances_reserved_non_negative"),
        sa.CheckConstraint("reserved_quantity <= quantity", name="ck_stock_balances_reserved_le_quantity"),
    )
    op.create_index("ix_stock_balances_product_id", "stock_balances", ["product_id"], unique=False)

    # ledger (append-only, no updated_at)
    op.create_table(
        "stock_movements",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("business_id", UUID(as_uuid=True), nullable=False),
        sa.Column("batch_id", UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", UUID(as_uuid=True), nullable=False),
        sa.Column("from_location_id", UUID(as_uuid=True), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("to_location_id", UUID(as_uuid=True), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("external_label", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("movement_kind", sa.String(20), nullable=False),
        sa.Column("adjustment_category", sa.String(30), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.String(100), nullable=True),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "reverses_movement_id", UUID(as_uuid=True),
            sa.ForeignKey("stock_movements.id", ondelete="RESTRICT"), nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        sa.CheckConstraint(
            "from_location_id IS NOT NULL OR to_location_id IS NOT NULL",
            name="ck_stock_movements_has_endpoint",
        ),
    )
    op.create_index("ix_stock_movements_business_product", "stock_movements", ["business_id", "product_id"], unique=False)
    op.create_index("ix_stock_movements_business_created_at", "stock_movements", ["business_id", "created_at"], unique=False)
    op.create_index("ix_stock_movements_batch_id", "stock_movements", ["batch_id"], unique=False)
    op.create_index("ix_stock_movements_from_location_id", "stock_movements", ["from_location_id"], unique=False)
    op.create_index("ix_stock_movements_to_location_id", "stock_movements", ["to_location_id"], unique=False)
    op.create_index("ix_stock_movements_reference_id", "stock_movements", ["reference_id"], unique=False)
    op.create_index(
        "uq_stock_movements_reverses_movement_id", "stock_movements", ["reverses_movement_id"], unique=True
    )

    # Trigger: ledger rows are immutable
    op.execute("""
        CREATE OR REPLACE FUNCTION reject_stock_movement_change()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'stock_movements is append-only: % not allowed', TG_OP;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_stock_movements_immutable
        BEFORE UPDATE OR DELETE ON stock_movements
        FOR EACH ROW EXECUTE FUNCTION reject_stock_movement_change();
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_stock_movements_immutable ON stock_movements")
    op.execute("DROP FUNCTION IF EXISTS reject_stock_movement_change()")

    op.drop_index("uq_stock_movements_reverses_movement_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_reference_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_to_location_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_from_location_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_batch_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_business_created_at", table_name="stock_movements")
    op.drop_index("ix_stock_movements_business_product", table_name="stock_movements")
    op.drop_table("stock_movements")

    op.drop_index("ix_stock_balances_product_id", table_name="stock_balances")
    op.drop_table("stock_balances")

    op.drop_constraint("uq_locations_business_code", "locations", type_="unique")
    op.drop_index("ix_locations_business_id", table_name="locations")
    op.drop_table("locations")
