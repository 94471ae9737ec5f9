"""initial inventory schema

Revision ID: 5f2a9c1d7e30
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5f2a9c1d7e30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLE = sa.Enum("admin", "user", name="role")
MOVEMENT_KIND = sa.Enum("inflow", "outflow", name="movement_kind")


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("role", ROLE, nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "equipment",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("serial_number", sa.String(128), nullable=False),
        sa.Column(
            "category_id",
            sa.BigInteger,
            sa.ForeignKey("categories.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("acquisition_date", sa.Date, nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("serial_number", name="uq_equipment_serial_number"),
        sa.CheckConstraint("quantity >= 0", name="ck_equipment_quantity_nonneg"),
    )
    op.create_index("ix_equipment_category_id", "equipment", ["category_id"])

    # equipment_id sans FK : l'historique survit à la suppression
    op.create_table(
        "movements",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("equipment_id", sa.BigInteger, nullable=False),
        sa.Column("kind", MOVEMENT_KIND, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("happened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("stock_applied_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_movement_qty_pos"),
    )
    op.create_index("ix_movements_equipment_id", "movements", ["equipment_id"])
    op.create_index("ix_movements_equipment_time", "movements", ["equipment_id", "happened_at"])

    op.create_table(
        "orders",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("manufacturer", sa.String(255), nullable=False),
        sa.Column("acquisition_date", sa.Date, nullable=False),
        sa.Column("tracking_code", sa.String(128)),
        sa.Column(
            "created_by",
            sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_orders_tracking_code", "orders", ["tracking_code"])


def downgrade() -> None:
    op.drop_index("ix_orders_tracking_code", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_movements_equipment_time", table_name="movements")
    op.drop_index("ix_movements_equipment_id", table_name="movements")
    op.drop_table("movements")
    op.drop_index("ix_equipment_category_id", table_name="equipment")
    op.drop_table("equipment")
    op.drop_table("categories")
    op.drop_table("profiles")
    MOVEMENT_KIND.drop(op.get_bind(), checkfirst=True)
    ROLE.drop(op.get_bind(), checkfirst=True)
