"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates the tables used by the lifecycle engine:
- Properties and rooms
- Reservations and status history
- Business rules
"""

from typing import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all database tables."""

    # ==================== PROPERTIES ====================
    op.create_table(
        "properties",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("timezone", sa.String(50), default="UTC"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "property_id",
            sa.String(36),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False, default=2),
    )

    # ==================== RESERVATIONS ====================
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("organization_id", sa.String(36), nullable=False, index=True),
        sa.Column("property_id", sa.String(36), nullable=False, index=True),
        sa.Column(
            "room_id",
            sa.String(36),
            sa.ForeignKey("rooms.id", ondelete="SET NULL"),
            index=True,
        ),
        sa.Column("status", sa.String(30), nullable=False, default="CONFIRMATION_PENDING", index=True),
        sa.Column("guest_name", sa.String(200)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(30)),
        sa.Column("guest_type", sa.String(30)),
        sa.Column("booking_source", sa.String(30)),
        sa.Column("adults", sa.Integer, default=1),
        sa.Column("children", sa.Integer, default=0),
        sa.Column("check_in", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("check_out", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("payment_status", sa.String(20), nullable=False, default="UNPAID"),
        sa.Column("amount_captured", sa.Numeric(12, 2)),
        sa.Column("paid_amount", sa.Numeric(12, 2)),
        sa.Column("deposit_amount", sa.Numeric(12, 2)),
        sa.Column("total_amount", sa.Numeric(12, 2)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index(
        "ix_reservations_room_stay",
        "reservations",
        ["room_id", "check_in", "check_out"],
    )

    op.create_table(
        "reservation_status_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("previous_status", sa.String(30)),
        sa.Column("new_status", sa.String(30), nullable=False),
        sa.Column("changed_by", sa.String(36)),
        sa.Column("change_reason", sa.Text),
        sa.Column("is_automatic", sa.Boolean, default=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
    )

    # ==================== BUSINESS RULES ====================
    op.create_table(
        "status_business_rules",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("organization_id", sa.String(36), nullable=False, index=True),
        sa.Column("property_id", sa.String(36), index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, default=""),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("priority", sa.Integer, default=0),
        sa.Column("is_active", sa.Boolean, default=True),
        sa.Column("conditions", sa.JSON, nullable=False),
        sa.Column("actions", sa.JSON, nullable=False),
        sa.Column("metadata", sa.JSON),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("status_business_rules")
    op.drop_table("reservation_status_history")
    op.drop_index("ix_reservations_room_stay", table_name="reservations")
    op.drop_table("reservations")
    op.drop_table("rooms")
    op.drop_table("properties")
