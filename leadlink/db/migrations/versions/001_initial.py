"""Initial schema - users, vendors, enquiries, vendor matches, payments

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("location_latitude", sa.Float, nullable=True),
        sa.Column("location_longitude", sa.Float, nullable=True),
        sa.Column("location_address", sa.String(500), nullable=True),
        sa.Column("location_city", sa.String(120), nullable=True),
        sa.Column("location_state", sa.String(120), nullable=True),
        sa.Column("location_pincode", sa.String(20), nullable=True),
    )

    # Vendors
    op.create_table(
        "vendors",
        *_base_columns(),
        sa.Column("business_name", sa.String(500), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("mobile_number", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("state", sa.String(120), nullable=True),
        sa.Column("pincode", sa.String(20), nullable=True),
        sa.Column("business_latitude", sa.Float, nullable=True),
        sa.Column("business_longitude", sa.Float, nullable=True),
        sa.Column("keywords", postgresql.JSONB, nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("registration_status", sa.String(20), nullable=False, server_default="pending", index=True),
    )

    # Enquiries
    op.create_table(
        "enquiries",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("search_keyword", sa.String(255), nullable=False, index=True),
        sa.Column("explanation", sa.Text, nullable=False),
        sa.Column("user_location", postgresql.JSONB, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active", index=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )

    # Vendor matches (leads)
    op.create_table(
        "vendor_matches",
        *_base_columns(),
        sa.Column(
            "enquiry_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("enquiries.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False, index=True),
        sa.Column("position", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("distance_km", sa.Float, nullable=False),
        sa.Column("match_reason", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vendor_response", sa.Text, nullable=True),
        sa.Column("gateway_order_id", sa.String(64), nullable=True, index=True),
        sa.Column("payment_initiated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("enquiry_id", "vendor_id", name="uq_vendor_matches_enquiry_vendor"),
        sa.CheckConstraint("distance_km <= 10.0", name="ck_vendor_matches_radius"),
    )

    # Payments
    op.create_table(
        "payments",
        *_base_columns(),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False, index=True),
        sa.Column(
            "enquiry_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("enquiries.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("gateway_order_id", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column("gateway_payment_id", sa.String(64), nullable=True),
        sa.Column("signature", sa.String(128), nullable=True),
        sa.Column("receipt", sa.String(64), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("payment_method", sa.String(30), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", postgresql.JSONB, nullable=True),
    )


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("vendor_matches")
    op.drop_table("enquiries")
    op.drop_table("vendors")
    op.drop_table("users")
