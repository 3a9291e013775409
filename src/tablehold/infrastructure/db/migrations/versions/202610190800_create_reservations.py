"""create reservations and the hold expiry function

Revision ID: 202610190800
Revises: 202610190700
Create Date: 2026-10-19 08:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "202610190800"
down_revision = "202610190700"
branch_labels = None
depends_on = None

EXPIRE_FUNCTION = """
CREATE OR REPLACE FUNCTION expire_tentative_reservations()
RETURNS SETOF text
LANGUAGE plpgsql
AS $$
BEGIN
    RETURN QUERY
    UPDATE reservations
       SET status = 'expired',
           updated_at = now()
     WHERE status = 'tentative'
       AND expires_at IS NOT NULL
       AND expires_at < now()
    RETURNING id::text;
END;
$$;
"""


def upgrade() -> None:
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("restaurant_id", sa.String(length=50), nullable=False),
        sa.Column("table_id", sa.String(length=50), nullable=True),
        sa.Column("user_id", sa.String(length=50), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_phone", sa.String(length=50), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("reservation_date", sa.Date(), nullable=False),
        sa.Column("reservation_time", sa.Time(), nullable=False),
        sa.Column("special_requests", sa.String(length=1000), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrival_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("has_pre_order", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("kitchen_notified", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("party_size >= 1", name="ck_reservations_party_size_positive"),
        sa.ForeignKeyConstraint(["restaurant_id"], ["restaurants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["table_id"], ["tables.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_reference", name="uq_reservations_payment_reference"),
    )
    op.create_index(
        "ix_reservations_table_date_status",
        "reservations",
        ["table_id", "reservation_date", "status"],
        unique=False,
    )
    op.create_index(
        "ix_reservations_restaurant_date",
        "reservations",
        ["restaurant_id", "reservation_date"],
        unique=False,
    )
    op.create_index(
        "ix_reservations_status_expires_at",
        "reservations",
        ["status", "expires_at"],
        unique=False,
    )
    op.execute(EXPIRE_FUNCTION)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS expire_tentative_reservations()")
    op.drop_index("ix_reservations_status_expires_at", table_name="reservations")
    op.drop_index("ix_reservations_restaurant_date", table_name="reservations")
    op.drop_index("ix_reservations_table_date_status", table_name="reservations")
    op.drop_table("reservations")
