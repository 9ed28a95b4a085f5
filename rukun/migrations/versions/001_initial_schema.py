"""Initial schema: users, iuran, pengeluaran, events, settings and inventory.

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-08-01 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ROLE = sa.Enum("ADMIN", "RT", "RW", "BENDAHARA", "SEKRETARIS", "SATPAM", "WARGA", name="role")
USER_STATUS = sa.Enum("ACTIVE", "INACTIVE", "AWAY", name="userstatus")
IURAN_STATUS = sa.Enum("UNPAID", "PENDING", "PAID", "REJECTED", name="iuranstatus")
IURAN_TYPE = sa.Enum("REGULAR", "CUSTOM", name="iurantype")
EVENT_STATUS = sa.Enum("PLANNING", "ACTIVE", "COMPLETED", name="eventstatus")
EXPENSE_CATEGORY = sa.Enum("HIBURAN", "LOMBA", "KONSUMSI", "LAINNYA", name="expensecategory")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("position", sa.String(length=100), nullable=True),
        sa.Column("phone_number", sa.String(length=15), nullable=True),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("push_token", sa.String(length=255), nullable=True, comment="Expo push token"),
        sa.Column("status", USER_STATUS, nullable=False),
        sa.Column("status_note", sa.String(length=500), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("username"),
        sa.Index("idx_user_role", "role"),
        sa.Index("idx_user_status_deleted", "status", "is_deleted"),
    )

    op.create_table(
        "iurans",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(length=7), nullable=False, comment="Period key YYYY-MM"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", IURAN_STATUS, nullable=False),
        sa.Column("type", IURAN_TYPE, nullable=False),
        sa.Column(
            "description", sa.String(length=255), nullable=True, comment="Purpose of a custom levy"
        ),
        sa.Column("proof_image_url", sa.String(length=500), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_by_id", sa.Integer(), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("recorded_by_id", sa.Integer(), nullable=True),
        sa.Column(
            "is_imported",
            sa.Boolean(),
            nullable=False,
            server_default="0",
            comment="Back-filled from spreadsheet import; excluded from balance income",
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["confirmed_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["recorded_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_iurans_user_id", "user_id"),
        sa.Index("ix_iurans_period", "period"),
        sa.Index("ix_iurans_status", "status"),
        # Not unique: regular/custom records may share a period
        sa.Index("idx_iuran_user_period", "user_id", "period"),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_donations", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_expenses", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column(
            "balance",
            sa.Numeric(12, 2),
            nullable=False,
            server_default="0",
            comment="Positive = surplus, negative = deficit",
        ),
        sa.Column("status", EVENT_STATUS, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_events_slug", "slug", unique=True),
        sa.Index("ix_events_status", "status"),
    )

    op.create_table(
        "event_donations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("donor_name", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_event_donations_event_id", "event_id"),
    )

    op.create_table(
        "event_expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("category", EXPENSE_CATEGORY, nullable=False),
        sa.Column("proof_image_urls", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_event_expenses_event_id", "event_id"),
    )

    op.create_table(
        "pengeluaran",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("event_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_pengeluaran_slug", "slug", unique=True),
        sa.Index("ix_pengeluaran_event_id", "event_id"),
    )

    op.create_table(
        "pengeluaran_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("pengeluaran_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pengeluaran_id"], ["pengeluaran.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_pengeluaran_items_pengeluaran_id", "pengeluaran_id"),
    )

    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_settings_key", "key", unique=True),
    )

    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_quantity"),
    )


def downgrade() -> None:
    op.drop_table("inventory")
    op.drop_table("settings")
    op.drop_table("pengeluaran_items")
    op.drop_table("pengeluaran")
    op.drop_table("event_expenses")
    op.drop_table("event_donations")
    op.drop_table("events")
    op.drop_table("iurans")
    op.drop_table("users")
    for enum in (EXPENSE_CATEGORY, EVENT_STATUS, IURAN_TYPE, IURAN_STATUS, USER_STATUS, ROLE):
        enum.drop(op.get_bind(), checkfirst=True)
