"""Link forked pengeluaran back to the event expense they came from.

Revision ID: 002_pengeluaran_event_expense
Revises: 001_initial_schema
Create Date: 2025-09-15 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "002_pengeluaran_event_expense"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("pengeluaran") as batch_op:
        batch_op.add_column(sa.Column("event_expense_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            "fk_pengeluaran_event_expense_id",
            "event_expenses",
            ["event_expense_id"],
            ["id"],
            ondelete="SET NULL",
        )
        batch_op.create_index("ix_pengeluaran_event_expense_id", ["event_expense_id"])


def downgrade() -> None:
    with op.batch_alter_table("pengeluaran") as batch_op:
        batch_op.drop_index("ix_pengeluaran_event_expense_id")
        batch_op.drop_constraint("fk_pengeluaran_event_expense_id", type_="foreignkey")
        batch_op.drop_column("event_expense_id")
