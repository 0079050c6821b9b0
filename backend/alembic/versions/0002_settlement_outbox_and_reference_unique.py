"""settlement: unique gateway reference and notification outbox

Revision ID: 0002_settlement_outbox_and_reference_unique
Revises: 0001_init
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_settlement_outbox_and_reference_unique"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    from sqlalchemy import inspect as sa_inspect
    inspector = sa_inspect(op.get_bind())
    existing_tables = set(inspector.get_table_names())

    existing_uniques = {uc["name"] for uc in inspector.get_unique_constraints("transactions")}
    if "uq_transactions_gateway_reference" not in existing_uniques:
        with op.batch_alter_table("transactions") as batch_op:
            batch_op.create_unique_constraint("uq_transactions_gateway_reference", ["gateway", "reference"])

    if "notification_outbox" not in existing_tables:
        op.create_table(
            "notification_outbox",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("title", sa.String(), nullable=True),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("type", sa.String(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("notification_id", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_notification_outbox_id", "notification_outbox", ["id"])
        op.create_index("ix_notification_outbox_user_id", "notification_outbox", ["user_id"])
        op.create_index("ix_notification_outbox_status", "notification_outbox", ["status"])


def downgrade() -> None:
    op.drop_index("ix_notification_outbox_status", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_user_id", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_id", table_name="notification_outbox")
    op.drop_table("notification_outbox")

    with op.batch_alter_table("transactions") as batch_op:
        batch_op.drop_constraint("uq_transactions_gateway_reference", type_="unique")
