"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute(sa.text("ALTER TABLE alembic_version ALTER COLUMN version_num TYPE VARCHAR(64)"))

    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("phone", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=True),
            sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("wallet_balance", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("users")
    if "ix_users_id" not in idxs:
        op.create_index("ix_users_id", "users", ["id"])
    if "ix_users_email" not in idxs:
        op.create_index("ix_users_email", "users", ["email"], unique=True)
    if "ix_users_role" not in idxs:
        op.create_index("ix_users_role", "users", ["role"])

    if "properties" not in existing_tables:
        op.create_table(
            "properties",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("agent_id", sa.String(), nullable=True),
            sa.Column("title", sa.String(), nullable=True),
            sa.Column("location", sa.String(), nullable=True),
            sa.Column("price", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("properties")
    if "ix_properties_id" not in idxs:
        op.create_index("ix_properties_id", "properties", ["id"])
    if "ix_properties_agent_id" not in idxs:
        op.create_index("ix_properties_agent_id", "properties", ["agent_id"])
    if "ix_properties_status" not in idxs:
        op.create_index("ix_properties_status", "properties", ["status"])

    if "interests" not in existing_tables:
        op.create_table(
            "interests",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("property_id", sa.String(), nullable=True),
            sa.Column("seeker_id", sa.String(), nullable=True),
            sa.Column("seeker_name", sa.String(), nullable=True),
            sa.Column("seeker_phone", sa.String(), nullable=True),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("seriousness_score", sa.Integer(), nullable=True),
            sa.Column("unlocked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("property_id", "seeker_id", name="uq_interests_property_seeker"),
        )
    idxs = existing_indexes("interests")
    if "ix_interests_id" not in idxs:
        op.create_index("ix_interests_id", "interests", ["id"])
    if "ix_interests_property_id" not in idxs:
        op.create_index("ix_interests_property_id", "interests", ["property_id"])
    if "ix_interests_seeker_id" not in idxs:
        op.create_index("ix_interests_seeker_id", "interests", ["seeker_id"])
    if "ix_interests_status" not in idxs:
        op.create_index("ix_interests_status", "interests", ["status"])

    if "credit_bundles" not in existing_tables:
        op.create_table(
            "credit_bundles",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("credits", sa.Integer(), nullable=False),
            sa.Column("bonus", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("price", sa.Integer(), nullable=False),
            sa.Column("popular", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    if "ix_credit_bundles_id" not in existing_indexes("credit_bundles"):
        op.create_index("ix_credit_bundles_id", "credit_bundles", ["id"])

    if "transactions" not in existing_tables:
        op.create_table(
            "transactions",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("type", sa.String(), nullable=True),
            sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("credits", sa.Integer(), nullable=True),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("gateway", sa.String(), nullable=True),
            sa.Column("reference", sa.String(), nullable=True),
            sa.Column("bundle_id", sa.String(), nullable=True),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        )
    idxs = existing_indexes("transactions")
    if "ix_transactions_id" not in idxs:
        op.create_index("ix_transactions_id", "transactions", ["id"])
    if "ix_transactions_user_id" not in idxs:
        op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    if "ix_transactions_type" not in idxs:
        op.create_index("ix_transactions_type", "transactions", ["type"])
    if "ix_transactions_status" not in idxs:
        op.create_index("ix_transactions_status", "transactions", ["status"])
    if "ix_transactions_reference" not in idxs:
        op.create_index("ix_transactions_reference", "transactions", ["reference"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=True),
            sa.Column("title", sa.String(), nullable=True),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("type", sa.String(), nullable=True),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("notifications")
    if "ix_notifications_id" not in idxs:
        op.create_index("ix_notifications_id", "notifications", ["id"])
    if "ix_notifications_user_id" not in idxs:
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_index("ix_notifications_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_transactions_reference", table_name="transactions")
    op.drop_index("ix_transactions_status", table_name="transactions")
    op.drop_index("ix_transactions_type", table_name="transactions")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_index("ix_transactions_id", table_name="transactions")
    op.drop_table("transactions")

    op.drop_index("ix_credit_bundles_id", table_name="credit_bundles")
    op.drop_table("credit_bundles")

    op.drop_index("ix_interests_status", table_name="interests")
    op.drop_index("ix_interests_seeker_id", table_name="interests")
    op.drop_index("ix_interests_property_id", table_name="interests")
    op.drop_index("ix_interests_id", table_name="interests")
    op.drop_table("interests")

    op.drop_index("ix_properties_status", table_name="properties")
    op.drop_index("ix_properties_agent_id", table_name="properties")
    op.drop_index("ix_properties_id", table_name="properties")
    op.drop_table("properties")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
