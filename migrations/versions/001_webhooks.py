"""Create webhook registration and error log tables.

Revision ID: 001_webhooks
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001_webhooks"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "webhook_registrations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("account_id", sa.String(64), nullable=False, server_default="default"),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("provider", sa.String(64), nullable=False, server_default="custom"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_triggered", sa.DateTime(timezone=True), nullable=True),
        sa.Column("endpoint_token", sa.String(255), nullable=True),
        sa.Column("secret_key", sa.String(255), nullable=True),
        sa.Column("event_handling", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("notification_email", sa.String(320), nullable=True),
        sa.Column("trigger_event", sa.String(128), nullable=True),
        sa.Column("target_url", sa.Text(), nullable=True),
        sa.Column("http_method", sa.String(10), nullable=False, server_default="POST"),
        sa.Column("headers", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("selected_fields", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("payload_template", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("direction IN ('incoming', 'outgoing')", name="ck_webhook_registrations_direction"),
        sa.UniqueConstraint("endpoint_token", name="uq_webhook_registrations_endpoint_token"),
    )
    op.create_index(
        "idx_webhook_registrations_account_direction", "webhook_registrations", ["account_id", "direction"]
    )
    op.create_index(
        "idx_webhook_registrations_account_trigger", "webhook_registrations", ["account_id", "trigger_event"]
    )
    op.create_index(op.f("ix_webhook_registrations_account_id"), "webhook_registrations", ["account_id"])

    op.create_table(
        "error_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("account_id", sa.String(64), nullable=False, server_default="default"),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("context", sa.String(255), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=False),
        sa.Column("stack_trace", sa.Text(), nullable=True),
        sa.Column("payload", JSONB, nullable=True),
    )
    op.create_index("idx_error_logs_account_timestamp", "error_logs", ["account_id", "timestamp"])
    op.create_index(op.f("ix_error_logs_account_id"), "error_logs", ["account_id"])


def downgrade() -> None:
    op.drop_index(op.f("ix_error_logs_account_id"), table_name="error_logs")
    op.drop_index("idx_error_logs_account_timestamp", table_name="error_logs")
    op.drop_table("error_logs")

    op.drop_index(op.f("ix_webhook_registrations_account_id"), table_name="webhook_registrations")
    op.drop_index("idx_webhook_registrations_account_trigger", table_name="webhook_registrations")
    op.drop_index("idx_webhook_registrations_account_direction", table_name="webhook_registrations")
    op.drop_table("webhook_registrations")
