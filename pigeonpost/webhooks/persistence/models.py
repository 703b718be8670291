"""ORM models for webhook persistence."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from pigeonpost.db import Base


class WebhookRegistrationModel(Base):
    """Incoming or outgoing webhook registration."""

    __tablename__ = "webhook_registrations"
    __table_args__ = (
        Index("idx_webhook_registrations_account_direction", "account_id", "direction"),
        Index("idx_webhook_registrations_account_trigger", "account_id", "trigger_event"),
    )

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider: Mapped[str] = mapped_column(String(64), nullable=False, default="custom")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_triggered: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    endpoint_token: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    secret_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_handling: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    notification_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    trigger_event: Mapped[str | None] = mapped_column(String(128), nullable=True)
    target_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    http_method: Mapped[str] = mapped_column(String(10), nullable=False, default="POST")
    headers: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    selected_fields: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    payload_template: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ErrorLogModel(Base):
    """Failures recorded by the webhook core for later debugging."""

    __tablename__ = "error_logs"
    __table_args__ = (Index("idx_error_logs_account_timestamp", "account_id", "timestamp"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    context: Mapped[str] = mapped_column(String(255), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    stack_trace: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
