"""Webhook data models shared by the compiler, dispatcher, router and stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Direction = Literal["incoming", "outgoing"]
HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]

DIRECTIONS: frozenset[str] = frozenset({"incoming", "outgoing"})
HTTP_METHODS: frozenset[str] = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH"})
SECRET_HEADER = "X-Webhook-Secret"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class HeaderPair:
    """One configured outbound header; registrations keep these in order."""

    name: str
    value: str = ""


@dataclass(slots=True)
class WebhookRegistration:
    """Stored configuration of one inbound or outbound webhook relationship."""

    id: str
    direction: Direction
    name: str
    account_id: str = "default"
    description: str | None = None
    provider: str = "custom"
    is_active: bool = True
    last_triggered: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    # incoming
    endpoint_token: str | None = None
    secret_key: str | None = None
    event_handling: list[str] = field(default_factory=list)
    notification_email: str | None = None
    # outgoing
    trigger_event: str | None = None
    target_url: str | None = None
    http_method: HttpMethod = "POST"
    headers: list[HeaderPair] = field(default_factory=list)
    selected_fields: list[str] = field(default_factory=list)
    payload_template: str | None = None


@dataclass(slots=True)
class RegistrationConfig:
    """User-editable registration fields accepted by RegistrationManager."""

    name: str
    direction: Direction
    provider: str = "custom"
    description: str | None = None
    is_active: bool = True
    secret_key: str | None = None
    event_handling: list[str] = field(default_factory=list)
    notification_email: str | None = None
    trigger_event: str | None = None
    target_url: str | None = None
    http_method: str = "POST"
    headers: list[HeaderPair] = field(default_factory=list)
    selected_fields: list[str] = field(default_factory=list)
    payload_template: str | None = None


@dataclass(slots=True)
class RegistrationFilter:
    """Filter options for listing registrations."""

    account_id: str = "default"
    direction: Direction | None = None
    is_active: bool | None = None


@dataclass(slots=True)
class DomainEvent:
    """An internal occurrence plus a snapshot of the affected record's fields."""

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    account_id: str = "default"
    occurred_at: datetime = field(default_factory=utcnow)
    entity: str = "contact"

    @property
    def tags(self) -> list[Any]:
        tags = self.data.get("tags")
        return list(tags) if isinstance(tags, (list, tuple)) else []


@dataclass(slots=True)
class DeliveryOutcome:
    """Result of one outbound HTTP call."""

    ok: bool
    status_code: int | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass(slots=True)
class DeliveryAttempt:
    """One outbound call made for a single registration and event."""

    registration_id: str
    event_name: str
    method: str
    url: str
    headers: list[tuple[str, str]]
    body: bytes
    outcome: DeliveryOutcome
    attempted_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class DispatchResult:
    """Per-registration outcome reported by OutboundDispatcher."""

    registration_id: str
    ok: bool
    attempt: DeliveryAttempt | None = None
    error: str | None = None


@dataclass(slots=True)
class InboundDecision:
    """Acceptance or rejection of one inbound callback."""

    status_code: Literal[200, 401, 403, 404]
    message: str
    registration_id: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status_code == 200


@dataclass(slots=True)
class ValidationError:
    """Structured validation error for HTTP response mapping."""

    code: str
    message: str
    status_code: int | None = None
    details: dict[str, Any] | None = None


@dataclass(slots=True)
class ValidationResult:
    """Validation output with optional error details."""

    valid: bool
    error: ValidationError | None = None


@dataclass(slots=True)
class ErrorLogEntry:
    """One recorded failure with debugging context."""

    id: str
    context: str
    error_message: str
    timestamp: datetime = field(default_factory=utcnow)
    stack_trace: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    account_id: str = "default"
