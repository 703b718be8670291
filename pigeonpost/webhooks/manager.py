"""Webhook registration management service."""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import datetime
from secrets import token_urlsafe
from typing import Any, Protocol, cast
from urllib.parse import urlparse
from uuid import UUID, uuid4

from pigeonpost.webhooks.catalog import generate_payload_template
from pigeonpost.webhooks.persistence.models import WebhookRegistrationModel
from pigeonpost.webhooks.template import TemplateCompiler
from pigeonpost.webhooks.types import (
    DIRECTIONS,
    HTTP_METHODS,
    Direction,
    HeaderPair,
    HttpMethod,
    RegistrationConfig,
    RegistrationFilter,
    ValidationError,
    ValidationResult,
    WebhookRegistration,
    utcnow,
)

_TOKEN_ATTEMPTS = 5
_HEADER_NAME = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")
_HEADER_VALUE = re.compile(r"[\t\x20-\x7e]*")


class RegistrationRepositoryProtocol(Protocol):
    """Repository protocol used by RegistrationManager."""

    async def create(self, registration: WebhookRegistrationModel) -> WebhookRegistrationModel: ...

    async def get(self, registration_id: UUID) -> WebhookRegistrationModel | None: ...

    async def get_by_token(self, endpoint_token: str) -> WebhookRegistrationModel | None: ...

    async def list(
        self,
        *,
        account_id: str,
        direction: str | None = None,
        is_active: bool | None = None,
    ) -> list[WebhookRegistrationModel]: ...

    async def find_by_event(self, *, account_id: str, event_name: str, direction: str) -> list[WebhookRegistrationModel]: ...

    async def update(self, registration: WebhookRegistrationModel) -> WebhookRegistrationModel: ...

    async def delete(self, registration_id: UUID) -> bool: ...

    async def touch(self, registration_id: UUID, at: datetime) -> bool: ...


class RegistrationManager:
    """Create and maintain webhook registrations with save-time validation.

    Also serves as the registration lookup for the dispatcher and the
    inbound router.
    """

    def __init__(
        self,
        repository: RegistrationRepositoryProtocol,
        *,
        compiler: TemplateCompiler | None = None,
        incoming_base_path: str = "/webhooks/incoming",
        token_bytes: int = 24,
    ) -> None:
        self._repository = repository
        self._compiler = compiler if compiler is not None else TemplateCompiler()
        base = incoming_base_path.strip("/")
        self._incoming_base_path = f"/{base}" if base else ""
        self._token_bytes = token_bytes

    async def create(self, config: RegistrationConfig, *, account_id: str = "default") -> WebhookRegistration:
        config = self._prepare(config)
        validation = self.validate(config)
        if not validation.valid:
            assert validation.error is not None
            raise ValueError(validation.error.message)

        now = utcnow()
        model = WebhookRegistrationModel(
            id=uuid4(),
            account_id=account_id,
            direction=config.direction,
            created_at=now,
            updated_at=now,
            endpoint_token=(await self._allocate_token() if config.direction == "incoming" else None),
        )
        _apply_config(model, config)
        created = await self._repository.create(model)
        return self._to_registration(created)

    async def get(self, registration_id: str) -> WebhookRegistration | None:
        parsed = _parse_id(registration_id)
        if parsed is None:
            return None
        model = await self._repository.get(parsed)
        return None if model is None else self._to_registration(model)

    async def update(self, registration_id: str, config: RegistrationConfig) -> WebhookRegistration:
        parsed = _parse_id(registration_id)
        model = None if parsed is None else await self._repository.get(parsed)
        if model is None:
            raise KeyError(f"Registration not found: {registration_id}")
        if config.direction != model.direction:
            raise ValueError("direction cannot be changed after creation")
        config = self._prepare(config)
        validation = self.validate(config)
        if not validation.valid:
            assert validation.error is not None
            raise ValueError(validation.error.message)
        _apply_config(model, config)
        model.updated_at = utcnow()
        updated = await self._repository.update(model)
        return self._to_registration(updated)

    async def delete(self, registration_id: str) -> None:
        parsed = _parse_id(registration_id)
        if parsed is None or not await self._repository.delete(parsed):
            raise KeyError(f"Registration not found: {registration_id}")

    async def list(self, registration_filter: RegistrationFilter | None = None) -> list[WebhookRegistration]:
        filter_obj = registration_filter if registration_filter is not None else RegistrationFilter()
        items = await self._repository.list(
            account_id=filter_obj.account_id,
            direction=filter_obj.direction,
            is_active=filter_obj.is_active,
        )
        return [self._to_registration(item) for item in items]

    async def find_by_event(self, *, account_id: str, event_name: str, direction: str) -> list[WebhookRegistration]:
        items = await self._repository.find_by_event(account_id=account_id, event_name=event_name, direction=direction)
        return [self._to_registration(item) for item in items]

    async def find_by_token(self, endpoint_token: str) -> WebhookRegistration | None:
        model = await self._repository.get_by_token(endpoint_token)
        return None if model is None else self._to_registration(model)

    async def touch(self, registration_id: str, at: datetime) -> bool:
        parsed = _parse_id(registration_id)
        if parsed is None:
            return False
        return await self._repository.touch(parsed, at)

    @property
    def incoming_base_path(self) -> str:
        """Path prefix of inbound endpoints, with a leading slash and no trailing one."""
        return self._incoming_base_path

    def incoming_path(self, registration: WebhookRegistration) -> str | None:
        if registration.direction != "incoming" or not registration.endpoint_token:
            return None
        return f"{self._incoming_base_path}/{registration.provider}/{registration.endpoint_token}"

    def validate(self, config: RegistrationConfig) -> ValidationResult:
        if not config.name.strip():
            return _invalid("name is required")
        if config.direction not in DIRECTIONS:
            return _invalid(f"direction must be one of {sorted(DIRECTIONS)}")
        if config.direction == "incoming":
            if not config.provider.strip() or "/" in config.provider:
                return _invalid("provider must be a non-empty path segment")
            return ValidationResult(valid=True)
        if not (config.trigger_event and config.trigger_event.strip()):
            return _invalid("trigger_event is required for outgoing webhooks")
        if not _is_http_url(config.target_url):
            return _invalid("target_url must be an absolute http(s) URL")
        if config.http_method.upper() not in HTTP_METHODS:
            return _invalid(f"http_method must be one of {sorted(HTTP_METHODS)}")
        if any(not _HEADER_NAME.fullmatch(header.name) for header in config.headers):
            return _invalid("header names must be non-empty HTTP tokens")
        if any(not _HEADER_VALUE.fullmatch(header.value) for header in config.headers):
            return _invalid("header values must be printable ASCII")
        template_check = self._compiler.validate(config.payload_template)
        if not template_check.valid:
            return template_check
        return ValidationResult(valid=True)

    async def _allocate_token(self) -> str:
        for _ in range(_TOKEN_ATTEMPTS):
            token = token_urlsafe(self._token_bytes)
            if await self._repository.get_by_token(token) is None:
                return token
        raise RuntimeError("could not allocate a unique endpoint token")

    @staticmethod
    def _prepare(config: RegistrationConfig) -> RegistrationConfig:
        """Normalized copy of user input, ready for validation."""
        config = replace(
            config,
            selected_fields=list(dict.fromkeys(config.selected_fields)),
            headers=list(config.headers),
            http_method=config.http_method.upper(),
        )
        if config.secret_key is not None and not config.secret_key.strip():
            config.secret_key = None
        if config.payload_template is not None and not config.payload_template.strip():
            config.payload_template = None
        if config.direction == "outgoing" and config.payload_template is None and config.selected_fields:
            config.payload_template = generate_payload_template(config.selected_fields)
        return config

    @staticmethod
    def _to_registration(model: WebhookRegistrationModel) -> WebhookRegistration:
        return WebhookRegistration(
            id=str(model.id),
            direction=_normalize_direction(model.direction),
            name=model.name,
            account_id=model.account_id,
            description=model.description,
            provider=model.provider or "custom",
            is_active=bool(model.is_active),
            last_triggered=model.last_triggered,
            created_at=model.created_at,
            updated_at=model.updated_at,
            endpoint_token=model.endpoint_token,
            secret_key=model.secret_key,
            event_handling=list(model.event_handling or []),
            notification_email=model.notification_email,
            trigger_event=model.trigger_event,
            target_url=model.target_url,
            http_method=_normalize_http_method(model.http_method),
            headers=[_to_header(item) for item in (model.headers or [])],
            selected_fields=list(model.selected_fields or []),
            payload_template=model.payload_template,
        )


def _apply_config(model: WebhookRegistrationModel, config: RegistrationConfig) -> None:
    model.name = config.name.strip()
    model.description = config.description
    model.provider = config.provider.strip() or "custom"
    model.is_active = config.is_active
    if config.direction == "incoming":
        model.secret_key = config.secret_key
        model.event_handling = list(config.event_handling)
        model.notification_email = config.notification_email
        model.trigger_event = None
        model.target_url = None
        model.http_method = "POST"
        model.headers = []
        model.selected_fields = []
        model.payload_template = None
        return
    model.secret_key = None
    model.event_handling = []
    model.notification_email = None
    model.trigger_event = (config.trigger_event or "").strip()
    model.target_url = config.target_url
    model.http_method = config.http_method
    model.headers = [{"name": header.name, "value": header.value} for header in config.headers]
    model.selected_fields = list(config.selected_fields)
    model.payload_template = config.payload_template


def _invalid(message: str) -> ValidationResult:
    return ValidationResult(valid=False, error=ValidationError(code="INVALID_CONFIG", message=message, status_code=400))


def _is_http_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _parse_id(value: str) -> UUID | None:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _to_header(item: Any) -> HeaderPair:
    if isinstance(item, dict):
        # rows written by older clients use "key" for the header name
        name = item.get("name", item.get("key", ""))
        return HeaderPair(name=str(name), value=str(item.get("value", "")))
    return HeaderPair(name=str(item))


def _normalize_direction(value: object) -> Direction:
    normalized = str(value)
    if normalized not in DIRECTIONS:
        raise ValueError(f"unknown registration direction: {normalized}")
    return cast(Direction, normalized)


def _normalize_http_method(value: object) -> HttpMethod:
    normalized = str(value or "POST").upper()
    if normalized not in HTTP_METHODS:
        return "POST"
    return cast(HttpMethod, normalized)
