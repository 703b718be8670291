"""FastAPI surface for inbound callbacks and webhook registration management."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from pigeonpost.webhooks.catalog import catalog_document
from pigeonpost.webhooks.dispatcher import OutboundDispatcher
from pigeonpost.webhooks.inbound import InboundRouter
from pigeonpost.webhooks.manager import RegistrationManager
from pigeonpost.webhooks.types import (
    DomainEvent,
    HeaderPair,
    RegistrationConfig,
    RegistrationFilter,
    ValidationError,
    WebhookRegistration,
)

logger = logging.getLogger(__name__)

SAMPLE_CONTACT: dict[str, Any] = {
    "id": 0,
    "email": "test@example.com",
    "name": "Test Contact",
    "tags": ["test"],
}


@dataclass(slots=True)
class HttpGatewayConfig:
    """Configuration for the webhook HTTP surface."""

    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    default_account_id: str = "default"


class HeaderPayload(BaseModel):
    name: str
    value: str = ""


class RegistrationPayload(BaseModel):
    """Request body for creating or replacing a registration."""

    name: str
    direction: Literal["incoming", "outgoing"] | None = None
    provider: str = "custom"
    description: str | None = None
    is_active: bool = True
    secret_key: str | None = None
    event_handling: list[str] = Field(default_factory=list)
    notification_email: str | None = None
    trigger_event: str | None = None
    target_url: str | None = None
    http_method: str = "POST"
    headers: list[HeaderPayload] = Field(default_factory=list)
    selected_fields: list[str] = Field(default_factory=list)
    payload_template: str | None = None

    def to_config(self, direction: str) -> RegistrationConfig:
        return RegistrationConfig(
            name=self.name,
            direction=direction,  # type: ignore[arg-type]
            provider=self.provider,
            description=self.description,
            is_active=self.is_active,
            secret_key=self.secret_key,
            event_handling=list(self.event_handling),
            notification_email=self.notification_email,
            trigger_event=self.trigger_event,
            target_url=self.target_url,
            http_method=self.http_method,
            headers=[HeaderPair(name=item.name, value=item.value) for item in self.headers],
            selected_fields=list(self.selected_fields),
            payload_template=self.payload_template,
        )


def create_webhook_app(
    *,
    manager: RegistrationManager,
    router: InboundRouter,
    dispatcher: OutboundDispatcher,
    config: HttpGatewayConfig | None = None,
    lifespan: Any | None = None,
) -> FastAPI:
    """Create FastAPI app bound to webhook services."""

    cfg = config or HttpGatewayConfig()
    app = FastAPI(title="PigeonPost Webhooks", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _request_id_middleware(request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    @app.post(manager.incoming_base_path + "/{provider}/{token}")
    async def receive_incoming(provider: str, token: str, request: Request) -> JSONResponse:
        body = _decode_body(await request.body())
        decision = await router.receive(provider, token, request.headers, body)
        return JSONResponse(
            status_code=decision.status_code,
            content={"success": decision.accepted, "message": decision.message},
        )

    @app.get("/webhooks/catalog")
    async def get_catalog() -> JSONResponse:
        return JSONResponse(status_code=200, content=catalog_document())

    @app.get("/webhooks")
    async def list_registrations(
        account_id: str | None = None,
        direction: Literal["incoming", "outgoing"] | None = None,
    ) -> JSONResponse:
        items = await manager.list(
            RegistrationFilter(account_id=account_id or cfg.default_account_id, direction=direction)
        )
        return JSONResponse(status_code=200, content={"items": [_serialize(manager, item) for item in items]})

    @app.get("/webhooks/{registration_id}")
    async def get_registration(registration_id: str, request: Request) -> JSONResponse:
        registration = await manager.get(registration_id)
        if registration is None:
            return _not_found(request)
        return JSONResponse(status_code=200, content=_serialize(manager, registration))

    @app.post("/webhooks")
    async def create_registration(
        payload: RegistrationPayload,
        request: Request,
        account_id: str | None = None,
    ) -> JSONResponse:
        if payload.direction is None:
            return _error_response(
                ValidationError(code="INVALID_CONFIG", message="direction is required", status_code=400),
                request_id=_request_id(request),
            )
        try:
            registration = await manager.create(
                payload.to_config(payload.direction),
                account_id=account_id or cfg.default_account_id,
            )
        except ValueError as exc:
            return _invalid_config(exc, request)
        return JSONResponse(status_code=201, content=_serialize(manager, registration))

    @app.put("/webhooks/{registration_id}")
    async def update_registration(registration_id: str, payload: RegistrationPayload, request: Request) -> JSONResponse:
        existing = await manager.get(registration_id)
        if existing is None:
            return _not_found(request)
        try:
            registration = await manager.update(
                registration_id,
                payload.to_config(payload.direction or existing.direction),
            )
        except KeyError:
            return _not_found(request)
        except ValueError as exc:
            return _invalid_config(exc, request)
        return JSONResponse(status_code=200, content=_serialize(manager, registration))

    @app.delete("/webhooks/{registration_id}")
    async def delete_registration(registration_id: str, request: Request) -> Response:
        try:
            await manager.delete(registration_id)
        except KeyError:
            return _not_found(request)
        return Response(status_code=204)

    @app.post("/webhooks/test-trigger/{registration_id}")
    async def test_trigger(registration_id: str, request: Request) -> JSONResponse:
        registration = await manager.get(registration_id)
        if registration is None:
            return _not_found(request)
        if registration.direction != "outgoing":
            return _error_response(
                ValidationError(code="INVALID_DIRECTION", message="Cannot test an incoming webhook", status_code=400),
                request_id=_request_id(request),
            )
        event = DomainEvent(
            name=registration.trigger_event or "manual_trigger",
            data=dict(SAMPLE_CONTACT),
            account_id=registration.account_id,
        )
        result = await dispatcher.deliver(registration, event)
        outcome = None if result.attempt is None else result.attempt.outcome
        logger.info("Test trigger for webhook %s finished ok=%s", registration.id, result.ok)
        return JSONResponse(
            status_code=200,
            content={
                "success": result.ok,
                "status_code": None if outcome is None else outcome.status_code,
                "duration_ms": None if outcome is None else outcome.duration_ms,
                "error": result.error,
            },
        )

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(
            status_code=200,
            content={"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()},
        )

    return app


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _serialize(manager: RegistrationManager, registration: WebhookRegistration) -> dict[str, Any]:
    content = jsonable_encoder(asdict(registration))
    content["incoming_path"] = manager.incoming_path(registration)
    return content


def _request_id(request: Request) -> str:
    return str(getattr(request.state, "request_id", uuid4()))


def _not_found(request: Request) -> JSONResponse:
    return _error_response(
        ValidationError(code="REGISTRATION_NOT_FOUND", message="Webhook not found", status_code=404),
        request_id=_request_id(request),
    )


def _invalid_config(exc: ValueError, request: Request) -> JSONResponse:
    return _error_response(
        ValidationError(code="INVALID_CONFIG", message=str(exc), status_code=400),
        request_id=_request_id(request),
    )


def _error_response(error: ValidationError, *, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code or 400,
        content={
            "error": {
                "code": error.code,
                "message": error.message,
                "details": error.details,
                "request_id": request_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        },
    )
