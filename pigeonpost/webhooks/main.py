"""Webhook application bootstrap and dependency container."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from pigeonpost.config import ConfigManager, PigeonPostConfig
from pigeonpost.db import DATABASE_URL_ENV, create_engine, create_session_factory
from pigeonpost.logging_config import configure_logging
from pigeonpost.webhooks.delivery import DeliveryClient
from pigeonpost.webhooks.dispatcher import DispatchQueue, OutboundDispatcher
from pigeonpost.webhooks.error_log import ErrorLogger
from pigeonpost.webhooks.events import ContactEventPublisher
from pigeonpost.webhooks.http.app import HttpGatewayConfig, create_webhook_app
from pigeonpost.webhooks.inbound import InboundHandler, InboundRouter
from pigeonpost.webhooks.manager import RegistrationManager
from pigeonpost.webhooks.persistence.repositories import (
    ErrorLogRepository,
    InMemoryErrorLogRepository,
    InMemoryRegistrationRepository,
    RegistrationRepository,
)
from pigeonpost.webhooks.template import TemplateCompiler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WebhookApplication:
    """Assemble webhook services and expose lifecycle methods."""

    manager: RegistrationManager
    dispatcher: OutboundDispatcher
    queue: DispatchQueue
    router: InboundRouter
    publisher: ContactEventPublisher
    error_logger: ErrorLogger
    client: DeliveryClient
    config: PigeonPostConfig
    engine: AsyncEngine | None = None
    started: bool = False

    async def start(self) -> None:
        if self.started:
            return
        await self.queue.start()
        self.started = True
        logger.info("Webhook application started with %s dispatch workers", self.config.webhooks.dispatch_workers)

    async def stop(self) -> None:
        if not self.started:
            return
        await self.queue.stop()
        await self.client.aclose()
        if self.engine is not None:
            await self.engine.dispose()
        self.started = False
        logger.info("Webhook application stopped")

    def health_status(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "queue_pending": self.queue.pending,
            "queue_dropped": self.queue.dropped_count,
            "storage": "database" if self.engine is not None else "memory",
        }

    def build_http_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        return create_webhook_app(
            manager=self.manager,
            router=self.router,
            dispatcher=self.dispatcher,
            config=HttpGatewayConfig(
                cors_origins=list(self.config.webhooks.cors_origins),
                default_account_id=self.config.webhooks.default_account_id,
            ),
            lifespan=lifespan,
        )


def build_webhook_application(
    config: PigeonPostConfig | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    handler: InboundHandler | None = None,
) -> WebhookApplication:
    """Factory for the webhook application.

    Without ``session_factory`` registrations and error logs live in memory.
    """
    cfg = config or PigeonPostConfig.model_validate({})
    hooks = cfg.webhooks
    if session_factory is None:
        registrations: Any = InMemoryRegistrationRepository()
        error_logs: Any = InMemoryErrorLogRepository()
    else:
        registrations = RegistrationRepository(session_factory)
        error_logs = ErrorLogRepository(session_factory)

    compiler = TemplateCompiler()
    error_logger = ErrorLogger(error_logs)
    manager = RegistrationManager(
        registrations,
        compiler=compiler,
        incoming_base_path=hooks.incoming_base_path,
    )
    client = DeliveryClient(timeout_seconds=hooks.delivery_timeout_seconds, transport=transport)
    dispatcher = OutboundDispatcher(
        manager,
        client,
        compiler=compiler,
        error_logger=error_logger,
        max_concurrent=hooks.max_concurrent_deliveries,
    )
    queue = DispatchQueue(dispatcher, maxsize=hooks.dispatch_queue_size, workers=hooks.dispatch_workers)
    return WebhookApplication(
        manager=manager,
        dispatcher=dispatcher,
        queue=queue,
        router=InboundRouter(manager, error_logger=error_logger, handler=handler),
        publisher=ContactEventPublisher(queue, account_id=hooks.default_account_id),
        error_logger=error_logger,
        client=client,
        config=cfg,
    )


def build_database_application(config: PigeonPostConfig, **kwargs: Any) -> WebhookApplication:
    """Webhook application backed by PostgreSQL; the engine is disposed on stop."""
    engine = create_engine(config.database)
    application = build_webhook_application(config, session_factory=create_session_factory(engine), **kwargs)
    application.engine = engine
    return application


def create_app(config_path: str | Path | None = None) -> FastAPI:
    """ASGI factory: ``uvicorn pigeonpost.webhooks.main:create_app --factory``."""
    config = ConfigManager.load(config_path).get()
    configure_logging(config.logging.level)
    if config.database.url or os.environ.get(DATABASE_URL_ENV, "").strip():
        application = build_database_application(config)
    else:
        logger.warning("No database configured; webhook registrations are kept in memory only")
        application = build_webhook_application(config)
    return application.build_http_app()
