"""Outbound webhook dispatch: fan a domain event out to matching registrations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from pigeonpost.webhooks.delivery import DeliveryClient, encode_body
from pigeonpost.webhooks.error_log import ErrorLogger
from pigeonpost.webhooks.template import TemplateCompiler
from pigeonpost.webhooks.types import (
    DeliveryAttempt,
    DeliveryOutcome,
    DispatchResult,
    DomainEvent,
    HeaderPair,
    WebhookRegistration,
    utcnow,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class RegistrationLookup(Protocol):
    """Read access to registrations plus the last_triggered write."""

    async def find_by_event(self, *, account_id: str, event_name: str, direction: str) -> list[WebhookRegistration]: ...

    async def touch(self, registration_id: str, at: datetime) -> bool: ...


def build_headers(headers: Iterable[HeaderPair]) -> list[tuple[str, str]]:
    """Configured headers in order, with a JSON Content-Type first unless one is set."""
    pairs = [(header.name, header.value) for header in headers if header.name.strip()]
    if not any(name.lower() == "content-type" for name, _ in pairs):
        pairs.insert(0, ("Content-Type", JSON_CONTENT_TYPE))
    return pairs


class OutboundDispatcher:
    """Render and deliver one domain event to every matching outgoing registration.

    Attempts run concurrently under a semaphore. Each attempt is isolated: its
    exceptions, timeouts and store failures are logged and reported in its own
    ``DispatchResult``. ``dispatch`` never raises.
    """

    def __init__(
        self,
        lookup: RegistrationLookup,
        client: DeliveryClient,
        *,
        compiler: TemplateCompiler | None = None,
        error_logger: ErrorLogger | None = None,
        max_concurrent: int = 10,
    ) -> None:
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be positive")
        self._lookup = lookup
        self._client = client
        self._compiler = compiler if compiler is not None else TemplateCompiler()
        self._errors = error_logger if error_logger is not None else ErrorLogger()
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def dispatch(self, event: DomainEvent) -> list[DispatchResult]:
        try:
            registrations = await self._lookup.find_by_event(
                account_id=event.account_id,
                event_name=event.name,
                direction="outgoing",
            )
        except Exception as exc:
            logger.exception("Registration lookup failed for event %s", event.name)
            await self._errors.record(
                "webhook.lookup",
                f"{type(exc).__name__}: {exc}",
                payload={"event_name": event.name},
                exc=exc,
                account_id=event.account_id,
            )
            return []

        targets = [item for item in registrations if item.is_active and item.trigger_event == event.name]
        if not targets:
            logger.debug("No active outgoing webhooks for event %s", event.name)
            return []

        outcomes = await asyncio.gather(
            *(self._deliver_bounded(registration, event) for registration in targets),
            return_exceptions=True,
        )
        results: list[DispatchResult] = []
        for registration, outcome in zip(targets, outcomes):
            if isinstance(outcome, DispatchResult):
                results.append(outcome)
                continue
            logger.error("Delivery task for webhook %s ended abnormally: %r", registration.id, outcome)
            results.append(DispatchResult(registration_id=registration.id, ok=False, error=repr(outcome)))
        return results

    async def deliver(self, registration: WebhookRegistration, event: DomainEvent) -> DispatchResult:
        """One isolated attempt for a single registration."""
        attempted_at = utcnow()
        method = registration.http_method
        url = registration.target_url or ""
        headers: list[tuple[str, str]] = []
        body = b""
        sent = False
        try:
            if not url:
                raise ValueError("outgoing webhook has no target_url")
            payload = self._compiler.render(registration.payload_template, event)
            body = encode_body(payload)
            headers = build_headers(registration.headers)
            sent = True
            outcome = await self._client.send(method, url, headers, body)
        except Exception as exc:
            logger.exception("Webhook %s delivery raised for event %s", registration.id, event.name)
            outcome = DeliveryOutcome(ok=False, error=f"{type(exc).__name__}: {exc}")

        attempt = DeliveryAttempt(
            registration_id=registration.id,
            event_name=event.name,
            method=method,
            url=url,
            headers=headers,
            body=body,
            outcome=outcome,
            attempted_at=attempted_at,
        )
        context = _error_context(registration, event)
        if not outcome.ok:
            await self._errors.record(
                "webhook.delivery",
                outcome.error or "delivery failed",
                payload={**context, "status_code": outcome.status_code},
                account_id=event.account_id,
            )
        else:
            logger.info("Webhook %s delivered %s -> %s", registration.id, event.name, outcome.status_code)

        store_error = await self._touch(registration, attempted_at, context, event.account_id) if sent else None
        return DispatchResult(
            registration_id=registration.id,
            ok=outcome.ok,
            attempt=attempt,
            error=outcome.error if not outcome.ok else store_error,
        )

    async def _deliver_bounded(self, registration: WebhookRegistration, event: DomainEvent) -> DispatchResult:
        async with self._semaphore:
            return await self.deliver(registration, event)

    async def _touch(
        self,
        registration: WebhookRegistration,
        at: datetime,
        context: dict[str, Any],
        account_id: str,
    ) -> str | None:
        try:
            await self._lookup.touch(registration.id, at)
        except Exception as exc:
            message = f"{type(exc).__name__}: {exc}"
            logger.exception("Failed to update last_triggered for webhook %s", registration.id)
            await self._errors.record("webhook.store", message, payload=context, exc=exc, account_id=account_id)
            return message
        return None


class DispatchQueue:
    """Bounded hand-off between event producers and dispatch workers.

    ``submit`` never blocks, so the request that produced an event returns
    without waiting for delivery.
    """

    def __init__(self, dispatcher: OutboundDispatcher, *, maxsize: int = 1000, workers: int = 4) -> None:
        if workers <= 0:
            raise ValueError("workers must be positive")
        self._dispatcher = dispatcher
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=maxsize)
        self._workers = workers
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False
        self.dropped_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, event: DomainEvent) -> bool:
        if not self._running:
            self.dropped_count += 1
            logger.warning("Dispatch queue is not running, dropping event %s", event.name)
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.warning("Dispatch queue full, dropping event %s", event.name)
            return False
        return True

    async def start(self) -> None:
        if self._running:
            raise RuntimeError("DispatchQueue already running")
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(worker_id=i), name=f"webhook-dispatch-worker-{i}")
            for i in range(self._workers)
        ]

    async def join(self) -> None:
        await self._queue.join()

    async def stop(self) -> None:
        """Refuse new events, finish queued ones, then stop workers."""
        if not self._running:
            return
        self._running = False
        await self._queue.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def _worker_loop(self, worker_id: int) -> None:
        logger.debug("Dispatch worker %s started", worker_id)
        try:
            while True:
                event = await self._queue.get()
                try:
                    await self._dispatcher.dispatch(event)
                except Exception:
                    logger.exception("Dispatch worker %s failed on event %s", worker_id, event.name)
                finally:
                    self._queue.task_done()
        finally:
            logger.debug("Dispatch worker %s stopped", worker_id)


def _error_context(registration: WebhookRegistration, event: DomainEvent) -> dict[str, Any]:
    return {
        "registration_id": registration.id,
        "event_name": event.name,
        "target_url": registration.target_url,
        "http_method": registration.http_method,
    }
