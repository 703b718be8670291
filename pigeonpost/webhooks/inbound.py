"""Inbound webhook routing: resolve a tokenized request to a registration."""

from __future__ import annotations

import hmac
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any, Protocol

from pigeonpost.webhooks.error_log import ErrorLogger
from pigeonpost.webhooks.types import SECRET_HEADER, InboundDecision, WebhookRegistration, utcnow

logger = logging.getLogger(__name__)

InboundHandler = Callable[[WebhookRegistration, Any], Awaitable[None]]


class InboundLookup(Protocol):
    """Token lookup plus the last_triggered write used by InboundRouter."""

    async def find_by_token(self, endpoint_token: str) -> WebhookRegistration | None: ...

    async def touch(self, registration_id: str, at: datetime) -> bool: ...


class InboundRouter:
    """Accept or reject inbound callbacks; stateless across requests.

    Rejections are expected traffic (scanners, stale URLs) and only logged at
    DEBUG. Accepted payloads are passed to ``handler`` when one is set; the
    core itself does not interpret ``event_handling`` mappings.
    """

    def __init__(
        self,
        lookup: InboundLookup,
        *,
        error_logger: ErrorLogger | None = None,
        handler: InboundHandler | None = None,
        secret_header: str = SECRET_HEADER,
    ) -> None:
        self._lookup = lookup
        self._errors = error_logger if error_logger is not None else ErrorLogger()
        self._handler = handler
        self._secret_header = secret_header.lower()

    async def receive(
        self,
        provider: str,
        token: str,
        headers: Mapping[str, str],
        body: Any,
    ) -> InboundDecision:
        registration = await self._lookup.find_by_token(token)
        if registration is None or registration.provider != provider:
            logger.debug("Inbound webhook not found: provider=%s", provider)
            return InboundDecision(status_code=404, message="Webhook not found")
        if not registration.is_active:
            logger.debug("Inbound webhook %s is inactive", registration.id)
            return InboundDecision(status_code=403, message="Webhook is inactive", registration_id=registration.id)
        if registration.secret_key and not self._secret_matches(registration.secret_key, headers):
            logger.debug("Inbound webhook %s rejected: invalid secret", registration.id)
            return InboundDecision(status_code=401, message="Invalid webhook secret", registration_id=registration.id)

        context = {"registration_id": registration.id, "provider": provider}
        try:
            await self._lookup.touch(registration.id, utcnow())
        except Exception as exc:
            logger.exception("Failed to update last_triggered for inbound webhook %s", registration.id)
            await self._errors.record(
                "webhook.inbound.store",
                f"{type(exc).__name__}: {exc}",
                payload=context,
                exc=exc,
                account_id=registration.account_id,
            )
        if self._handler is not None:
            try:
                await self._handler(registration, body)
            except Exception as exc:
                logger.exception("Inbound handler failed for webhook %s", registration.id)
                await self._errors.record(
                    "webhook.inbound.handler",
                    f"{type(exc).__name__}: {exc}",
                    payload={**context, "body": body},
                    exc=exc,
                    account_id=registration.account_id,
                )
        logger.info("Inbound webhook %s received from %s", registration.id, provider)
        return InboundDecision(status_code=200, message="Webhook received successfully", registration_id=registration.id)

    def _secret_matches(self, expected: str, headers: Mapping[str, str]) -> bool:
        provided = _header_value(headers, self._secret_header)
        if provided is None:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def _header_value(headers: Mapping[str, str], lowered_name: str) -> str | None:
    for name, value in headers.items():
        if name.lower() == lowered_name:
            return value
    return None
