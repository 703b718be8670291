"""Outbound HTTP delivery for webhook payloads."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Iterable
from typing import Any

import httpx

from pigeonpost.config.models import MAX_DELIVERY_TIMEOUT_SECONDS
from pigeonpost.webhooks.types import HTTP_METHODS, DeliveryOutcome

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 2000


def encode_body(body: Any) -> bytes:
    """Compact UTF-8 JSON; values JSON cannot represent are stringified."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")


class DeliveryClient:
    """Send one HTTP request per call with a bounded timeout and no retries.

    The underlying ``httpx.AsyncClient`` is created lazily and shared by all
    concurrent sends; call ``aclose()`` on shutdown.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = MAX_DELIVERY_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._timeout_seconds = min(float(timeout_seconds), MAX_DELIVERY_TIMEOUT_SECONDS)
        self._transport = transport
        self._client = client
        self._owns_client = client is None

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def send(
        self,
        method: str,
        url: str,
        headers: Iterable[tuple[str, str]],
        body: Any,
    ) -> DeliveryOutcome:
        """Deliver ``body`` as JSON; 2xx/3xx are successes, everything else a failure."""
        normalized = method.upper()
        if normalized not in HTTP_METHODS:
            return DeliveryOutcome(ok=False, error=f"unsupported http method: {method}")
        content = body if isinstance(body, bytes) else encode_body(body)
        started = time.monotonic()
        try:
            # httpx timeouts are per phase; wait_for caps the whole exchange.
            response = await asyncio.wait_for(
                self._get_client().request(
                    normalized,
                    url,
                    content=content,
                    headers=list(headers),
                ),
                timeout=self._timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            return DeliveryOutcome(
                ok=False,
                error=f"timeout after {self._timeout_seconds}s: {exc!r}",
                duration_ms=_elapsed_ms(started),
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return DeliveryOutcome(ok=False, error=f"{type(exc).__name__}: {exc}", duration_ms=_elapsed_ms(started))
        except ValueError as exc:
            # Raised while building the request, e.g. header text that is not ASCII.
            return DeliveryOutcome(ok=False, error=f"{type(exc).__name__}: {exc}", duration_ms=_elapsed_ms(started))
        duration_ms = _elapsed_ms(started)
        if 200 <= response.status_code < 400:
            logger.debug("Delivered %s %s -> %s in %sms", normalized, url, response.status_code, duration_ms)
            return DeliveryOutcome(ok=True, status_code=response.status_code, duration_ms=duration_ms)
        return DeliveryOutcome(
            ok=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.text[:_ERROR_BODY_LIMIT]}",
            duration_ms=duration_ms,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
