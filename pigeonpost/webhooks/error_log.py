"""Error log sink for delivery, store and handler failures."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Protocol
from uuid import UUID, uuid4

from pigeonpost.webhooks.persistence.models import ErrorLogModel
from pigeonpost.webhooks.types import ErrorLogEntry, utcnow

logger = logging.getLogger(__name__)


class ErrorLogRepositoryProtocol(Protocol):
    """Repository protocol used by ErrorLogger."""

    async def create(self, entry: ErrorLogModel) -> ErrorLogModel: ...

    async def list_recent(self, *, account_id: str, limit: int = 50) -> list[ErrorLogModel]: ...


class ErrorLogger:
    """Record failures with enough context to debug them later.

    ``record`` never raises: when the repository itself fails the entry is
    still returned and the failure goes to the process log.
    """

    def __init__(self, repository: ErrorLogRepositoryProtocol | None = None) -> None:
        self._repository = repository

    async def record(
        self,
        context: str,
        message: str,
        *,
        payload: dict[str, Any] | None = None,
        exc: BaseException | None = None,
        account_id: str = "default",
    ) -> ErrorLogEntry:
        entry = ErrorLogEntry(
            id=str(uuid4()),
            context=context,
            error_message=message,
            timestamp=utcnow(),
            stack_trace=_format_stack(exc),
            payload=dict(payload or {}),
            account_id=account_id,
        )
        logger.warning("%s: %s %s", context, message, entry.payload)
        if self._repository is None:
            return entry
        try:
            await self._repository.create(
                ErrorLogModel(
                    id=UUID(entry.id),
                    account_id=entry.account_id,
                    timestamp=entry.timestamp,
                    context=entry.context,
                    error_message=entry.error_message,
                    stack_trace=entry.stack_trace,
                    payload=entry.payload,
                )
            )
        except Exception:
            logger.exception("Failed to persist error log entry for %s", context)
        return entry

    async def recent(self, *, account_id: str = "default", limit: int = 50) -> list[ErrorLogEntry]:
        if self._repository is None:
            return []
        items = await self._repository.list_recent(account_id=account_id, limit=limit)
        return [
            ErrorLogEntry(
                id=str(item.id),
                context=item.context,
                error_message=item.error_message,
                timestamp=item.timestamp,
                stack_trace=item.stack_trace,
                payload=dict(item.payload or {}),
                account_id=item.account_id,
            )
            for item in items
        ]


def _format_stack(exc: BaseException | None) -> str | None:
    if exc is None:
        return None
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
