"""Entry point for collaborators that raise webhook-triggering domain events."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pigeonpost.webhooks.dispatcher import DispatchQueue
from pigeonpost.webhooks.types import DomainEvent, utcnow

CONTACT_CREATED = "contact_created"
CONTACT_UPDATED = "contact_updated"


class ContactEventPublisher:
    """Turn contact writes into domain events on the dispatch queue.

    Calls return immediately; a ``False`` result means the event was dropped
    (queue full or stopped) and never affects the caller's own operation.
    """

    def __init__(self, queue: DispatchQueue, *, account_id: str = "default") -> None:
        self._queue = queue
        self._account_id = account_id

    def contact_created(self, contact: Mapping[str, Any], *, account_id: str | None = None) -> bool:
        return self.publish(CONTACT_CREATED, contact, account_id=account_id)

    def contact_updated(self, contact: Mapping[str, Any], *, account_id: str | None = None) -> bool:
        return self.publish(CONTACT_UPDATED, contact, account_id=account_id)

    def publish(
        self,
        name: str,
        data: Mapping[str, Any],
        *,
        account_id: str | None = None,
        occurred_at: datetime | None = None,
        entity: str = "contact",
    ) -> bool:
        event = DomainEvent(
            name=name,
            data=dict(data),
            account_id=account_id or self._account_id,
            occurred_at=occurred_at or utcnow(),
            entity=entity,
        )
        return self._queue.submit(event)
