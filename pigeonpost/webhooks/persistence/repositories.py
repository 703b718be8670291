"""Repository layer for webhook persistence."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pigeonpost.webhooks.persistence.models import ErrorLogModel, WebhookRegistrationModel


class RegistrationRepository:
    """PostgreSQL-backed registration store.

    Opens one short session per call so concurrent dispatch attempts never
    share an ``AsyncSession``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, registration: WebhookRegistrationModel) -> WebhookRegistrationModel:
        async with self._session_factory() as session, session.begin():
            session.add(registration)
            await session.flush()
            await session.refresh(registration)
        return registration

    async def get(self, registration_id: UUID) -> WebhookRegistrationModel | None:
        async with self._session_factory() as session:
            stmt = select(WebhookRegistrationModel).where(WebhookRegistrationModel.id == registration_id)
            return await session.scalar(stmt)

    async def get_by_token(self, endpoint_token: str) -> WebhookRegistrationModel | None:
        async with self._session_factory() as session:
            stmt = select(WebhookRegistrationModel).where(
                WebhookRegistrationModel.endpoint_token == endpoint_token,
                WebhookRegistrationModel.direction == "incoming",
            )
            return await session.scalar(stmt)

    async def list(
        self,
        *,
        account_id: str,
        direction: str | None = None,
        is_active: bool | None = None,
    ) -> list[WebhookRegistrationModel]:
        stmt = select(WebhookRegistrationModel).where(WebhookRegistrationModel.account_id == account_id)
        if direction is not None:
            stmt = stmt.where(WebhookRegistrationModel.direction == direction)
        if is_active is not None:
            stmt = stmt.where(WebhookRegistrationModel.is_active == is_active)
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(WebhookRegistrationModel.created_at.desc()))
            return list(result.scalars().all())

    async def find_by_event(self, *, account_id: str, event_name: str, direction: str) -> list[WebhookRegistrationModel]:
        stmt = select(WebhookRegistrationModel).where(
            WebhookRegistrationModel.account_id == account_id,
            WebhookRegistrationModel.direction == direction,
            WebhookRegistrationModel.trigger_event == event_name,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(WebhookRegistrationModel.created_at.desc()))
            return list(result.scalars().all())

    async def update(self, registration: WebhookRegistrationModel) -> WebhookRegistrationModel:
        async with self._session_factory() as session, session.begin():
            merged = await session.merge(registration)
            await session.flush()
            await session.refresh(merged)
        return merged

    async def delete(self, registration_id: UUID) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(WebhookRegistrationModel).where(WebhookRegistrationModel.id == registration_id)
            )
        return bool(result.rowcount)

    async def touch(self, registration_id: UUID, at: datetime) -> bool:
        """Set last_triggered to ``at`` unless it already holds a later time."""
        stmt = (
            update(WebhookRegistrationModel)
            .where(
                WebhookRegistrationModel.id == registration_id,
                or_(
                    WebhookRegistrationModel.last_triggered.is_(None),
                    WebhookRegistrationModel.last_triggered <= at,
                ),
            )
            .values(last_triggered=at)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return bool(result.rowcount)


class ErrorLogRepository:
    """PostgreSQL-backed error log sink."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, entry: ErrorLogModel) -> ErrorLogModel:
        async with self._session_factory() as session, session.begin():
            session.add(entry)
        return entry

    async def list_recent(self, *, account_id: str, limit: int = 50) -> list[ErrorLogModel]:
        stmt = (
            select(ErrorLogModel)
            .where(ErrorLogModel.account_id == account_id)
            .order_by(ErrorLogModel.timestamp.desc())
            .limit(max(1, limit))
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())


class InMemoryRegistrationRepository:
    """In-memory registration store for tests and single-process use."""

    def __init__(self) -> None:
        self._items: dict[UUID, WebhookRegistrationModel] = {}

    async def create(self, registration: WebhookRegistrationModel) -> WebhookRegistrationModel:
        token = registration.endpoint_token
        if token is not None and any(item.endpoint_token == token for item in self._items.values()):
            raise ValueError(f"endpoint_token already in use: {token}")
        self._items[registration.id] = registration
        return registration

    async def get(self, registration_id: UUID) -> WebhookRegistrationModel | None:
        return self._items.get(registration_id)

    async def get_by_token(self, endpoint_token: str) -> WebhookRegistrationModel | None:
        for item in self._items.values():
            if item.direction == "incoming" and item.endpoint_token == endpoint_token:
                return item
        return None

    async def list(
        self,
        *,
        account_id: str,
        direction: str | None = None,
        is_active: bool | None = None,
    ) -> list[WebhookRegistrationModel]:
        items = [item for item in self._items.values() if item.account_id == account_id]
        if direction is not None:
            items = [item for item in items if item.direction == direction]
        if is_active is not None:
            items = [item for item in items if item.is_active == is_active]
        return sorted(items, key=lambda item: item.created_at, reverse=True)

    async def find_by_event(self, *, account_id: str, event_name: str, direction: str) -> list[WebhookRegistrationModel]:
        items = await self.list(account_id=account_id, direction=direction)
        return [item for item in items if item.trigger_event == event_name]

    async def update(self, registration: WebhookRegistrationModel) -> WebhookRegistrationModel:
        self._items[registration.id] = registration
        return registration

    async def delete(self, registration_id: UUID) -> bool:
        return self._items.pop(registration_id, None) is not None

    async def touch(self, registration_id: UUID, at: datetime) -> bool:
        item = self._items.get(registration_id)
        if item is None:
            return False
        if item.last_triggered is not None and item.last_triggered > at:
            return False
        item.last_triggered = at
        return True


class InMemoryErrorLogRepository:
    """In-memory error log sink for tests."""

    def __init__(self) -> None:
        self._items: list[ErrorLogModel] = []

    async def create(self, entry: ErrorLogModel) -> ErrorLogModel:
        self._items.append(entry)
        return entry

    async def list_recent(self, *, account_id: str, limit: int = 50) -> list[ErrorLogModel]:
        items = [item for item in self._items if item.account_id == account_id]
        ordered = sorted(items, key=lambda item: item.timestamp, reverse=True)
        return ordered[: max(1, limit)]
