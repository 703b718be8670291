from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pigeonpost.webhooks import ErrorLogger, RegistrationConfig, RegistrationFilter, RegistrationManager
from pigeonpost.webhooks.persistence.repositories import ErrorLogRepository, RegistrationRepository
from pigeonpost.webhooks.types import utcnow


@pytest.mark.asyncio
async def test_registration_lifecycle_against_postgres(session_factory: async_sessionmaker[AsyncSession]) -> None:
    manager = RegistrationManager(RegistrationRepository(session_factory))
    account = f"it-{uuid4().hex[:12]}"

    incoming = await manager.create(
        RegistrationConfig(name="forms", direction="incoming", provider="typeform", secret_key="s3cret"),
        account_id=account,
    )
    outgoing = await manager.create(
        RegistrationConfig(
            name="crm",
            direction="outgoing",
            trigger_event="contact_created",
            target_url="https://crm.example.com/hook",
            selected_fields=["contact_email"],
        ),
        account_id=account,
    )
    try:
        assert incoming.endpoint_token is not None
        found = await manager.find_by_token(incoming.endpoint_token)
        assert found is not None and found.id == incoming.id

        matches = await manager.find_by_event(account_id=account, event_name="contact_created", direction="outgoing")
        assert [item.id for item in matches] == [outgoing.id]
        assert matches[0].payload_template is not None

        listed = await manager.list(RegistrationFilter(account_id=account, direction="incoming"))
        assert [item.id for item in listed] == [incoming.id]

        updated = await manager.update(
            outgoing.id,
            RegistrationConfig(
                name="crm v2",
                direction="outgoing",
                trigger_event="contact_updated",
                target_url="https://crm.example.com/hook2",
                http_method="put",
            ),
        )
        assert updated.name == "crm v2"
        assert updated.http_method == "PUT"
    finally:
        await manager.delete(incoming.id)
        await manager.delete(outgoing.id)

    assert await manager.get(incoming.id) is None


@pytest.mark.asyncio
async def test_touch_is_monotonic_against_postgres(session_factory: async_sessionmaker[AsyncSession]) -> None:
    manager = RegistrationManager(RegistrationRepository(session_factory))
    registration = await manager.create(
        RegistrationConfig(name="forms", direction="incoming"),
        account_id=f"it-{uuid4().hex[:12]}",
    )
    later = utcnow()
    earlier = later - timedelta(minutes=1)
    try:
        assert await manager.touch(registration.id, later)
        assert not await manager.touch(registration.id, earlier)
        stored = await manager.get(registration.id)
        assert stored is not None
        assert stored.last_triggered == later
    finally:
        await manager.delete(registration.id)


@pytest.mark.asyncio
async def test_error_log_round_trip_against_postgres(session_factory: async_sessionmaker[AsyncSession]) -> None:
    errors = ErrorLogger(ErrorLogRepository(session_factory))
    account = f"it-{uuid4().hex[:12]}"

    await errors.record("webhook.delivery", "HTTP 500: boom", payload={"status_code": 500}, account_id=account)
    recent = await errors.recent(account_id=account)

    assert [entry.context for entry in recent] == ["webhook.delivery"]
    assert recent[0].payload == {"status_code": 500}
