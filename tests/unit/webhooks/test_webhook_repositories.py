from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from pigeonpost.webhooks.persistence.models import ErrorLogModel, WebhookRegistrationModel
from pigeonpost.webhooks.persistence.repositories import InMemoryErrorLogRepository, InMemoryRegistrationRepository

_BASE = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _model(direction: str = "incoming", **overrides: object) -> WebhookRegistrationModel:
    values: dict[str, object] = {
        "id": uuid4(),
        "account_id": "default",
        "direction": direction,
        "name": "hook",
        "provider": "custom",
        "is_active": True,
        "endpoint_token": f"tok-{uuid4().hex}" if direction == "incoming" else None,
        "trigger_event": "contact_created" if direction == "outgoing" else None,
        "created_at": _BASE,
        "updated_at": _BASE,
    }
    values.update(overrides)
    return WebhookRegistrationModel(**values)


@pytest.mark.asyncio
async def test_touch_never_moves_last_triggered_backwards() -> None:
    repo = InMemoryRegistrationRepository()
    model = await repo.create(_model())

    assert await repo.touch(model.id, _BASE + timedelta(minutes=5))
    assert not await repo.touch(model.id, _BASE + timedelta(minutes=1))
    assert await repo.touch(model.id, _BASE + timedelta(minutes=5))

    stored = await repo.get(model.id)
    assert stored is not None
    assert stored.last_triggered == _BASE + timedelta(minutes=5)
    assert not await repo.touch(uuid4(), _BASE)


@pytest.mark.asyncio
async def test_duplicate_endpoint_token_is_rejected() -> None:
    repo = InMemoryRegistrationRepository()
    await repo.create(_model(endpoint_token="shared"))

    with pytest.raises(ValueError, match="endpoint_token already in use"):
        await repo.create(_model(endpoint_token="shared"))


@pytest.mark.asyncio
async def test_get_by_token_only_matches_incoming() -> None:
    repo = InMemoryRegistrationRepository()
    incoming = await repo.create(_model(endpoint_token="abc"))
    await repo.create(_model("outgoing", endpoint_token="out-token"))

    found = await repo.get_by_token("abc")

    assert found is incoming
    assert await repo.get_by_token("out-token") is None


@pytest.mark.asyncio
async def test_list_is_newest_first_and_filtered() -> None:
    repo = InMemoryRegistrationRepository()
    older = await repo.create(_model("outgoing", name="older", created_at=_BASE))
    newer = await repo.create(_model("outgoing", name="newer", created_at=_BASE + timedelta(hours=1)))
    await repo.create(_model("outgoing", name="inactive", is_active=False))
    await repo.create(_model(name="other account", account_id="acme"))

    active = await repo.list(account_id="default", direction="outgoing", is_active=True)

    assert [item.name for item in active] == [newer.name, older.name]


@pytest.mark.asyncio
async def test_find_by_event_matches_direction_and_trigger() -> None:
    repo = InMemoryRegistrationRepository()
    wanted = await repo.create(_model("outgoing"))
    await repo.create(_model("outgoing", trigger_event="email_sent"))
    await repo.create(_model("outgoing", account_id="acme"))

    found = await repo.find_by_event(account_id="default", event_name="contact_created", direction="outgoing")

    assert [item.id for item in found] == [wanted.id]


@pytest.mark.asyncio
async def test_delete_reports_whether_anything_was_removed() -> None:
    repo = InMemoryRegistrationRepository()
    model = await repo.create(_model())

    assert await repo.delete(model.id)
    assert not await repo.delete(model.id)


@pytest.mark.asyncio
async def test_error_log_lists_newest_first_per_account_with_limit() -> None:
    repo = InMemoryErrorLogRepository()
    for minute in range(5):
        await repo.create(
            ErrorLogModel(
                id=uuid4(),
                account_id="default",
                timestamp=_BASE + timedelta(minutes=minute),
                context=f"ctx-{minute}",
                error_message="boom",
            )
        )
    await repo.create(ErrorLogModel(id=uuid4(), account_id="acme", timestamp=_BASE, context="x", error_message="y"))

    recent = await repo.list_recent(account_id="default", limit=3)

    assert [item.context for item in recent] == ["ctx-4", "ctx-3", "ctx-2"]
