from __future__ import annotations

import json

import pytest

from pigeonpost.webhooks import HeaderPair, RegistrationConfig, RegistrationFilter, RegistrationManager
from pigeonpost.webhooks.persistence.repositories import InMemoryRegistrationRepository
from pigeonpost.webhooks.types import utcnow


def _manager() -> RegistrationManager:
    return RegistrationManager(InMemoryRegistrationRepository())


def _outgoing(**overrides: object) -> RegistrationConfig:
    values: dict[str, object] = {
        "name": "crm sync",
        "direction": "outgoing",
        "trigger_event": "contact_created",
        "target_url": "https://crm.example.com/hooks",
    }
    values.update(overrides)
    return RegistrationConfig(**values)  # type: ignore[arg-type]


def _incoming(**overrides: object) -> RegistrationConfig:
    values: dict[str, object] = {"name": "forms", "direction": "incoming", "provider": "typeform"}
    values.update(overrides)
    return RegistrationConfig(**values)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_create_incoming_generates_endpoint_token_and_path() -> None:
    manager = _manager()

    registration = await manager.create(_incoming(secret_key="s3cret"))

    assert registration.endpoint_token
    assert len(registration.endpoint_token) >= 32
    assert registration.secret_key == "s3cret"
    assert registration.trigger_event is None
    assert manager.incoming_path(registration) == f"/webhooks/incoming/typeform/{registration.endpoint_token}"


@pytest.mark.asyncio
async def test_incoming_tokens_are_unique() -> None:
    manager = _manager()

    tokens = {(await manager.create(_incoming(name=f"forms {i}"))).endpoint_token for i in range(20)}

    assert len(tokens) == 20


@pytest.mark.asyncio
async def test_token_collision_is_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _manager()
    issued = iter(["taken", "taken", "fresh"])
    monkeypatch.setattr("pigeonpost.webhooks.manager.token_urlsafe", lambda nbytes: next(issued))

    first = await manager.create(_incoming())
    second = await manager.create(_incoming(name="other"))

    assert first.endpoint_token == "taken"
    assert second.endpoint_token == "fresh"


@pytest.mark.asyncio
async def test_token_allocation_gives_up_after_repeated_collisions(monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _manager()
    monkeypatch.setattr("pigeonpost.webhooks.manager.token_urlsafe", lambda nbytes: "same")
    await manager.create(_incoming())

    with pytest.raises(RuntimeError, match="unique endpoint token"):
        await manager.create(_incoming(name="other"))


@pytest.mark.asyncio
async def test_create_outgoing_keeps_header_order_and_uppercases_method() -> None:
    manager = _manager()
    headers = [HeaderPair("X-B", "2"), HeaderPair("X-A", "1"), HeaderPair("Authorization", "Bearer t")]

    registration = await manager.create(_outgoing(http_method="put", headers=headers))

    assert registration.http_method == "PUT"
    assert registration.headers == headers
    assert registration.endpoint_token is None
    assert manager.incoming_path(registration) is None


@pytest.mark.asyncio
async def test_create_outgoing_generates_template_from_selected_fields() -> None:
    manager = _manager()

    registration = await manager.create(
        _outgoing(selected_fields=["contact_email", "contact_tags", "contact_email", "event_type"])
    )

    assert registration.selected_fields == ["contact_email", "contact_tags", "event_type"]
    assert registration.payload_template is not None
    assert json.loads(registration.payload_template) == {
        "event_type": "{event.type}",
        "timestamp": "{event.timestamp}",
        "data": {
            "contact": {"email": "{contact.email}", "tags": "{contact.tags}"},
            "event_type": "{event.type}",
        },
    }


@pytest.mark.asyncio
async def test_explicit_template_is_kept_over_selected_fields() -> None:
    manager = _manager()

    registration = await manager.create(
        _outgoing(selected_fields=["contact_email"], payload_template='{"email":"{contact.email}"}')
    )

    assert registration.payload_template == '{"email":"{contact.email}"}'


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("config", "message"),
    [
        (_outgoing(name="  "), "name is required"),
        (_outgoing(direction="sideways"), "direction must be one of"),
        (_outgoing(trigger_event=None), "trigger_event is required"),
        (_outgoing(target_url="ftp://example.com/x"), "target_url"),
        (_outgoing(target_url="not a url"), "target_url"),
        (_outgoing(http_method="TRACE"), "http_method must be one of"),
        (_outgoing(headers=[HeaderPair(" ", "x")]), "header names"),
        (_outgoing(headers=[HeaderPair("X Name", "x")]), "header names"),
        (_outgoing(headers=[HeaderPair("X-Name", "caf\u00e9 \u2615")]), "header values"),
        (_outgoing(headers=[HeaderPair("X-Name", "a\r\nInjected: 1")]), "header values"),
        (_outgoing(payload_template='{"broken": '), "payload template is not valid JSON"),
        (_incoming(provider="a/b"), "provider"),
    ],
)
async def test_create_rejects_invalid_config(config: RegistrationConfig, message: str) -> None:
    manager = _manager()

    with pytest.raises(ValueError, match=message):
        await manager.create(config)

    assert await manager.list() == []


def test_validate_reports_structured_error() -> None:
    result = _manager().validate(_outgoing(target_url=None))

    assert not result.valid
    assert result.error is not None
    assert result.error.code == "INVALID_CONFIG"
    assert result.error.status_code == 400


@pytest.mark.asyncio
async def test_blank_secret_and_template_are_stored_as_none() -> None:
    manager = _manager()

    incoming = await manager.create(_incoming(secret_key="   "))
    outgoing = await manager.create(_outgoing(payload_template="  "))

    assert incoming.secret_key is None
    assert outgoing.payload_template is None


@pytest.mark.asyncio
async def test_update_replaces_fields_and_keeps_token() -> None:
    manager = _manager()
    created = await manager.create(_incoming())

    updated = await manager.update(created.id, _incoming(name="renamed", is_active=False, secret_key="new"))

    assert updated.id == created.id
    assert updated.name == "renamed"
    assert not updated.is_active
    assert updated.secret_key == "new"
    assert updated.endpoint_token == created.endpoint_token
    assert updated.updated_at >= created.updated_at


@pytest.mark.asyncio
async def test_update_cannot_change_direction() -> None:
    manager = _manager()
    created = await manager.create(_incoming())

    with pytest.raises(ValueError, match="direction cannot be changed"):
        await manager.update(created.id, _outgoing())


@pytest.mark.asyncio
async def test_update_validation_failure_leaves_record_unchanged() -> None:
    manager = _manager()
    created = await manager.create(_outgoing())

    with pytest.raises(ValueError):
        await manager.update(created.id, _outgoing(name="changed", target_url="nope"))

    stored = await manager.get(created.id)
    assert stored is not None
    assert stored.name == "crm sync"
    assert stored.target_url == "https://crm.example.com/hooks"


@pytest.mark.asyncio
async def test_update_and_delete_unknown_id_raise_key_error() -> None:
    manager = _manager()

    with pytest.raises(KeyError):
        await manager.update("00000000-0000-0000-0000-000000000000", _outgoing())
    with pytest.raises(KeyError):
        await manager.delete("not-a-uuid")


@pytest.mark.asyncio
async def test_delete_removes_registration() -> None:
    manager = _manager()
    created = await manager.create(_outgoing())

    await manager.delete(created.id)

    assert await manager.get(created.id) is None
    with pytest.raises(KeyError):
        await manager.delete(created.id)


@pytest.mark.asyncio
async def test_get_with_invalid_id_returns_none() -> None:
    assert await _manager().get("definitely-not-a-uuid") is None


@pytest.mark.asyncio
async def test_list_filters_by_account_direction_and_activity() -> None:
    manager = _manager()
    await manager.create(_outgoing(name="a"))
    await manager.create(_outgoing(name="b", is_active=False))
    await manager.create(_incoming(name="c"))
    await manager.create(_outgoing(name="d"), account_id="other")

    all_default = await manager.list()
    outgoing = await manager.list(RegistrationFilter(direction="outgoing"))
    active_outgoing = await manager.list(RegistrationFilter(direction="outgoing", is_active=True))
    other = await manager.list(RegistrationFilter(account_id="other"))

    assert sorted(item.name for item in all_default) == ["a", "b", "c"]
    assert sorted(item.name for item in outgoing) == ["a", "b"]
    assert [item.name for item in active_outgoing] == ["a"]
    assert [item.name for item in other] == ["d"]


@pytest.mark.asyncio
async def test_find_by_token_ignores_outgoing_registrations() -> None:
    manager = _manager()
    incoming = await manager.create(_incoming())
    assert incoming.endpoint_token is not None

    found = await manager.find_by_token(incoming.endpoint_token)

    assert found is not None
    assert found.id == incoming.id
    assert await manager.find_by_token("missing") is None


@pytest.mark.asyncio
async def test_touch_with_invalid_id_returns_false() -> None:
    assert await _manager().touch("bad-id", utcnow()) is False
