"""Trigger events and data fields offered when configuring outgoing webhooks."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TriggerEvent:
    id: str
    name: str
    description: str


@dataclass(slots=True, frozen=True)
class DataField:
    """A selectable field and the placeholder path it renders from."""

    id: str
    name: str
    type: str
    path: str

    @property
    def placeholder(self) -> str:
        return "{" + self.path + "}"


TRIGGER_EVENTS: tuple[TriggerEvent, ...] = (
    TriggerEvent("contact_created", "Contact Created", "Triggered when a new contact is created"),
    TriggerEvent("contact_updated", "Contact Updated", "Triggered when a contact is updated"),
    TriggerEvent("email_sent", "Email Sent", "Triggered when an email is sent"),
    TriggerEvent("email_opened", "Email Opened", "Triggered when an email is opened"),
    TriggerEvent("email_clicked", "Email Clicked", "Triggered when a link in an email is clicked"),
    TriggerEvent("manual_trigger", "Manual Trigger", "Triggered manually through the UI or API"),
)

DATA_FIELDS: tuple[DataField, ...] = (
    DataField("contact_email", "Contact Email", "string", "contact.email"),
    DataField("contact_name", "Contact Name", "string", "contact.name"),
    DataField("contact_id", "Contact ID", "number", "contact.id"),
    DataField("contact_ghl_id", "Contact GHL ID", "string", "contact.ghl_id"),
    DataField("contact_tags", "Contact Tags", "array", "contact.tags"),
    DataField("email_subject", "Email Subject", "string", "email.subject"),
    DataField("email_body", "Email Body", "string", "email.body_text"),
    DataField("event_type", "Event Type", "string", "event.type"),
    DataField("event_timestamp", "Event Timestamp", "date", "event.timestamp"),
)

_FIELDS_BY_ID = {item.id: item for item in DATA_FIELDS}
_GROUPED_ENTITIES = ("contact", "email")


def get_data_field(field_id: str) -> DataField | None:
    return _FIELDS_BY_ID.get(field_id)


def build_payload_template(selected_fields: Iterable[str]) -> dict[str, Any]:
    """Template object for the selected field ids; unknown ids are skipped.

    Contact and email fields are grouped under ``data.contact`` / ``data.email``;
    every other field is keyed by its id directly under ``data``.
    """
    template: dict[str, Any] = {
        "event_type": "{event.type}",
        "timestamp": "{event.timestamp}",
        "data": {},
    }
    data: dict[str, Any] = template["data"]
    for field_id in selected_fields:
        data_field = _FIELDS_BY_ID.get(field_id)
        if data_field is None:
            logger.debug("Skipping unknown data field %s", field_id)
            continue
        entity, _, attribute = data_field.path.partition(".")
        if entity in _GROUPED_ENTITIES:
            data.setdefault(entity, {})[attribute] = data_field.placeholder
        else:
            data[data_field.id] = data_field.placeholder
    return template


def generate_payload_template(selected_fields: Iterable[str]) -> str | None:
    """JSON text for ``build_payload_template``; ``None`` when nothing is selected."""
    fields = list(selected_fields)
    if not fields:
        return None
    return json.dumps(build_payload_template(fields), indent=2)


def catalog_document() -> dict[str, list[dict[str, str]]]:
    return {
        "trigger_events": [
            {"id": item.id, "name": item.name, "description": item.description} for item in TRIGGER_EVENTS
        ],
        "data_fields": [
            {"id": item.id, "name": item.name, "type": item.type, "path": item.path} for item in DATA_FIELDS
        ],
    }
