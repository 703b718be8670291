"""Payload template compilation and rendering for outgoing webhooks.

A stored ``payload_template`` is JSON text whose string leaves may contain
placeholders such as ``{event.type}`` or ``{contact.email}``. The template is
parsed once into a tree of nodes:

* ``LiteralNode``: any JSON value that needs no substitution
* ``TextNode``: a string made of literal segments and ``Placeholder`` segments
* ``TagsNode``: a string leaf that is exactly ``{contact.tags}``; it renders as
  the event's tag array, the only place a leaf changes JSON type
* ``ArrayNode`` / ``ObjectNode``: containers, walked element-wise / key-wise

Rendering walks the tree against a ``DomainEvent``. Substitution is a single
pass over pre-split segments, so values that themselves look like
placeholders are never expanded a second time. Unknown placeholders are
emitted verbatim.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Union

from pigeonpost.webhooks.types import DomainEvent, ValidationError, ValidationResult

logger = logging.getLogger(__name__)

TAGS_PLACEHOLDER = "{contact.tags}"
MAX_TEMPLATE_DEPTH = 64
PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)+)\}")

_MISSING = object()


class TemplateSyntaxError(ValueError):
    """Raised when a payload template is not valid JSON text."""


@dataclass(slots=True, frozen=True)
class Placeholder:
    path: tuple[str, ...]
    raw: str


@dataclass(slots=True, frozen=True)
class LiteralNode:
    value: Any


@dataclass(slots=True, frozen=True)
class TextNode:
    segments: tuple[Union[str, Placeholder], ...]


@dataclass(slots=True, frozen=True)
class TagsNode:
    pass


@dataclass(slots=True, frozen=True)
class ArrayNode:
    items: tuple["TemplateNode", ...]


@dataclass(slots=True, frozen=True)
class ObjectNode:
    items: tuple[tuple[str, "TemplateNode"], ...]


TemplateNode = Union[LiteralNode, TextNode, TagsNode, ArrayNode, ObjectNode]


def parse_template(template: str) -> Any:
    """Parse template text as strict JSON (NaN/Infinity rejected, nesting capped)."""
    try:
        value = json.loads(template, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError, RecursionError) as exc:
        raise TemplateSyntaxError(f"payload template is not valid JSON: {exc}") from exc
    if _nesting_depth(value) > MAX_TEMPLATE_DEPTH:
        raise TemplateSyntaxError(f"payload template nests deeper than {MAX_TEMPLATE_DEPTH} levels")
    return value


@lru_cache(maxsize=256)
def compile_template(template: str) -> TemplateNode:
    """Parse and compile template text into an immutable node tree.

    Raises:
        TemplateSyntaxError: the text is not valid JSON.
    """
    return _compile_value(parse_template(template))


def split_placeholders(text: str) -> tuple[Union[str, Placeholder], ...]:
    segments: list[Union[str, Placeholder]] = []
    cursor = 0
    for match in PLACEHOLDER_PATTERN.finditer(text):
        if match.start() > cursor:
            segments.append(text[cursor : match.start()])
        segments.append(Placeholder(path=tuple(match.group(1).split(".")), raw=match.group(0)))
        cursor = match.end()
    if cursor < len(text):
        segments.append(text[cursor:])
    return tuple(segments)


def fallback_payload(event: DomainEvent) -> dict[str, Any]:
    """Minimal payload used whenever a template cannot be rendered."""
    data = event.data
    contact_id = data.get("id")
    return {
        "event_type": event.name,
        "timestamp": isoformat(event.occurred_at),
        "data": {
            "contact_id": "" if contact_id is None else contact_id,
            "email": data.get("email") or "",
            "name": data.get("name") or "",
            "tags": event.tags,
        },
    }


def isoformat(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


class TemplateCompiler:
    """Render stored payload templates against domain events."""

    def render(self, template: str | None, event: DomainEvent) -> Any:
        """Return the rendered JSON value; never raises.

        Any parse or processing failure yields ``fallback_payload(event)``.
        """
        if template is None or not template.strip():
            logger.warning("No payload template for event %s, using fallback payload", event.name)
            return fallback_payload(event)
        try:
            root = compile_template(template)
        except TemplateSyntaxError as exc:
            logger.warning("Payload template rejected for event %s, using fallback: %s", event.name, exc)
            return fallback_payload(event)
        except Exception:
            logger.exception("Payload template compilation failed for event %s, using fallback", event.name)
            return fallback_payload(event)
        unresolved: list[str] = []
        try:
            rendered = _render_node(root, event, unresolved)
        except Exception:
            logger.exception("Payload rendering failed for event %s, using fallback", event.name)
            return fallback_payload(event)
        if unresolved:
            logger.warning(
                "Unresolved placeholders left verbatim for event %s: %s",
                event.name,
                ", ".join(sorted(set(unresolved))),
            )
        return rendered

    def validate(self, template: str | None) -> ValidationResult:
        """Save-time check: the template must be JSON text within the nesting cap."""
        if template is None:
            return ValidationResult(valid=True)
        try:
            parse_template(template)
        except TemplateSyntaxError as exc:
            return ValidationResult(
                valid=False,
                error=ValidationError(code="INVALID_TEMPLATE", message=str(exc), status_code=400),
            )
        return ValidationResult(valid=True)

    def placeholders(self, template: str) -> list[str]:
        """Distinct placeholder tokens in first-seen order."""
        seen: dict[str, None] = {}
        for match in PLACEHOLDER_PATTERN.finditer(template):
            seen.setdefault(match.group(0), None)
        return list(seen)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _nesting_depth(value: Any) -> int:
    deepest = 0
    stack = [(value, 1)]
    while stack:
        current, depth = stack.pop()
        if isinstance(current, dict):
            current = list(current.values())
        if isinstance(current, list):
            deepest = max(deepest, depth)
            stack.extend((item, depth + 1) for item in current)
    return deepest


def _compile_value(value: Any) -> TemplateNode:
    if isinstance(value, str):
        if value == TAGS_PLACEHOLDER:
            return TagsNode()
        segments = split_placeholders(value)
        if not any(isinstance(segment, Placeholder) for segment in segments):
            return LiteralNode(value)
        return TextNode(segments)
    if isinstance(value, list):
        return ArrayNode(tuple(_compile_value(item) for item in value))
    if isinstance(value, dict):
        return ObjectNode(tuple((key, _compile_value(item)) for key, item in value.items()))
    return LiteralNode(value)


def _render_node(node: TemplateNode, event: DomainEvent, unresolved: list[str]) -> Any:
    if isinstance(node, LiteralNode):
        return node.value
    if isinstance(node, TagsNode):
        return event.tags
    if isinstance(node, TextNode):
        parts: list[str] = []
        for segment in node.segments:
            if isinstance(segment, str):
                parts.append(segment)
                continue
            value = _resolve(segment.path, event)
            if value is _MISSING:
                unresolved.append(segment.raw)
                parts.append(segment.raw)
            else:
                parts.append(stringify(value))
        return "".join(parts)
    if isinstance(node, ArrayNode):
        return [_render_node(item, event, unresolved) for item in node.items]
    if isinstance(node, ObjectNode):
        return {key: _render_node(item, event, unresolved) for key, item in node.items}
    raise TypeError(f"unknown template node: {type(node).__name__}")


def _resolve(path: tuple[str, ...], event: DomainEvent) -> Any:
    head, rest = path[0], path[1:]
    if head == "event":
        if len(rest) != 1:
            return _MISSING
        field_name = rest[0]
        if field_name in {"type", "name"}:
            return event.name
        if field_name == "timestamp":
            return isoformat(event.occurred_at)
        if field_name == "account_id":
            return event.account_id
        if field_name == "entity":
            return event.entity
        return _MISSING
    if head != event.entity:
        return _MISSING
    current: Any = event.data
    for part in rest:
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current
