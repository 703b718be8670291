"""Structured key=value logging for PigeonPost processes."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_KEY_ORDER = ["timestamp", "level", "logger", "event"]

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _sanitize_string(value: str) -> str:
    """Escape control characters so the log entry stays on a single line."""
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


def replace_newlines_processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Escape newlines in string values, including formatted tracebacks and payload dumps."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _sanitize_string(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = [_sanitize_string(item) if isinstance(item, str) else item for item in value]
        elif isinstance(value, dict):
            event_dict[key] = {k: _sanitize_string(v) if isinstance(v, str) else v for k, v in value.items()}
    return event_dict


def build_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Formatter rendering both stdlib and structlog records as one key=value line."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.StackInfoRenderer(),
            # must run after format_exc_info so tracebacks are escaped too
            structlog.processors.format_exc_info,
            replace_newlines_processor,
            structlog.processors.KeyValueRenderer(key_order=_KEY_ORDER, drop_missing=True),
        ],
    )


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Route the ``pigeonpost`` logger tree through structlog at ``level``."""
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logger = logging.getLogger("pigeonpost")
    logger.setLevel(level.upper())
    if not any(getattr(handler, "_pigeonpost", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(build_formatter())
        handler._pigeonpost = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
