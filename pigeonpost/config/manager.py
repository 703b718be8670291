"""Process-wide configuration access for PigeonPost."""

from __future__ import annotations

import json
import os
from pathlib import Path
from threading import Lock
from typing import Any, ClassVar

from pigeonpost.config.loader import load_yaml_config
from pigeonpost.config.models import PigeonPostConfig

ENV_PREFIX = "PIGEONPOST_"
# Consumed directly by the loader and the db engine, not by the config model.
_RESERVED_ENV = {"PIGEONPOST_CONFIG", "PIGEONPOST_DATABASE_URL"}


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in updates.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce_env_value(raw: str) -> Any:
    value = raw.strip()
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _collect_env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Turn PIGEONPOST_SECTION__FIELD=value variables into a nested mapping."""
    source = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for key, raw_value in source.items():
        if not key.startswith(ENV_PREFIX) or key in _RESERVED_ENV:
            continue
        path = [part.strip().lower() for part in key[len(ENV_PREFIX) :].split("__") if part.strip()]
        if len(path) < 2:
            continue
        cursor = overrides
        for part in path[:-1]:
            existing = cursor.get(part)
            if not isinstance(existing, dict):
                existing = {}
                cursor[part] = existing
            cursor = existing
        cursor[path[-1]] = _coerce_env_value(raw_value)
    return overrides


class ConfigManager:
    """Thread-safe singleton holding the active PigeonPostConfig."""

    _instance: ClassVar[ConfigManager | None] = None
    _class_lock: ClassVar[Lock] = Lock()

    def __init__(self) -> None:
        self._lock = Lock()
        self._config = PigeonPostConfig.model_validate({})

    @classmethod
    def instance(cls) -> ConfigManager:
        if cls._instance is not None:
            return cls._instance
        with cls._class_lock:
            if cls._instance is None:
                cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset_for_tests(cls) -> None:
        with cls._class_lock:
            cls._instance = None

    @classmethod
    def load(
        cls,
        config_path: str | Path | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ConfigManager:
        """Load configuration: defaults < YAML file < environment < runtime overrides."""
        manager = cls.instance()
        merged = _deep_merge(load_yaml_config(config_path), _collect_env_overrides())
        merged = _deep_merge(merged, overrides or {})
        new_config = PigeonPostConfig.model_validate(merged)
        with manager._lock:
            manager._config = new_config
        return manager

    def get(self) -> PigeonPostConfig:
        with self._lock:
            return self._config
