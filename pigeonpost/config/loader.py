"""YAML configuration file loading with ${VAR} interpolation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

DEFAULT_FILENAME = "pigeonpost.yaml"
CONFIG_PATH_ENV = "PIGEONPOST_CONFIG"

_ENV_REF = re.compile(r"\$\{([A-Z0-9_]+)(?::-([^}]*))?\}")


class ConfigLoadError(ValueError):
    """Raised when the configuration file cannot be parsed."""


def resolve_config_path(explicit_path: str | Path | None = None) -> Path:
    """Pick the config file: PIGEONPOST_CONFIG, then explicit path, then ./pigeonpost.yaml."""
    env_path = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path)
    if explicit_path is not None and str(explicit_path).strip():
        return Path(str(explicit_path).strip())
    return Path.cwd() / DEFAULT_FILENAME


def load_yaml_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load the YAML mapping at ``path``; a missing or blank file yields ``{}``.

    String values may reference environment variables as ``${NAME}`` or
    ``${NAME:-fallback}`` so secrets such as the database URL stay out of the file.
    """
    target = resolve_config_path(path)
    if not target.exists():
        return {}
    text = target.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            raise ConfigLoadError(f"Invalid YAML at {target}:{mark.line + 1}:{mark.column + 1}") from exc
        raise ConfigLoadError(f"Invalid YAML at {target}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Config root must be a mapping: {target}")
    return _interpolate(data)


def _interpolate(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_REF.sub(_env_replacement, value)
    if isinstance(value, dict):
        return {key: _interpolate(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_interpolate(item) for item in value]
    return value


def _env_replacement(match: re.Match[str]) -> str:
    name, fallback = match.group(1), match.group(2)
    resolved = os.environ.get(name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigLoadError(f"environment variable {name} referenced in config is not set")
