"""Async engine creation for the webhook store."""

from __future__ import annotations

import os

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from pigeonpost.config.models import DatabaseConfig
from pigeonpost.db.exceptions import ConfigurationError

DATABASE_URL_ENV = "PIGEONPOST_DATABASE_URL"

_ASYNC_DRIVER = "postgresql+asyncpg"
_POSTGRES_SCHEMES = {"postgres", "postgresql", "postgresql+asyncpg", "postgresql+psycopg2"}


def resolve_database_url(url: str | None = None) -> str:
    """Explicit URL, else ``PIGEONPOST_DATABASE_URL``, rewritten for asyncpg.

    Raises:
        ConfigurationError: no URL is configured or it is not PostgreSQL.
    """
    raw = (url or "").strip() or os.environ.get(DATABASE_URL_ENV, "").strip()
    if not raw:
        raise ConfigurationError(f"Database URL not set. Set {DATABASE_URL_ENV} or database.url.")
    try:
        parsed = make_url(raw)
    except ArgumentError as exc:
        raise ConfigurationError("Database URL could not be parsed.") from exc
    if parsed.drivername not in _POSTGRES_SCHEMES:
        raise ConfigurationError(f"Database URL must be PostgreSQL, got driver '{parsed.drivername}'.")
    return parsed.set(drivername=_ASYNC_DRIVER).render_as_string(hide_password=False)


def create_engine(config: DatabaseConfig | None = None, *, pool_timeout: float = 30.0) -> AsyncEngine:
    """Create an async engine from database settings.

    Connections are pinged before use so a restarted database does not fail
    the first delivery after it comes back.
    """
    cfg = config or DatabaseConfig()
    return create_async_engine(
        resolve_database_url(cfg.url),
        pool_size=cfg.pool_size,
        max_overflow=cfg.max_overflow,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
        echo=cfg.echo,
    )
