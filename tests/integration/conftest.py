"""Integration test defaults."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from pigeonpost.db import create_session_factory, resolve_database_url


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Apply default PostgreSQL requirement marker to all integration tests."""
    here = Path(__file__).parent
    for item in items:
        if here in Path(item.path).parents:
            item.add_marker(pytest.mark.requires_postgres)


@pytest.fixture(scope="session")
def run_migrations() -> None:
    """Upgrade the test database to the latest schema once per session."""
    cfg = Config("alembic.ini")
    cfg.set_main_option("sqlalchemy.url", resolve_database_url())
    command.upgrade(cfg, "head")


@pytest_asyncio.fixture
async def session_factory(run_migrations: None) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    # NullPool keeps asyncpg connections from leaking across per-test event loops.
    engine = create_async_engine(resolve_database_url(), poolclass=NullPool)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()
