"""PigeonPost database layer: Base, engine, session factory, exceptions."""

from pigeonpost.db.base import Base
from pigeonpost.db.engine import DATABASE_URL_ENV, create_engine, resolve_database_url
from pigeonpost.db.exceptions import ConfigurationError, DatabaseError
from pigeonpost.db.session import create_session_factory

__all__ = [
    "Base",
    "ConfigurationError",
    "DATABASE_URL_ENV",
    "DatabaseError",
    "create_engine",
    "create_session_factory",
    "resolve_database_url",
]
