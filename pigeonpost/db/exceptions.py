"""Database-related exceptions for PigeonPost.

Messages never include credentials from the connection URL.
"""


class DatabaseError(Exception):
    """Base exception for database operations."""


class ConfigurationError(DatabaseError):
    """Raised when database configuration is invalid or missing."""
