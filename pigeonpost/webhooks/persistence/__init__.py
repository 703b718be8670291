"""Persistence models and repositories for webhooks."""

from pigeonpost.webhooks.persistence.models import ErrorLogModel, WebhookRegistrationModel
from pigeonpost.webhooks.persistence.repositories import (
    ErrorLogRepository,
    InMemoryErrorLogRepository,
    InMemoryRegistrationRepository,
    RegistrationRepository,
)

__all__ = [
    "ErrorLogModel",
    "ErrorLogRepository",
    "InMemoryErrorLogRepository",
    "InMemoryRegistrationRepository",
    "RegistrationRepository",
    "WebhookRegistrationModel",
]
