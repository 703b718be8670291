"""Webhook core: template compiler, delivery, dispatch, inbound routing and storage."""

from pigeonpost.webhooks.catalog import DATA_FIELDS, TRIGGER_EVENTS, generate_payload_template
from pigeonpost.webhooks.delivery import DeliveryClient
from pigeonpost.webhooks.dispatcher import DispatchQueue, OutboundDispatcher, RegistrationLookup
from pigeonpost.webhooks.error_log import ErrorLogger
from pigeonpost.webhooks.events import ContactEventPublisher
from pigeonpost.webhooks.http.app import HttpGatewayConfig, create_webhook_app
from pigeonpost.webhooks.inbound import InboundHandler, InboundRouter
from pigeonpost.webhooks.main import WebhookApplication, build_database_application, build_webhook_application
from pigeonpost.webhooks.manager import RegistrationManager
from pigeonpost.webhooks.template import TemplateCompiler, TemplateSyntaxError
from pigeonpost.webhooks.types import (
    SECRET_HEADER,
    DeliveryAttempt,
    DeliveryOutcome,
    DispatchResult,
    DomainEvent,
    ErrorLogEntry,
    HeaderPair,
    InboundDecision,
    RegistrationConfig,
    RegistrationFilter,
    ValidationError,
    ValidationResult,
    WebhookRegistration,
)

__all__ = [
    "ContactEventPublisher",
    "DATA_FIELDS",
    "DeliveryAttempt",
    "DeliveryClient",
    "DeliveryOutcome",
    "DispatchQueue",
    "DispatchResult",
    "DomainEvent",
    "ErrorLogEntry",
    "ErrorLogger",
    "HeaderPair",
    "HttpGatewayConfig",
    "InboundDecision",
    "InboundHandler",
    "InboundRouter",
    "OutboundDispatcher",
    "RegistrationConfig",
    "RegistrationFilter",
    "RegistrationLookup",
    "RegistrationManager",
    "SECRET_HEADER",
    "TRIGGER_EVENTS",
    "TemplateCompiler",
    "TemplateSyntaxError",
    "ValidationError",
    "ValidationResult",
    "WebhookApplication",
    "WebhookRegistration",
    "build_database_application",
    "build_webhook_application",
    "create_webhook_app",
    "generate_payload_template",
]
