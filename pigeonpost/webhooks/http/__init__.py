"""HTTP surface for PigeonPost webhooks."""

from pigeonpost.webhooks.http.app import HttpGatewayConfig, RegistrationPayload, create_webhook_app

__all__ = ["HttpGatewayConfig", "RegistrationPayload", "create_webhook_app"]
