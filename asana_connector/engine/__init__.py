"""Asana Connector Engine — config, API client, reconciliation, handshake, routing."""

from asana_connector.engine.client import AsanaClient  # noqa: F401
from asana_connector.engine.handshake import HandshakeResponder  # noqa: F401
from asana_connector.engine.reconciler import WebhookReconciler  # noqa: F401
from asana_connector.engine.registry import SubscriptionRegistry  # noqa: F401
from asana_connector.engine.router import EventRouter  # noqa: F401

__all__ = [
    "AsanaClient",
    "HandshakeResponder",
    "WebhookReconciler",
    "SubscriptionRegistry",
    "EventRouter",
]
