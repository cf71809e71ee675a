"""
Asana Connector — Asana webhook bridge for host automation engines.

Registers local subscriptions on Asana resources, keeps the matching Asana
webhooks in place, answers the X-Hook-Secret handshake and routes change
notifications onto the host's event bus.
"""

__version__ = "1.0.0"
__all__ = ["AsanaConnector", "ConnectorConfig", "EventBus", "EventOptions"]

from asana_connector.connector import AsanaConnector  # noqa: E402
from asana_connector.engine.config import ConnectorConfig  # noqa: E402
from asana_connector.engine.events import EventBus  # noqa: E402
from asana_connector.engine.models import EventOptions  # noqa: E402
