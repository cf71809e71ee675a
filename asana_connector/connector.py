"""
Asana Connector — bridges Asana webhooks with a host automation engine's event bus.

Lifecycle:
    1. on(options, handler)  — register interest in a resource (startup only)
    2. await start()         — freeze subscriptions, reconcile Asana webhooks
    3. handle(request)       — answer handshakes, route notification batches
    4. await close()         — release the HTTP client

Usage:
    bus = EventBus()
    connector = AsanaConnector(bus, ConnectorConfig(access_token="...", ...))
    connector.on({"gid": "1201", "asana_event": "changed"}, on_task_changed)
    await connector.start()
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from asana_connector.engine.client import AsanaClient, WebhookAPI
from asana_connector.engine.config import ConnectorConfig
from asana_connector.engine.errors import InvalidConfigurationError, WebhookPayloadError
from asana_connector.engine.events import HostEventBus
from asana_connector.engine.handshake import HandshakeResponder
from asana_connector.engine.logging import (
    AsyncLogQueue,
    log_system_event,
    log_webhook_request,
)
from asana_connector.engine.models import (
    EventOptions,
    Notification,
    WebhookRequest,
    WebhookResponse,
    parse_notifications,
)
from asana_connector.engine.reconciler import ReconcileResult, WebhookReconciler
from asana_connector.engine.registry import Subscription, SubscriptionRegistry
from asana_connector.engine.router import EventRouter

logger = logging.getLogger("asana_connector.connector")


class AsanaConnector:
    """
    One connector instance owns its subscription registry; the HTTP boundary
    receives the instance explicitly (see asana_connector.bridge).
    """

    def __init__(
        self,
        bus: HostEventBus,
        config: ConnectorConfig,
        connector_id: Optional[str] = None,
        client: Optional[WebhookAPI] = None,
        log_queue: Optional[AsyncLogQueue] = None,
    ):
        self.id = connector_id or uuid.uuid4().hex[:12]
        self._bus = bus
        self._config = config
        self._client = client or AsanaClient(config.access_token, api_config=config.api)
        self._log_queue = log_queue

        self._registry = SubscriptionRegistry()
        self._handshake = HandshakeResponder()
        self._router = EventRouter(
            self._registry, bus, log_queue=log_queue, connector_id=self.id,
        )
        self._reconciler = WebhookReconciler(
            self._client, config, log_queue=log_queue, connector_id=self.id,
        )
        self._started = False

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    def on(
        self,
        options: Union[EventOptions, Dict[str, Any]],
        handler: Callable[..., Any],
        event_id: Optional[str] = None,
    ) -> Subscription:
        """
        Subscribe ``handler`` to changes of one Asana resource.

        Args:
            options: ``{"gid": ..., "asana_event": ...}``; asana_event defaults to "*".
            handler: Callable receiving the merged payload dict.
            event_id: Explicit subscription id. Defaults to
                ``Asana{webhook_path}/{gid}/{asana_event}/{connector_id}``.

        Raises:
            InvalidConfigurationError on malformed options.
            SubscriptionError on a duplicate id or after start().
        """
        if not isinstance(options, EventOptions):
            try:
                options = EventOptions.model_validate(options)
            except ValidationError as e:
                raise InvalidConfigurationError(
                    f"Invalid event options: {e.errors(include_url=False)}",
                    setting="event_options",
                ) from e

        if not event_id:
            event_id = f"Asana{self.webhook_path}/{options.gid}/{options.asana_event}/{self.id}"

        subscription = self._registry.register(
            Subscription(id=event_id, options=options, handler=handler)
        )
        self._bus.when(subscription.id, handler)
        return subscription

    # -----------------------------------------------------------------------
    # Startup
    # -----------------------------------------------------------------------

    async def start(self) -> List[ReconcileResult]:
        """
        Freeze the registry and reconcile webhooks with Asana.

        Any error raised here is fatal: the host must not start serving
        deliveries with an incomplete webhook setup.
        """
        self._registry.freeze()
        results = await self._reconciler.reconcile(self._registry.all())
        self._started = True

        if self._log_queue:
            self._log_queue.push(log_system_event(
                "connector_started",
                details={
                    "connector_id": self.id,
                    "subscriptions": len(self._registry),
                    "webhooks": {r.subscription_id: r.status for r in results},
                },
            ))
        return results

    # -----------------------------------------------------------------------
    # Inbound deliveries
    # -----------------------------------------------------------------------

    def accept(self, request: WebhookRequest) -> Tuple[WebhookResponse, List[Notification]]:
        """
        Decide the HTTP response for a delivery before any dispatch happens.

        Returns:
            (response, notifications) — notifications is empty for a handshake.
            A malformed notification body yields a 400 and no notifications.
        """
        response = self._handshake.respond(request)
        if self._handshake.is_handshake(request):
            self._log_request("handshake", request, response.status_code)
            return response, []

        try:
            notifications = parse_notifications(request.body)
        except WebhookPayloadError as e:
            logger.warning(f"Asana Connector - rejected delivery on {request.path}: {e.message}")
            self._log_request("rejected", request, 400, error=e.message)
            return WebhookResponse(status_code=400, body={"error": e.message}), []

        self._log_request("notification", request, response.status_code, len(notifications))
        return response, notifications

    async def route(self, notifications: List[Notification]) -> int:
        return await self._router.route(notifications)

    async def handle(self, request: WebhookRequest) -> WebhookResponse:
        """Accept a delivery and route it inline. The bridge routes after responding instead."""
        response, notifications = self.accept(request)
        if notifications:
            await self.route(notifications)
        return response

    def _log_request(
        self,
        kind: str,
        request: WebhookRequest,
        status_code: int,
        event_count: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        if self._log_queue:
            self._log_queue.push(log_webhook_request(
                kind=kind,
                path=request.path,
                status_code=status_code,
                connector_id=self.id,
                event_count=event_count,
                error=error,
            ))

    # -----------------------------------------------------------------------
    # Accessors
    # -----------------------------------------------------------------------

    @property
    def webhook_path(self) -> str:
        return self._config.effective_webhook_path

    @property
    def config(self) -> ConnectorConfig:
        return self._config

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def started(self) -> bool:
        return self._started

    def sdk(self) -> WebhookAPI:
        """The Asana API client, for calls beyond webhook management."""
        return self._client

    async def close(self) -> None:
        aclose = getattr(self._client, "aclose", None)
        if aclose is not None:
            await aclose()
