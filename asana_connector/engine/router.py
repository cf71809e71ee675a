"""
Asana Connector Event Router — fan one notification batch out to local subscriptions.

For each notification (array order) every subscription whose action filter
is "*" or equal to the notification's action receives, in registration
order, a payload merging the subscription's options with the notification's
fields. Resource gids are not re-checked: the webhook that delivered the
batch already scopes it.

Dispatches are awaited one by one. A failing dispatch is logged and the
router moves on, so the delivery as a whole is always accepted.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, Optional

from asana_connector.engine.events import HostEventBus
from asana_connector.engine.logging import AsyncLogQueue, log_event_dispatch
from asana_connector.engine.models import Notification
from asana_connector.engine.registry import Subscription, SubscriptionRegistry

logger = logging.getLogger("asana_connector.engine.router")


def build_payload(subscription: Subscription, notification: Notification) -> Dict[str, Any]:
    """Subscription id and options, overlaid with the notification's fields."""
    payload: Dict[str, Any] = {
        "id": subscription.id,
        "options": subscription.options.model_dump(),
    }
    payload.update(notification.fields())
    return payload


class EventRouter:

    def __init__(
        self,
        registry: SubscriptionRegistry,
        bus: HostEventBus,
        log_queue: Optional[AsyncLogQueue] = None,
        connector_id: Optional[str] = None,
    ):
        self._registry = registry
        self._bus = bus
        self._log_queue = log_queue
        self._connector_id = connector_id

    async def route(self, notifications: Iterable[Notification]) -> int:
        """
        Dispatch a batch.

        Returns:
            Number of dispatches attempted (matches across the whole batch).
        """
        dispatched = 0
        for notification in notifications:
            matches = self._registry.matching(notification.action)
            if not matches:
                logger.debug(f"No subscription for action '{notification.action}' — dropped")
                continue

            for subscription in matches:
                await self._dispatch(subscription, notification)
                dispatched += 1
        return dispatched

    async def _dispatch(self, subscription: Subscription, notification: Notification) -> None:
        start_time = time.monotonic()
        error: Optional[str] = None
        try:
            await self._bus.handle_event(subscription.id, build_payload(subscription, notification))
        except Exception as e:
            error = str(e)
            logger.exception(
                f"Dispatch of '{notification.action}' to {subscription.id} failed: {e}"
            )

        if self._log_queue:
            self._log_queue.push(log_event_dispatch(
                subscription_id=subscription.id,
                action=notification.action,
                duration_ms=(time.monotonic() - start_time) * 1000,
                success=error is None,
                connector_id=self._connector_id,
                error=error,
            ))
