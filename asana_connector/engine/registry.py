"""
Asana Connector Subscription Registry — local interest in Asana resource changes.

The registry is populated during startup (AsanaConnector.on) and frozen once
reconciliation begins. After that it is only read, so concurrent deliveries
need no locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from asana_connector.engine.errors import SubscriptionError
from asana_connector.engine.models import EventOptions

logger = logging.getLogger("asana_connector.engine.registry")


@dataclass(frozen=True)
class Subscription:
    """A consumer's registered interest in one resource, filtered by action."""

    id: str                       # e.g., "Asana/asana-connector/webhook/1201/changed/c1"
    options: EventOptions
    handler: Optional[Callable[..., Any]] = None

    @property
    def resource_gid(self) -> str:
        return self.options.gid

    @property
    def action_filter(self) -> str:
        return self.options.asana_event


class SubscriptionRegistry:
    """
    Ordered subscription store keyed by subscription id.

    Usage:
        registry = SubscriptionRegistry()
        registry.register(Subscription(id="s1", options=EventOptions(gid="1201")))
        registry.freeze()
        matches = registry.matching("changed")
    """

    def __init__(self) -> None:
        # dicts keep insertion order, which is the registration order
        self._subscriptions: Dict[str, Subscription] = {}
        self._frozen = False

    def register(self, subscription: Subscription) -> Subscription:
        """Add a subscription. Ids must be unique and the registry not frozen."""
        if self._frozen:
            raise SubscriptionError(
                f"Cannot register '{subscription.id}' after the connector has started",
                subscription_id=subscription.id,
            )
        if subscription.id in self._subscriptions:
            raise SubscriptionError(
                f"Subscription id already registered: {subscription.id}",
                subscription_id=subscription.id,
                resource_gid=subscription.resource_gid,
            )
        self._subscriptions[subscription.id] = subscription
        logger.debug(
            f"Registered subscription: {subscription.id} "
            f"(gid={subscription.resource_gid}, action={subscription.action_filter})"
        )
        return subscription

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(subscription_id)

    def all(self) -> List[Subscription]:
        """All subscriptions in registration order."""
        return list(self._subscriptions.values())

    def matching(self, action: str) -> List[Subscription]:
        """Subscriptions whose action filter accepts ``action``, in registration order."""
        return [s for s in self._subscriptions.values() if s.options.matches(action)]

    def resource_gids(self) -> List[str]:
        """Distinct resource gids, first-seen order."""
        return list(dict.fromkeys(s.resource_gid for s in self._subscriptions.values()))

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._subscriptions
