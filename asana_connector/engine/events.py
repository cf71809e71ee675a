"""
Asana Connector Event Bus — in-process stand-in for the host's event delivery.

A host automation engine exposes two primitives to connectors:
    when(event_id, handler)               — attach a handler to an event id
    await handle_event(event_id, payload) — run every handler for that id

Hosts that have their own bus pass it to AsanaConnector directly; anything
implementing HostEventBus works. EventBus is the default used by the CLI,
the FastAPI bridge and the tests.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Protocol, runtime_checkable

logger = logging.getLogger("asana_connector.engine.events")

EventHandler = Callable[[Dict[str, Any]], Any]


@runtime_checkable
class HostEventBus(Protocol):
    def when(self, event_id: str, handler: EventHandler) -> None: ...

    async def handle_event(self, event_id: str, payload: Dict[str, Any]) -> bool: ...


class EventBus:
    """
    Maps event ids → ordered list of handlers.

    Handlers may be plain functions or coroutine functions. A failing handler
    is logged and does not stop the remaining handlers for the same event.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}

    def when(self, event_id: str, handler: EventHandler) -> None:
        """Attach a handler to an event id."""
        handlers = self._handlers.setdefault(event_id, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug(f"Registered handler for event: {event_id}")

    async def handle_event(self, event_id: str, payload: Dict[str, Any]) -> bool:
        """
        Run every handler registered for ``event_id``, one at a time.

        Returns:
            True if at least one handler was registered, False otherwise.
        """
        handlers = self._handlers.get(event_id, [])
        if not handlers:
            logger.debug(f"No handlers registered for event: {event_id}")
            return False

        for handler in handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Handler {getattr(handler, '__name__', handler)!r} failed "
                    f"for event '{event_id}': {e}"
                )
        return True

    def get_handlers(self, event_id: str) -> List[EventHandler]:
        return list(self._handlers.get(event_id, []))

    def get_all_events(self) -> List[str]:
        return list(self._handlers.keys())

    def clear(self) -> None:
        self._handlers.clear()

    @property
    def count(self) -> int:
        return sum(len(v) for v in self._handlers.values())
