# mlm_system/events/event_bus.py
"""
In-process event bus between the investment/referral flows and the ledger core.
"""
from typing import Dict, List, Callable, Any
import logging
import asyncio

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple publish/subscribe bus.
    A failing handler is logged and never stops the others.
    """

    _instance = None
    _handlers: Dict[str, List[Callable]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._handlers = {}
        return cls._instance

    def subscribe(self, eventName: str, handler: Callable):
        """Subscribe handler to event."""
        handlers = self._handlers.setdefault(eventName, [])
        if handler not in handlers:
            handlers.append(handler)
        logger.debug(f"Handler {handler.__name__} subscribed to {eventName}")

    def unsubscribe(self, eventName: str, handler: Callable):
        """Unsubscribe handler from event."""
        if handler in self._handlers.get(eventName, []):
            self._handlers[eventName].remove(handler)
            logger.debug(f"Handler {handler.__name__} unsubscribed from {eventName}")

    def handlerCount(self, eventName: str) -> int:
        return len(self._handlers.get(eventName, []))

    async def emit(self, eventName: str, data: Dict[str, Any]):
        """Emit event to all subscribers."""
        if eventName not in self._handlers:
            return

        logger.debug(f"Emitting event {eventName} with data: {data}")

        for handler in list(self._handlers[eventName]):
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    handler(data)
            except Exception as e:
                logger.error(
                    f"Error in handler {handler.__name__} for event {eventName}: {e}",
                    exc_info=True
                )

    def clear(self):
        """Clear all event handlers."""
        self._handlers.clear()


# Global event bus instance
eventBus = EventBus()


class MLMEvents:
    """Ledger core events."""

    INVESTMENT_ACTIVATED = "investment.activated"
    REFERRAL_CREATED = "referral.created"
