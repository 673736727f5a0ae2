# mlm_system/events/event_bus.py
"""
Event bus for decoupled communication between components.
Handlers run synchronously in the emitting thread.
"""
from typing import Dict, List, Callable, Any
import logging
import threading

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple in-process event bus.
    Handler failures are logged and do not stop delivery to other handlers.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}
        self._lock = threading.Lock()

    def subscribe(self, eventName: str, handler: Callable):
        """Subscribe handler to event."""
        with self._lock:
            self._handlers.setdefault(eventName, []).append(handler)
        logger.debug(f"Handler {handler.__name__} subscribed to {eventName}")

    def unsubscribe(self, eventName: str, handler: Callable):
        """Unsubscribe handler from event."""
        with self._lock:
            if handler in self._handlers.get(eventName, []):
                self._handlers[eventName].remove(handler)
                logger.debug(f"Handler {handler.__name__} unsubscribed from {eventName}")

    def handlers(self, eventName: str) -> List[Callable]:
        with self._lock:
            return list(self._handlers.get(eventName, []))

    def emit(self, eventName: str, data: Dict[str, Any]):
        """Emit event to all subscribers."""
        handlers = self.handlers(eventName)
        if not handlers:
            return

        logger.debug(f"Emitting event {eventName} with data: {data}")

        for handler in handlers:
            try:
                handler(data)
            except Exception as e:
                logger.error(
                    f"Error in handler {handler.__name__} for event {eventName}: {e}",
                    exc_info=True
                )

    def clear(self):
        """Clear all event handlers."""
        with self._lock:
            self._handlers.clear()


# Global event bus instance
eventBus = EventBus()


# Predefined events
class MLMEvents:
    """Standard referral network events."""

    NODE_REGISTERED = "node.registered"
    BRAND_OWNER_DISPLACED = "brand_owner.displaced"

    PURCHASE_COMPLETED = "purchase.completed"
    PURCHASE_RECORDED = "purchase.recorded"

    MATCHING_PAID = "matching.paid"
    DIRECT_COMMISSION_PAID = "direct_commission.paid"
    CREDITS_ALLOCATED = "credits.allocated"

    WALLET_TOPPED_UP = "wallet.topped_up"
    WITHDRAWAL_REQUESTED = "withdrawal.requested"
    WITHDRAWAL_COMPLETED = "withdrawal.completed"
    WITHDRAWAL_FAILED = "withdrawal.failed"
