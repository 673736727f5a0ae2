# mlm_system/events/setup.py
"""
Setup network event handlers.
Register all event handlers with the event bus.
"""
import logging

from mlm_system.events.event_bus import MLMEvents
from mlm_system.events.handlers import make_purchase_completed_handler

logger = logging.getLogger(__name__)


def setup_network_event_handlers(network):
    """
    Register the network's event handlers with its event bus.

    Called from NetworkManager.start().
    """
    logger.info("Setting up network event handlers...")

    handler = make_purchase_completed_handler(network)
    network.bus.subscribe(MLMEvents.PURCHASE_COMPLETED, handler)
    network.eventHandlers[MLMEvents.PURCHASE_COMPLETED] = handler
    logger.debug(f"Registered handler for {MLMEvents.PURCHASE_COMPLETED}")

    logger.info("Network event handlers registered successfully")


def teardown_network_event_handlers(network):
    """
    Unregister the network's event handlers.
    Called from NetworkManager.shutdown().
    """
    logger.info("Tearing down network event handlers...")

    for event_name, handler in network.eventHandlers.items():
        network.bus.unsubscribe(event_name, handler)
    network.eventHandlers.clear()

    logger.info("Network event handlers unregistered")
