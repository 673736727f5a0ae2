# mlm_system/events/handlers.py
"""
Event handlers for the referral network.
Process events from the event bus.
"""
import logging
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


def make_purchase_completed_handler(network) -> Callable[[Dict[str, Any]], None]:
    """
    Build the PURCHASE_COMPLETED handler for a network.

    The commerce side emits {"nodeId": ..., "value": ...} once an order
    is paid; the handler feeds it to recordPurchase.
    """

    def handle_purchase_completed(data: Dict[str, Any]):
        node_id = data.get("nodeId")
        value = data.get("value")

        if not node_id or value is None:
            logger.error(f"PURCHASE_COMPLETED event missing nodeId or value: {data}")
            return

        logger.info(f"Processing purchase of {value} by {node_id}")
        network.turnover.recordPurchase(node_id, value)

    return handle_purchase_completed
