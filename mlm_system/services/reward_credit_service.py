# mlm_system/services/reward_credit_service.py
"""
Reward credits derived from leg turnover.

Slabs are consumed in order and count only when fully covered:
200,000 -> 10, next 500,000 -> 15, next 1,000,000 -> 20, then every
further full 2,000,000 -> 25.
"""
from decimal import Decimal
from typing import Dict, List
import logging

from mlm_system.config.plan import (
    Leg, REWARD_CREDIT_SLABS, REPEATING_SLAB_WIDTH, REPEATING_SLAB_CREDITS
)
from mlm_system.events.event_bus import eventBus, MLMEvents
from mlm_system.tree.node import Node, CreditLedgerEntry
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


def rewardCredits(turnover) -> int:
    """Credits earned by a leg with this much turnover."""
    remaining = Decimal(str(turnover))
    credits = 0

    for width, slabCredits in REWARD_CREDIT_SLABS:
        if remaining < width:
            return credits
        credits += slabCredits
        remaining -= width

    return credits + int(remaining // REPEATING_SLAB_WIDTH) * REPEATING_SLAB_CREDITS


class RewardCreditService:
    """
    Credit consolidation.

    Each leg's credits are recomputed from its turnover; the increase over
    what that leg already earned is added to rewardCredits and written to
    the credit ledger.
    """

    def __init__(self, registry, store, bus=None):
        self.registry = registry
        self.store = store
        self.bus = bus or eventBus

    def _allocateNode(self, node: Node) -> List[CreditLedgerEntry]:
        entries = []
        for leg in Leg:
            turnover = node.legSales(leg)
            earned = rewardCredits(turnover)
            delta = earned - node.creditsFrom(leg)
            if delta <= 0:
                continue

            node.setCreditsFrom(leg, earned)
            with node.lock:
                node.rewardCredits += delta
                running = node.rewardCredits

            entry = CreditLedgerEntry(
                date=timeMachine.now,
                leg=leg,
                turnoverAtEntry=turnover,
                creditsEarnedThisEntry=delta,
                runningTotalCredits=running,
            )
            node.creditHistory.append(entry)
            entries.append(entry)
        return entries

    def _persist(self, allocated: Dict[Node, List[CreditLedgerEntry]]):
        self.store.save(allocated.keys(), [
            self.store.creditEntryRow(node.id, entry)
            for node, entries in allocated.items()
            for entry in entries
        ])

    def _announce(self, allocated: Dict[Node, List[CreditLedgerEntry]]):
        for node, entries in allocated.items():
            self.bus.emit(MLMEvents.CREDITS_ALLOCATED, {
                "nodeId": node.id,
                "earned": sum(e.creditsEarnedThisEntry for e in entries),
                "total": node.rewardCredits,
            })

    def allocate(self, nodeId: str) -> int:
        """
        Consolidate credits for one node.

        Returns:
            Credits newly earned
        """
        with self.registry.lock.writing():
            node = self.registry.byId(nodeId)
            entries = self._allocateNode(node)
            allocated = {node: entries} if entries else {}
            self._persist(allocated)

        self._announce(allocated)
        earned = sum(e.creditsEarnedThisEntry for e in entries)
        if earned:
            logger.info(f"Allocated {earned} reward credits to {nodeId}")
        return earned

    def allocateAll(self) -> Dict[str, int]:
        """
        Consolidate credits for every node.

        Returns:
            {nodeId: credits newly earned} for nodes that earned any
        """
        logger.info("Starting reward credit consolidation")

        with self.registry.lock.writing():
            allocated = {}
            for node in self.registry.all_nodes():
                entries = self._allocateNode(node)
                if entries:
                    allocated[node] = entries
            self._persist(allocated)

        self._announce(allocated)
        summary = {
            node.id: sum(e.creditsEarnedThisEntry for e in entries)
            for node, entries in allocated.items()
        }
        logger.info(
            f"Reward credit consolidation completed: {len(summary)} nodes, "
            f"{sum(summary.values())} credits"
        )
        return summary

    def getCreditHistory(self, nodeId: str) -> List[CreditLedgerEntry]:
        with self.registry.lock.reading():
            return list(self.registry.byId(nodeId).creditHistory)
