# mlm_system/services/matching_service.py
"""
Binary matching on carry-forward volume.

Volume arriving in a leg waits in that leg's carry-forward pool. When
both pools hold volume, the smaller pool is matched: the matched amount
leaves both pools and a share of it is paid to the income wallet. What
is left over waits for the next purchase.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
import logging

from config import Config
from mlm_system.config.plan import WalletKind, MATCHING_ROLES, MONEY_QUANT
from mlm_system.events.event_bus import eventBus, MLMEvents
from mlm_system.tree.node import Node

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    nodeId: str
    matched: Decimal
    payout: Decimal
    incomeBalance: Decimal


class MatchingService:
    """Evaluates the matching hook for one node at a time."""

    def __init__(self, registry, store, bus=None):
        self.registry = registry
        self.store = store
        self.bus = bus or eventBus

    def evaluate(self, node: Node) -> Optional[MatchResult]:
        """
        Match carry-forward pools for a node.

        Caller holds the registry write lock. Nothing is persisted here;
        see settle() and journalRow().

        Returns:
            MatchResult when volume was matched, else None
        """
        if node.role not in MATCHING_ROLES:
            return None

        matched = min(node.carryForwardA, node.carryForwardB)
        threshold = Config.get_decimal(Config.MATCH_THRESHOLD)
        if matched <= 0 or matched < threshold:
            return None

        rate = Config.get_decimal(Config.MATCH_PAYOUT_RATE)
        payout = (matched * rate).quantize(MONEY_QUANT)

        node.carryForwardA -= matched
        node.carryForwardB -= matched

        with node.lock:
            if payout > 0:
                node.incomeBalance += payout
                node.matchingIncome += payout
            balance = node.incomeBalance

        logger.info(
            f"Matched {matched} for {node.id}: payout {payout}, "
            f"carry-forward A={node.carryForwardA} B={node.carryForwardB}"
        )
        return MatchResult(node.id, matched, payout, balance)

    def journalRow(self, result: MatchResult):
        """Wallet journal row for a payout, None when nothing was paid."""
        if result.payout <= 0:
            return None
        return self.store.walletTransactionRow(
            result.nodeId, "income", WalletKind.MATCHING_PAYOUT,
            result.payout, result.incomeBalance
        )

    def record(self, result: MatchResult):
        self.bus.emit(MLMEvents.MATCHING_PAID, {
            "nodeId": result.nodeId,
            "matched": result.matched,
            "payout": result.payout,
        })

    def settle(self, nodeId: str) -> Optional[MatchResult]:
        """Evaluate one node on its own, persist and announce the result."""
        with self.registry.lock.writing():
            node = self.registry.byId(nodeId)
            result = self.evaluate(node)
            if result is not None:
                self.store.save([node], [self.journalRow(result)])

        if result is not None:
            self.record(result)
        return result
