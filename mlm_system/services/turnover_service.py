# mlm_system/services/turnover_service.py
"""
Turnover aggregation for Franchise A (left subtree) and Franchise B
(right subtree), plus the read views built on top of it.
"""
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from config import Config
from mlm_system.config.plan import Leg, WalletKind, MONEY_QUANT
from mlm_system.errors import OutOfRange
from mlm_system.events.event_bus import eventBus, MLMEvents
from mlm_system.tree.node import Node

logger = logging.getLogger(__name__)


class TurnoverService:
    """Records purchases and answers turnover queries."""

    def __init__(self, registry, store, matching, bus=None):
        self.registry = registry
        self.store = store
        self.matching = matching
        self.bus = bus or eventBus

    # ============================================================
    # PURCHASES
    # ============================================================

    def recordPurchase(self, nodeId: str, value) -> Dict:
        """
        Record a purchase and propagate it up the tree.

        Every ancestor gains the value in the leg the buyer sits in, both
        in cumulative leg sales and in the carry-forward pool; then the
        matching hook runs for each ancestor. The registry write lock is
        held for the whole propagation.

        Args:
            nodeId: Buyer
            value: Purchase value, must be positive

        Returns:
            Dict with the ancestors touched and payouts made

        Raises:
            OutOfRange: value <= 0
            NotFound: unknown buyer
            DurabilityError: applied in memory but not persisted
        """
        value = Decimal(str(value))
        if value <= 0:
            raise OutOfRange(f"Purchase value must be positive, got {value}")

        with self.registry.lock.writing():
            buyer = self.registry.byId(nodeId)
            buyer.purchaseValue += value
            touched = [buyer]

            chain = self.registry.walker.get_upline_chain(buyer)
            for ancestor, leg in chain:
                ancestor.addLegSales(leg, value)
                ancestor.addCarryForward(leg, value)
                touched.append(ancestor)

            commission = self._payDirectCommission(buyer, value)
            if commission is not None:
                touched.append(commission[0])

            results = []
            for ancestor, _ in chain:
                result = self.matching.evaluate(ancestor)
                if result is not None:
                    results.append(result)

            rows = [self.matching.journalRow(r) for r in results]
            if commission is not None:
                sponsor, amount, balance = commission
                rows.append(self.store.walletTransactionRow(
                    sponsor.id, "income", WalletKind.DIRECT_COMMISSION, amount, balance, nodeId
                ))
            self.store.save(touched, rows)

        logger.info(
            f"Purchase of {value} by {nodeId} propagated to {len(chain)} ancestors, "
            f"{len(results)} matching payouts"
        )

        if commission is not None:
            self.bus.emit(MLMEvents.DIRECT_COMMISSION_PAID, {
                "nodeId": sponsor.id,
                "buyerId": nodeId,
                "amount": amount,
            })
        for result in results:
            self.matching.record(result)

        self.bus.emit(MLMEvents.PURCHASE_RECORDED, {
            "nodeId": nodeId,
            "value": value,
            "ancestors": [a.id for a, _ in chain],
        })

        return {
            "nodeId": nodeId,
            "value": value,
            "ancestors": [a.id for a, _ in chain],
            "matching": [r.nodeId for r in results],
        }

    def _payDirectCommission(self, buyer: Node, value: Decimal):
        """Pay the buyer's sponsor a share of the purchase, if a rate is set."""
        rate = Config.get_decimal(Config.DIRECT_COMMISSION_RATE)
        if rate <= 0 or not buyer.sponsorId:
            return None
        sponsor = self.registry.get(buyer.sponsorId)
        if sponsor is None:
            logger.warning(f"Sponsor {buyer.sponsorId} of {buyer.id} not found, no commission")
            return None

        amount = (value * rate).quantize(MONEY_QUANT)
        if amount <= 0:
            return None

        with sponsor.lock:
            sponsor.incomeBalance += amount
            sponsor.directIncome += amount
            balance = sponsor.incomeBalance

        logger.info(f"Direct commission {amount} to {sponsor.id} for purchase by {buyer.id}")
        return sponsor, amount, balance

    # ============================================================
    # TURNOVER
    # ============================================================

    def legTurnover(self, nodeId: str, leg: Leg) -> Decimal:
        """Incrementally maintained leg turnover."""
        return self.registry.byId(nodeId).legSales(leg)

    def legTurnoverFullWalk(self, nodeId: str, leg: Leg) -> Decimal:
        """Leg turnover recomputed by walking the whole leg subtree."""
        with self.registry.lock.reading():
            node = self.registry.byId(nodeId)
            walker = self.registry.walker
            return walker.subtree_purchase_total(walker.leg_root(node, leg))

    def getFranchise(self, nodeId: str, leg: Leg) -> Dict:
        """Members of one leg in level order with their purchase values."""
        with self.registry.lock.reading():
            node = self.registry.byId(nodeId)
            walker = self.registry.walker
            members = [
                {
                    "id": member.id,
                    "name": member.name,
                    "role": member.role.value,
                    "depth": member.depth,
                    "purchaseValue": member.purchaseValue,
                }
                for member in walker.iter_subtree(walker.leg_root(node, leg))
            ]
            return {
                "nodeId": node.id,
                "leg": leg.value,
                "turnover": node.legSales(leg),
                "members": members,
            }

    # ============================================================
    # VIEWS
    # ============================================================

    def getHierarchy(self, nodeId: str, maxDepth: Optional[int] = None) -> Dict:
        """
        Nested snapshot of a node's downline.

        Args:
            nodeId: Top of the snapshot
            maxDepth: Levels below the top to include (None for all)
        """
        with self.registry.lock.reading():
            return self._hierarchy(self.registry.byId(nodeId), 0, maxDepth)

    def _hierarchy(self, node: Node, level: int, maxDepth: Optional[int]) -> Dict:
        entry = node.summary()
        entry["legASales"] = node.legASales
        entry["legBSales"] = node.legBSales
        entry["children"] = {}

        if maxDepth is not None and level >= maxDepth:
            return entry

        for leg in Leg:
            child = self.registry.walker.leg_root(node, leg)
            if child is not None:
                entry["children"][leg.side] = self._hierarchy(child, level + 1, maxDepth)
        return entry

    def getTreeLevels(self) -> List[List[Dict]]:
        """All trees, level by level, roots first."""
        with self.registry.lock.reading():
            return [
                [node.summary() for node in level]
                for level in self.registry.walker.iter_levels(self.registry.roots())
            ]

    def getFinancialData(self, nodeId: str) -> Dict:
        """Balances, leg turnover and credits for one node."""
        with self.registry.lock.reading():
            node = self.registry.byId(nodeId)
            with node.lock:
                return {
                    "nodeId": node.id,
                    "purchaseValue": node.purchaseValue,
                    "legASales": node.legASales,
                    "legBSales": node.legBSales,
                    "carryForwardA": node.carryForwardA,
                    "carryForwardB": node.carryForwardB,
                    "incomeBalance": node.incomeBalance,
                    "spendableBalance": node.spendableBalance,
                    "directIncome": node.directIncome,
                    "matchingIncome": node.matchingIncome,
                    "rewardCredits": node.rewardCredits,
                    "directReferrals": len(node.directReferralIds),
                }
