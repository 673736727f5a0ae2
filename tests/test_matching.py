# tests/test_matching.py
"""
Tests for binary matching, carry-forward and the direct commission hook.

Run:
    pytest tests/test_matching.py -v
"""
from decimal import Decimal

import pytest

from config import Config
from mlm_system.events.event_bus import MLMEvents
from models.wallet_transaction import WalletTransaction


@pytest.fixture
def paying_config(network_config):
    """10% of matched volume is paid, no threshold."""
    network_config.set(Config.MATCH_PAYOUT_RATE, Decimal("0.10"))
    network_config.set(Config.MATCH_THRESHOLD, Decimal("0"))
    return network_config


# =============================================================================
# TEST CLASS: Matching
# =============================================================================

class TestMatching:

    def test_one_sided_volume_carries_forward(self, paying_config, network, founder, add_customers):
        """
        TEST: Volume in only one leg waits in carry-forward, nothing is paid.
        """
        c1, c2 = add_customers(2)

        network.turnover.recordPurchase(c1.id, 1000)

        assert founder.carryForwardA == Decimal("1000")
        assert founder.carryForwardB == 0
        assert founder.incomeBalance == 0

    def test_pairs_smaller_leg(self, paying_config, network, founder, add_customers):
        """
        TEST: Matched = min(A, B); payout goes to income, remainder stays.
        """
        c1, c2 = add_customers(2)
        network.turnover.recordPurchase(c1.id, 1000)

        result = network.turnover.recordPurchase(c2.id, 400)

        assert result["matching"] == [founder.id]
        assert founder.incomeBalance == Decimal("40.00")
        assert founder.matchingIncome == Decimal("40.00")
        assert founder.carryForwardA == Decimal("600")
        assert founder.carryForwardB == 0
        # cumulative turnover is never consumed by matching
        assert founder.legASales == Decimal("1000")
        assert founder.legBSales == Decimal("400")

    def test_threshold_defers_payout(self, paying_config, network, founder, add_customers):
        """
        TEST: Matched volume below MATCH_THRESHOLD waits for the next cycle.
        """
        paying_config.set(Config.MATCH_THRESHOLD, Decimal("500"))
        c1, c2 = add_customers(2)
        network.turnover.recordPurchase(c1.id, 1000)
        network.turnover.recordPurchase(c2.id, 400)

        assert founder.incomeBalance == 0
        assert founder.carryForwardB == Decimal("400")

        network.turnover.recordPurchase(c2.id, 100)

        assert founder.incomeBalance == Decimal("50.00")
        assert founder.carryForwardA == Decimal("500")
        assert founder.carryForwardB == 0

    def test_zero_rate_still_consumes_pools(self, network, founder, add_customers):
        """
        TEST: With no payout rate, matched volume still leaves both pools.
        """
        c1, c2 = add_customers(2)
        network.turnover.recordPurchase(c1.id, 300)
        network.turnover.recordPurchase(c2.id, 200)

        assert founder.incomeBalance == 0
        assert founder.carryForwardA == Decimal("100")
        assert founder.carryForwardB == 0

    def test_brand_owner_not_matched(self, paying_config, network, add_customers):
        """
        TEST: Brand owners earn direct income only; their pools are left alone.
        """
        brand = network.placement.registerBrandOwner("Brand", "brand@example.com")
        left, right = add_customers(2, sponsorId=brand.id)

        network.turnover.recordPurchase(left.id, 500)
        network.turnover.recordPurchase(right.id, 500)

        assert brand.incomeBalance == 0
        assert brand.carryForwardA == Decimal("500")
        assert brand.carryForwardB == Decimal("500")

    def test_payout_event_and_journal(self, paying_config, network, founder, bus,
                                      add_customers, session_factory):
        """
        TEST: A payout emits MATCHING_PAID and writes a wallet journal entry.
        """
        received = []
        bus.subscribe(MLMEvents.MATCHING_PAID, received.append)
        c1, c2 = add_customers(2)

        network.turnover.recordPurchase(c1.id, 200)
        network.turnover.recordPurchase(c2.id, 200)

        assert received == [{"nodeId": founder.id, "matched": Decimal("200"), "payout": Decimal("20.00")}]

        session = session_factory()
        try:
            entry = session.query(WalletTransaction).filter_by(nodeID=founder.id).one()
            assert entry.kind == "matching_payout"
            assert entry.amount == Decimal("20.00")
        finally:
            session.close()

    def test_settle_single_node(self, paying_config, network, founder):
        """
        TEST: settle() runs the hook for one node outside a purchase.
        """
        founder.carryForwardA = Decimal("70")
        founder.carryForwardB = Decimal("30")

        result = network.matching.settle(founder.id)

        assert result.matched == Decimal("30")
        assert founder.incomeBalance == Decimal("3.00")
        assert network.matching.settle(founder.id) is None


# =============================================================================
# TEST CLASS: Direct commission
# =============================================================================

class TestDirectCommission:

    def test_sponsor_paid_when_rate_set(self, network_config, network, founder, add_customers):
        """
        TEST: DIRECT_COMMISSION_RATE pays the buyer's sponsor.
        """
        network_config.set(Config.DIRECT_COMMISSION_RATE, Decimal("0.05"))
        (c1,) = add_customers(1)

        network.turnover.recordPurchase(c1.id, 1000)

        assert founder.directIncome == Decimal("50.00")
        assert founder.incomeBalance == Decimal("50.00")

    def test_no_commission_by_default(self, network, founder, add_customers):
        (c1,) = add_customers(1)
        network.turnover.recordPurchase(c1.id, 1000)
        assert founder.directIncome == 0
