# tests/test_concurrency.py
"""
Tests for concurrent use of one network.

Key principle: parallel callers see the same result as some serial order
of the same calls; no slot is claimed twice, no turnover is lost.

Run:
    pytest tests/test_concurrency.py -v
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from core.network_manager import NetworkManager
from mlm_system.config.plan import Leg
from mlm_system.events.event_bus import EventBus


def shape(network):
    """Level-order (depth, has left, has right) of every tree."""
    return [
        (node.depth, node.leftId is not None, node.rightId is not None)
        for level in network.registry.walker.iter_levels(network.registry.roots())
        for node in level
    ]


def run_parallel(workers, tasks):
    """
    Run callables on a thread pool, released in batches of `workers`.

    len(tasks) must be a multiple of `workers`.
    """
    barrier = threading.Barrier(workers)

    def gated(task):
        barrier.wait()
        return task()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(gated, task) for task in tasks]
        return [f.result() for f in futures]


# =============================================================================
# TEST CLASS: Registrations
# =============================================================================

class TestConcurrentRegistration:

    def test_distinct_slots(self, network):
        """
        TEST: 20 parallel registrations claim 20 distinct slots in BFS order.
        """
        tasks = [
            (lambda i=i: network.placement.registerCustomer(f"Customer {i}", f"c{i}@example.com"))
            for i in range(20)
        ]

        nodes = run_parallel(20, tasks)

        assert len({n.id for n in nodes}) == 20
        assert len(network.registry) == 21
        assert network.registry.walker.validate_pointers() == []

        slots = {
            (n.parentId, "left" if network.registry.byId(n.parentId).leftId == n.id else "right")
            for n in nodes
        }
        assert len(slots) == 20

        reference = NetworkManager.from_url("sqlite://", bus=EventBus())
        reference.start()
        try:
            for i in range(20):
                reference.placement.registerCustomer(f"Customer {i}", f"c{i}@example.com")
            assert shape(network) == shape(reference)
        finally:
            reference.shutdown()

    def test_duplicate_contact_only_once(self, network):
        """
        TEST: The same contact registered in parallel succeeds exactly once.
        """
        outcomes = []

        def register():
            try:
                network.placement.registerCustomer("Ann", "ann@example.com")
                outcomes.append("ok")
            except Exception as e:
                outcomes.append(type(e).__name__)

        run_parallel(8, [register] * 8)

        assert sorted(outcomes) == ["DuplicateContact"] * 7 + ["ok"]
        assert len(network.registry) == 2


# =============================================================================
# TEST CLASS: Purchases
# =============================================================================

class TestConcurrentPurchases:

    def test_incremental_equals_full_walk(self, network, founder, add_customers):
        """
        TEST: Parallel purchases across the tree lose no turnover.
        """
        customers = add_customers(10)
        tasks = [
            (lambda c=c, k=k: network.turnover.recordPurchase(c.id, 100 + k))
            for c in customers
            for k in range(5)
        ]

        run_parallel(10, tasks)

        total = sum(Decimal(100 + k) for k in range(5)) * len(customers)
        assert founder.legASales + founder.legBSales == total
        for node in network.registry.all_nodes():
            for leg in Leg:
                assert network.turnover.legTurnover(node.id, leg) == \
                    network.turnover.legTurnoverFullWalk(node.id, leg)


# =============================================================================
# TEST CLASS: Wallets
# =============================================================================

class TestConcurrentWallets:

    def test_parallel_top_ups_are_exact(self, network, founder, add_customers):
        """
        TEST: Top-ups on two wallets in parallel add up exactly.
        """
        (other,) = add_customers(1)
        tasks = [
            (lambda n=n: network.wallet.topUpSpendable(n.id, "10.01"))
            for n in (founder, other)
            for _ in range(25)
        ]

        run_parallel(10, tasks)

        assert founder.spendableBalance == Decimal("250.25")
        assert other.spendableBalance == Decimal("250.25")
        assert len(network.wallet.getWalletJournal(founder.id)) == 25
