# tests/test_scheduler.py
"""
Tests for the consolidation scheduler.

Jobs are invoked directly; the APScheduler loop is only started to check
job registration.

Run:
    pytest tests/test_scheduler.py -v
"""
import pytest

from background.consolidation_scheduler import ConsolidationScheduler
from mlm_system.errors import DurabilityError


@pytest.fixture
def scheduler(network):
    scheduler = ConsolidationScheduler(network)
    yield scheduler
    scheduler.stop()


class TestConsolidationScheduler:

    def test_jobs_registered(self, scheduler):
        scheduler.start()

        assert scheduler.isRunning
        assert {job.id for job in scheduler.scheduler.get_jobs()} == {
            "credit_consolidation", "pending_flush"
        }

    def test_start_twice_is_harmless(self, scheduler):
        scheduler.start()
        scheduler.start()
        assert len(scheduler.scheduler.get_jobs()) == 2

    def test_stop(self, scheduler):
        scheduler.start()
        scheduler.stop()

        assert not scheduler.isRunning
        assert not scheduler.scheduler.running

    def test_consolidation_allocates_credits(self, scheduler, network, founder, add_customers):
        """
        TEST: The monthly job consolidates credits for the whole network.
        """
        (customer,) = add_customers(1)
        network.turnover.recordPurchase(customer.id, 200000)

        summary = scheduler.runConsolidation()

        assert summary == {founder.id: 10}
        assert founder.rewardCredits == 10
        assert scheduler.stats["consolidations"] == 1
        assert scheduler.stats["lastConsolidatedAt"] is not None

    def test_flush_pending(self, make_network, flaky_factory):
        """
        TEST: The flush job writes what an outage left pending.
        """
        network = make_network(flaky_factory)
        scheduler = ConsolidationScheduler(network)

        assert scheduler.flushPending() == 0

        flaky_factory.failing = True
        with pytest.raises(DurabilityError):
            network.wallet.topUpSpendable("FOUND001", 100)
        flaky_factory.failing = False

        assert scheduler.flushPending() == 2
        assert scheduler.stats["flushedWrites"] == 2
        assert not network.store.hasPending

    def test_job_errors_are_counted(self, make_network, flaky_factory):
        """
        TEST: A failing job is logged and counted, never raised into APScheduler.
        """
        network = make_network(flaky_factory)
        scheduler = ConsolidationScheduler(network)

        flaky_factory.failing = True
        with pytest.raises(DurabilityError):
            network.wallet.topUpSpendable("FOUND001", 100)

        scheduler._safe_flush_wrapper()

        assert scheduler.stats["errors"] == 1
        assert "FOUND001" in scheduler.stats["lastError"]
        assert network.store.hasPending
