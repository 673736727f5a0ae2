# tests/conftest.py
"""
Pytest configuration and shared fixtures for the referral network tests.

Every test runs against a fresh in-memory SQLite database, a private event
bus and frozen virtual time.

Run:
    pytest tests -v
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from config import Config
from core.db import create_db_engine, get_session_factory, setup_database
from core.network_manager import NetworkManager
from mlm_system.events.event_bus import EventBus
from mlm_system.utils.time_machine import timeMachine

# =============================================================================
# CONSTANTS
# =============================================================================

FROZEN_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

SINGLE_FOUNDER = [
    {"id": "FOUND001", "name": "Founder One", "contact": "founder1@network.local"},
]

TEST_CONFIG = {
    Config.DATABASE_URL: "sqlite://",
    Config.FOUNDERS: SINGLE_FOUNDER,
    Config.MAX_PLACEMENT_DEPTH: None,
    Config.MATCH_THRESHOLD: Decimal("0"),
    Config.MATCH_PAYOUT_RATE: Decimal("0"),
    Config.DIRECT_COMMISSION_RATE: Decimal("0"),
    Config.TOP_UP_MIN: Decimal("10"),
    Config.TOP_UP_MAX: Decimal("50000"),
    Config.WITHDRAWAL_CLEAR_DAYS: 3,
    Config.SAVE_RETRY_ATTEMPTS: 2,
    Config.CONSOLIDATION_CRON_DAY: 1,
    Config.FLUSH_INTERVAL_SECONDS: 60,
}


# =============================================================================
# CONFIG AND TIME
# =============================================================================

@pytest.fixture(autouse=True)
def network_config():
    """Known configuration per test; the previous one comes back afterwards."""
    snapshot = Config.get_all()
    Config.restore(TEST_CONFIG)
    yield Config
    Config.restore(snapshot)


@pytest.fixture(autouse=True)
def frozen_time():
    """Freeze virtual time at FROZEN_NOW."""
    timeMachine.setTime(FROZEN_NOW, adminId="tests")
    yield timeMachine
    timeMachine.resetToRealTime()


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """In-memory database shared by every session and thread of one test."""
    engine = create_db_engine("sqlite://")
    setup_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


class FlakySessionFactory:
    """Session factory that fails on demand, like a storage outage."""

    def __init__(self, factory):
        self.factory = factory
        self.failing = False
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.failing:
            raise OperationalError("BEGIN", {}, Exception("database is unavailable"))
        return self.factory()


@pytest.fixture
def flaky_factory(session_factory):
    return FlakySessionFactory(session_factory)


# =============================================================================
# NETWORK FIXTURES
# =============================================================================

@pytest.fixture
def bus():
    """Private event bus so handlers never leak between tests."""
    return EventBus()


@pytest.fixture
def make_network(session_factory, bus):
    """
    Factory for started networks over the test database.

    Every network built here is shut down after the test.
    """
    networks = []

    def _make(factory=None):
        network = NetworkManager(factory or session_factory, bus=bus)
        network.start()
        networks.append(network)
        return network

    yield _make

    for network in networks:
        network.shutdown()


@pytest.fixture
def network(make_network):
    """Started network with a single founder FOUND001."""
    return make_network()


@pytest.fixture
def founder(network):
    return network.registry.byId("FOUND001")


@pytest.fixture
def add_customers(network):
    """
    Register `count` customers and return them in registration order.

    Contacts are derived from a prefix so repeated calls do not collide.
    """

    def _add(count, sponsorId=None, prefix="customer"):
        start = len(network.registry)
        return [
            network.placement.registerCustomer(
                f"Customer {start + i}", f"{prefix}{start + i}@example.com", sponsorId
            )
            for i in range(count)
        ]

    return _add
