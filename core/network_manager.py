# core/network_manager.py
"""
Network lifecycle management.
Owns the registry and services, restores state from storage and shuts
down cleanly.
"""
import logging
from typing import Callable, Dict, Optional

from config import Config
from core.db import create_db_engine, get_session_factory, setup_database
from mlm_system.config.plan import DEFAULT_FOUNDERS
from mlm_system.errors import DurabilityError
from mlm_system.events.event_bus import eventBus
from mlm_system.events.setup import setup_network_event_handlers, teardown_network_event_handlers
from mlm_system.services.matching_service import MatchingService
from mlm_system.services.placement_service import PlacementService
from mlm_system.services.reward_credit_service import RewardCreditService
from mlm_system.services.turnover_service import TurnoverService
from mlm_system.services.wallet_service import WalletService
from mlm_system.tree.registry import NodeRegistry
from services.node_store import NodeStore

logger = logging.getLogger(__name__)


class NetworkManager:
    """
    One referral network: registry, services and their persistence.

    Usage:
        network = NetworkManager(session_factory)
        network.start()
        network.placement.registerCustomer("Ann", "ann@example.com")
        network.shutdown()
    """

    def __init__(self, session_factory=None, bus=None, store: Optional[NodeStore] = None):
        """
        Args:
            session_factory: sessionmaker for the persistence database
                             (defaults to the one built from DATABASE_URL)
            bus: Event bus (defaults to the global one)
            store: Ready-made persistence collaborator
        """
        self.bus = bus or eventBus
        self.store = store or NodeStore(session_factory or get_session_factory())

        self.registry = NodeRegistry()
        self.matching = MatchingService(self.registry, self.store, self.bus)
        self.placement = PlacementService(self.registry, self.store, self.bus)
        self.turnover = TurnoverService(self.registry, self.store, self.matching, self.bus)
        self.credits = RewardCreditService(self.registry, self.store, self.bus)
        self.wallet = WalletService(self.registry, self.store, self.bus)

        self.eventHandlers: Dict[str, Callable] = {}
        self._started = False

    @classmethod
    def from_url(cls, database_url: Optional[str] = None, bus=None) -> 'NetworkManager':
        """Build a network on its own engine, creating tables if needed."""
        engine = create_db_engine(database_url or Config.get(Config.DATABASE_URL))
        setup_database(engine)
        return cls(get_session_factory(engine), bus=bus)

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """
        Restore the network from storage.

        Storage without any founder (empty or partial) gets the configured
        founders seeded as roots.
        """
        if self._started:
            return

        logger.info("=" * 60)
        logger.info("STARTING REFERRAL NETWORK")
        logger.info("=" * 60)

        nodes = self.store.loadAllNodes()
        self.registry.restore(nodes)

        if not self.registry.roots():
            self._seedFounders()

        self.wallet.restore(self.store.loadAllWithdrawals())

        for node_id, entries in self.store.loadCreditEntries().items():
            node = self.registry.get(node_id)
            if node is None:
                logger.warning(f"Credit ledger entries for unknown node {node_id}")
                continue
            node.creditHistory = entries

        problems = self.registry.walker.validate_pointers()
        for problem in problems:
            logger.warning(f"Tree integrity: {problem}")

        setup_network_event_handlers(self)
        self._started = True

        logger.info(
            f"✅ Network started: {len(self.registry)} nodes, "
            f"{len(self.registry.roots())} roots"
        )

    def _seedFounders(self):
        founders = Config.get(Config.FOUNDERS, DEFAULT_FOUNDERS)
        logger.info(f"No founders in storage, seeding {len(founders)}")
        for founder in founders:
            self.placement.attachFounder(founder["id"], founder["name"], founder["contact"])

    def shutdown(self) -> None:
        """Detach handlers and flush whatever is still pending."""
        if not self._started:
            return

        logger.info("Shutting down referral network...")
        teardown_network_event_handlers(self)

        if self.store.hasPending:
            try:
                flushed = self.store.flushPending(self.registry)
                logger.info(f"✓ Flushed {flushed} pending writes")
            except DurabilityError as e:
                logger.error(f"Pending writes lost on shutdown: {e}", exc_info=True)

        self._started = False
        logger.info("✅ Referral network stopped")
