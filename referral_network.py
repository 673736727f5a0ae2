# referral_network.py
"""
Referral network - main entry point.
Loads configuration, restores the network and runs background jobs
until interrupted.
"""
import logging
import signal
import sys
import threading

from config import Config, ConfigurationError
from core.db import setup_database
from core.network_manager import NetworkManager
from background.consolidation_scheduler import ConsolidationScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('referral_network.log')
    ]
)

logger = logging.getLogger(__name__)


def initialize_network():
    """
    Initialize the network with its configuration and background jobs.

    Returns:
        Tuple[NetworkManager, ConsolidationScheduler]: Started instances
    """
    logger.info("=" * 60)
    logger.info("REFERRAL NETWORK INITIALIZATION")
    logger.info("=" * 60)

    # ═══════════════════════════════════════════════════════════════════════
    # STEP 1: Load configuration from .env
    # ═══════════════════════════════════════════════════════════════════════
    logger.info("📋 Loading configuration from .env...")
    Config.initialize_from_env()
    Config.validate_critical_keys()
    logger.info("✓ Configuration loaded")

    # ═══════════════════════════════════════════════════════════════════════
    # STEP 2: Setup database
    # ═══════════════════════════════════════════════════════════════════════
    logger.info("💾 Setting up database...")
    setup_database()
    logger.info("✓ Database ready")

    # ═══════════════════════════════════════════════════════════════════════
    # STEP 3: Restore network
    # ═══════════════════════════════════════════════════════════════════════
    network = NetworkManager()
    network.start()

    # ═══════════════════════════════════════════════════════════════════════
    # STEP 4: Background jobs
    # ═══════════════════════════════════════════════════════════════════════
    scheduler = ConsolidationScheduler(network)
    scheduler.start()

    logger.info("✅ Initialization complete")
    return network, scheduler


def main():
    """Run until SIGINT / SIGTERM."""
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received exit signal {signal.Signals(signum).name}...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        network, scheduler = initialize_network()
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)

    try:
        stop_event.wait()
    finally:
        scheduler.stop()
        network.shutdown()


if __name__ == "__main__":
    main()
