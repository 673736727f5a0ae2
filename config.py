# config.py
"""
Configuration management for the referral network engine.
Loads from .env, validates critical keys.
"""
import os
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

from mlm_system.config.plan import DEFAULT_FOUNDERS

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        url = Config.get(Config.DATABASE_URL)

        # Set dynamic value
        Config.set(Config.MATCH_PAYOUT_RATE, Decimal("0.10"))
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"

    # Bootstrap
    FOUNDERS = "FOUNDERS"

    # Placement
    MAX_PLACEMENT_DEPTH = "MAX_PLACEMENT_DEPTH"

    # Compensation hooks
    MATCH_THRESHOLD = "MATCH_THRESHOLD"
    MATCH_PAYOUT_RATE = "MATCH_PAYOUT_RATE"
    DIRECT_COMMISSION_RATE = "DIRECT_COMMISSION_RATE"

    # Wallet
    TOP_UP_MIN = "TOP_UP_MIN"
    TOP_UP_MAX = "TOP_UP_MAX"
    WITHDRAWAL_CLEAR_DAYS = "WITHDRAWAL_CLEAR_DAYS"

    # Persistence
    SAVE_RETRY_ATTEMPTS = "SAVE_RETRY_ATTEMPTS"

    # Background jobs
    CONSOLIDATION_CRON_DAY = "CONSOLIDATION_CRON_DAY"
    FLUSH_INTERVAL_SECONDS = "FLUSH_INTERVAL_SECONDS"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
        FOUNDERS,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}
    _initialized: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file and process environment.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                "sqlite:///referral_network.db"
            )

            # Founders (JSON list of {"id", "name", "contact"})
            founders_str = os.getenv("FOUNDERS")
            if founders_str:
                cls._config[cls.FOUNDERS] = cls._parse_founders(founders_str)
            else:
                cls._config[cls.FOUNDERS] = [dict(f) for f in DEFAULT_FOUNDERS]

            # Placement
            max_depth = os.getenv("MAX_PLACEMENT_DEPTH")
            cls._config[cls.MAX_PLACEMENT_DEPTH] = int(max_depth) if max_depth else None

            # Compensation hooks
            cls._config[cls.MATCH_THRESHOLD] = cls._decimal_env("MATCH_THRESHOLD", "0")
            cls._config[cls.MATCH_PAYOUT_RATE] = cls._decimal_env("MATCH_PAYOUT_RATE", "0")
            cls._config[cls.DIRECT_COMMISSION_RATE] = cls._decimal_env("DIRECT_COMMISSION_RATE", "0")

            # Wallet
            cls._config[cls.TOP_UP_MIN] = cls._decimal_env("TOP_UP_MIN", "10")
            cls._config[cls.TOP_UP_MAX] = cls._decimal_env("TOP_UP_MAX", "50000")
            cls._config[cls.WITHDRAWAL_CLEAR_DAYS] = int(os.getenv("WITHDRAWAL_CLEAR_DAYS", "3"))

            # Persistence
            cls._config[cls.SAVE_RETRY_ATTEMPTS] = int(os.getenv("SAVE_RETRY_ATTEMPTS", "3"))

            # Background jobs
            cls._config[cls.CONSOLIDATION_CRON_DAY] = int(os.getenv("CONSOLIDATION_CRON_DAY", "1"))
            cls._config[cls.FLUSH_INTERVAL_SECONDS] = int(os.getenv("FLUSH_INTERVAL_SECONDS", "60"))

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except (ValueError, InvalidOperation, json.JSONDecodeError) as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @staticmethod
    def _decimal_env(name: str, default: str) -> Decimal:
        """Read a money/rate value from the environment as Decimal."""
        return Decimal(os.getenv(name, default))

    @staticmethod
    def _parse_founders(raw: str) -> List[Dict[str, str]]:
        """
        Parse FOUNDERS JSON.

        Args:
            raw: JSON list, e.g. [{"id": "FOUND001", "name": "A", "contact": "a@x.io"}]

        Returns:
            List of founder dicts

        Raises:
            ValueError: If an entry is missing a field
        """
        founders = json.loads(raw)
        for entry in founders:
            missing = [k for k in ("id", "name", "contact") if not entry.get(k)]
            if missing:
                raise ValueError(f"Founder entry {entry} missing {', '.join(missing)}")
        return founders

    @classmethod
    def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if not cls.get(key):
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        if cls.get(cls.TOP_UP_MIN, Decimal("0")) > cls.get(cls.TOP_UP_MAX, Decimal("0")):
            raise ConfigurationError("TOP_UP_MIN must not exceed TOP_UP_MAX")

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return cls._config.get(key, default)

    @classmethod
    def get_decimal(cls, key: str, default: str = "0") -> Decimal:
        """Get configuration value as Decimal."""
        value = cls._config.get(key)
        if value is None:
            return Decimal(default)
        return Decimal(str(value))

    @classmethod
    def set(cls, key: str, value: Any, source: str = "runtime") -> None:
        """
        Set configuration value (for dynamic updates).

        Args:
            key: Configuration key
            value: New value
            source: Source of the update (for logging)
        """
        cls._config[key] = value
        logger.debug(f"Config updated: {key} = {value} (source: {source})")

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """
        Get all configuration values.

        Returns:
            Copy of configuration dictionary
        """
        return cls._config.copy()

    @classmethod
    def restore(cls, snapshot: Dict[str, Any]) -> None:
        """Replace all values with a snapshot taken by get_all()."""
        cls._config = dict(snapshot)

    @classmethod
    def max_placement_depth(cls) -> Optional[int]:
        """Deepest level a new node may occupy, or None for unlimited."""
        return cls.get(cls.MAX_PLACEMENT_DEPTH)
