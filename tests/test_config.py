# tests/test_config.py
"""
Tests for environment configuration loading and validation.

Run:
    pytest tests/test_config.py -v
"""
import json
from decimal import Decimal

import pytest

from config import Config, ConfigurationError
from mlm_system.config.plan import DEFAULT_FOUNDERS

ENV_KEYS = [
    "DATABASE_URL", "FOUNDERS", "MAX_PLACEMENT_DEPTH",
    "MATCH_THRESHOLD", "MATCH_PAYOUT_RATE", "DIRECT_COMMISSION_RATE",
    "TOP_UP_MIN", "TOP_UP_MAX", "WITHDRAWAL_CLEAR_DAYS",
    "SAVE_RETRY_ATTEMPTS", "CONSOLIDATION_CRON_DAY", "FLUSH_INTERVAL_SECONDS",
]


@pytest.fixture
def clean_env(monkeypatch):
    """No configuration variables set; .env loading is a no-op."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("config.load_dotenv", lambda: False)
    return monkeypatch


class TestConfigFromEnv:

    def test_defaults(self, clean_env):
        Config.initialize_from_env()

        assert Config.get(Config.DATABASE_URL) == "sqlite:///referral_network.db"
        assert [f["id"] for f in Config.get(Config.FOUNDERS)] == [f["id"] for f in DEFAULT_FOUNDERS]
        assert Config.max_placement_depth() is None
        assert Config.get(Config.TOP_UP_MIN) == Decimal("10")
        assert Config.get(Config.TOP_UP_MAX) == Decimal("50000")
        assert Config.get(Config.SAVE_RETRY_ATTEMPTS) == 3
        Config.validate_critical_keys()

    def test_values_from_env(self, clean_env):
        founders = [{"id": "FOUND010", "name": "Solo", "contact": "solo@example.com"}]
        clean_env.setenv("FOUNDERS", json.dumps(founders))
        clean_env.setenv("MAX_PLACEMENT_DEPTH", "12")
        clean_env.setenv("MATCH_PAYOUT_RATE", "0.08")

        Config.initialize_from_env()

        assert Config.get(Config.FOUNDERS) == founders
        assert Config.max_placement_depth() == 12
        assert Config.get_decimal(Config.MATCH_PAYOUT_RATE) == Decimal("0.08")

    @pytest.mark.parametrize("key, value", [
        ("FOUNDERS", "not json"),
        ("FOUNDERS", '[{"id": "FOUND001", "name": "No contact"}]'),
        ("TOP_UP_MIN", "ten"),
        ("SAVE_RETRY_ATTEMPTS", "3.5"),
    ])
    def test_malformed_value(self, clean_env, key, value):
        """
        TEST: Unparseable values surface as ConfigurationError.
        """
        clean_env.setenv(key, value)

        with pytest.raises(ConfigurationError):
            Config.initialize_from_env()

    def test_top_up_bounds_validated(self, clean_env):
        clean_env.setenv("TOP_UP_MIN", "100")
        clean_env.setenv("TOP_UP_MAX", "50")
        Config.initialize_from_env()

        with pytest.raises(ConfigurationError):
            Config.validate_critical_keys()

    def test_missing_critical_key(self):
        Config.set(Config.DATABASE_URL, "")

        with pytest.raises(ConfigurationError):
            Config.validate_critical_keys()
