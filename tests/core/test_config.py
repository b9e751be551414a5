"""Tests for truthchain.core.config - CoreSettings and global config management."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from truthchain.core.config import (
    CoreSettings,
    clear_config_cache,
    get_config,
    load_settings,
)
from truthchain.core.exceptions import ConfigException

# ============================================================================
# CoreSettings - Default Values
# ============================================================================


class TestCoreSettingsDefaults:
    """Test that CoreSettings loads with correct default values."""

    def test_ledger_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.network == "testnet"
        assert settings.algod_token == ""
        assert settings.confirmation_poll_interval == 4.0
        assert settings.confirmation_timeout == 60.0
        assert settings.balance_cache_ttl == 10.0
        assert len(settings.escrow_address) == 58

    def test_staking_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.min_stake == Decimal("1")
        assert settings.fee_buffer == Decimal("0.1")
        assert settings.resolution_window_hours == 24
        assert settings.max_content_length == 280
        assert settings.reverify_stakes_on_resolution is True

    def test_reputation_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.initial_reputation == 100.0
        assert settings.reputation_reward == 10.0
        assert settings.reputation_penalty == 0.0

    def test_database_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.db_host == "localhost"
        assert settings.db_port == 5432
        assert settings.db_name == "truthchain"
        assert settings.db_pool_min == 2
        assert settings.db_pool_max == 10

    def test_logging_defaults(self, clean_env):
        settings = CoreSettings()

        assert settings.log_level == "INFO"
        assert settings.log_format == ""
        assert settings.log_file is None


# ============================================================================
# Environment overrides
# ============================================================================


class TestEnvironmentOverrides:
    """Test that TRUTHCHAIN_* environment variables are honoured."""

    def test_min_stake_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("TRUTHCHAIN_MIN_STAKE", "2.5")
        settings = CoreSettings()
        assert settings.min_stake == Decimal("2.5")

    def test_network_from_env_is_lowercased(self, clean_env, monkeypatch):
        monkeypatch.setenv("TRUTHCHAIN_NETWORK", "MainNet")
        settings = CoreSettings()
        assert settings.network == "mainnet"
        assert settings.node_url == "https://mainnet-api.algonode.cloud"

    def test_db_settings_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("TRUTHCHAIN_DB_HOST", "db.internal")
        monkeypatch.setenv("TRUTHCHAIN_DB_PORT", "6543")
        settings = CoreSettings()
        assert settings.connection_params["host"] == "db.internal"
        assert settings.connection_params["port"] == 6543

    def test_reverify_flag_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("TRUTHCHAIN_REVERIFY_STAKES", "false")
        assert CoreSettings().reverify_stakes_on_resolution is False


# ============================================================================
# Validation
# ============================================================================


class TestValidation:
    def test_unknown_network_rejected(self, clean_env):
        with pytest.raises(ConfigException) as exc_info:
            load_settings(network="devnet")
        assert any("network" in field.lower() for field in exc_info.value.missing_vars)

    def test_non_positive_min_stake_rejected(self, clean_env):
        with pytest.raises(ConfigException):
            load_settings(min_stake=Decimal("0"))

    def test_negative_fee_buffer_rejected(self, clean_env):
        with pytest.raises(ConfigException):
            load_settings(fee_buffer=Decimal("-1"))

    def test_zero_resolution_window_rejected(self, clean_env):
        with pytest.raises(ConfigException):
            load_settings(resolution_window_hours=0)


# ============================================================================
# Computed properties
# ============================================================================


class TestComputedProperties:
    def test_urls_default_to_network_endpoints(self, clean_env):
        settings = CoreSettings()
        assert settings.node_url == "https://testnet-api.algonode.cloud"
        assert settings.indexer_api_url == "https://testnet-idx.algonode.cloud"

    def test_url_overrides_strip_trailing_slash(self, clean_env):
        settings = load_settings(algod_url="http://localhost:4001/", indexer_url="http://localhost:8980/")
        assert settings.node_url == "http://localhost:4001"
        assert settings.indexer_api_url == "http://localhost:8980"

    def test_resolution_window(self, clean_env):
        settings = load_settings(resolution_window_hours=48)
        assert settings.resolution_window == timedelta(hours=48)

    def test_pool_config(self, clean_env):
        settings = load_settings(db_pool_min=1, db_pool_max=4)
        assert settings.pool_config == {"minconn": 1, "maxconn": 4}


# ============================================================================
# Singleton
# ============================================================================


class TestGetConfig:
    def test_get_config_returns_same_instance(self, clean_env):
        assert get_config() is get_config()

    def test_clear_config_cache_reloads(self, clean_env, monkeypatch):
        first = get_config()
        monkeypatch.setenv("TRUTHCHAIN_LEADERBOARD_LIMIT", "5")
        assert get_config() is first

        clear_config_cache()
        second = get_config()
        assert second is not first
        assert second.leaderboard_limit == 5
