# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Core configuration - centralized config for the truthchain package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from truthchain.core.config import get_config
    config = get_config()

    min_stake = config.min_stake
    poll = config.confirmation_poll_interval
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigException

NETWORK_ENDPOINTS = {
    "testnet": {
        "algod": "https://testnet-api.algonode.cloud",
        "indexer": "https://testnet-idx.algonode.cloud",
    },
    "mainnet": {
        "algod": "https://mainnet-api.algonode.cloud",
        "indexer": "https://mainnet-idx.algonode.cloud",
    },
}


class CoreSettings(BaseSettings):
    """Core configuration settings for TruthChain.

    Settings can be configured via environment variables with the
    TRUTHCHAIN_ prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # LEDGER NETWORK SETTINGS
    # ==========================================================================

    network: str = Field(
        default="testnet",
        description="Ledger network: 'testnet' or 'mainnet'",
        validation_alias="TRUTHCHAIN_NETWORK",
    )
    algod_url: str | None = Field(
        default=None,
        description="Node API URL override (defaults to the network's public node)",
        validation_alias="TRUTHCHAIN_ALGOD_URL",
    )
    indexer_url: str | None = Field(
        default=None,
        description="Indexer API URL override",
        validation_alias="TRUTHCHAIN_INDEXER_URL",
    )
    algod_token: str = Field(
        default="",
        description="API token sent as X-Algo-API-Token",
        validation_alias="TRUTHCHAIN_ALGOD_TOKEN",
    )
    escrow_address: str = Field(
        default="GD64YIY3TWGDMCNPP553DZPPR6LDUSFQOIJVFDPPXWEG3FVOJCCDBBHU5A",
        description="Ledger address that receives escrowed stakes",
        validation_alias="TRUTHCHAIN_ESCROW_ADDRESS",
    )
    ledger_timeout: float = Field(
        default=15.0,
        description="HTTP timeout for ledger requests in seconds",
        validation_alias="TRUTHCHAIN_LEDGER_TIMEOUT",
    )
    confirmation_poll_interval: float = Field(
        default=4.0,
        description="Seconds between confirmation status polls",
        validation_alias="TRUTHCHAIN_CONFIRMATION_POLL_INTERVAL",
    )
    confirmation_timeout: float = Field(
        default=60.0,
        description="Default seconds to wait for a transaction to confirm",
        validation_alias="TRUTHCHAIN_CONFIRMATION_TIMEOUT",
    )
    balance_cache_ttl: float = Field(
        default=10.0,
        description="Seconds a cached account balance stays usable",
        validation_alias="TRUTHCHAIN_BALANCE_CACHE_TTL",
    )

    # ==========================================================================
    # STAKING POLICY
    # ==========================================================================

    min_stake: Decimal = Field(
        default=Decimal("1"),
        description="Minimum stake in units",
        validation_alias="TRUTHCHAIN_MIN_STAKE",
    )
    fee_buffer: Decimal = Field(
        default=Decimal("0.1"),
        description="Balance reserved for transaction fees, in units",
        validation_alias="TRUTHCHAIN_FEE_BUFFER",
    )
    resolution_window_hours: int = Field(
        default=24,
        description="Hours a claim stays open for verification stakes",
        validation_alias="TRUTHCHAIN_RESOLUTION_WINDOW_HOURS",
    )
    max_content_length: int = Field(
        default=280,
        description="Maximum claim length in characters",
        validation_alias="TRUTHCHAIN_MAX_CONTENT_LENGTH",
    )
    reverify_stakes_on_resolution: bool = Field(
        default=True,
        description="Re-check each stake's transaction against the ledger before tallying",
        validation_alias="TRUTHCHAIN_REVERIFY_STAKES",
    )

    # ==========================================================================
    # REPUTATION POLICY
    # ==========================================================================

    initial_reputation: float = Field(
        default=100.0,
        description="Reputation score assigned to new profiles",
        validation_alias="TRUTHCHAIN_INITIAL_REPUTATION",
    )
    reputation_reward: float = Field(
        default=10.0,
        description="Reputation added to each staker on the winning side",
        validation_alias="TRUTHCHAIN_REPUTATION_REWARD",
    )
    reputation_penalty: float = Field(
        default=0.0,
        description="Reputation removed from each staker on the losing side",
        validation_alias="TRUTHCHAIN_REPUTATION_PENALTY",
    )

    # ==========================================================================
    # LEADERBOARD SETTINGS
    # ==========================================================================

    leaderboard_refresh_interval: float = Field(
        default=30.0,
        description="Seconds between timed leaderboard rebuilds",
        validation_alias="TRUTHCHAIN_LEADERBOARD_REFRESH_INTERVAL",
    )
    leaderboard_limit: int = Field(
        default=50,
        description="Default number of leaderboard entries returned",
        validation_alias="TRUTHCHAIN_LEADERBOARD_LIMIT",
    )
    active_user_window_days: int = Field(
        default=7,
        description="Window for counting active users in leaderboard stats",
        validation_alias="TRUTHCHAIN_ACTIVE_USER_WINDOW_DAYS",
    )

    # ==========================================================================
    # DATABASE SETTINGS
    # ==========================================================================

    db_host: str = Field(default="localhost", validation_alias="TRUTHCHAIN_DB_HOST")
    db_port: int = Field(default=5432, validation_alias="TRUTHCHAIN_DB_PORT")
    db_name: str = Field(default="truthchain", validation_alias="TRUTHCHAIN_DB_NAME")
    db_user: str = Field(default="truthchain", validation_alias="TRUTHCHAIN_DB_USER")
    db_password: str = Field(default="", validation_alias="TRUTHCHAIN_DB_PASSWORD")
    db_pool_min: int = Field(
        default=2,
        description="Minimum pool connections",
        validation_alias="TRUTHCHAIN_DB_POOL_MIN",
    )
    db_pool_max: int = Field(
        default=10,
        description="Maximum pool connections",
        validation_alias="TRUTHCHAIN_DB_POOL_MAX",
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a pooled connection",
        validation_alias="TRUTHCHAIN_DB_POOL_TIMEOUT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="TRUTHCHAIN_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="TRUTHCHAIN_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="TRUTHCHAIN_LOG_FILE",
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("network")
    @classmethod
    def _check_network(cls, value: str) -> str:
        value = value.lower()
        if value not in NETWORK_ENDPOINTS:
            raise ValueError(f"network must be one of {sorted(NETWORK_ENDPOINTS)}")
        return value

    @field_validator("min_stake", "confirmation_poll_interval", "confirmation_timeout", "ledger_timeout")
    @classmethod
    def _check_positive(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("fee_buffer", "reputation_reward", "reputation_penalty", "balance_cache_ttl")
    @classmethod
    def _check_non_negative(cls, value):
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("resolution_window_hours", "max_content_length")
    @classmethod
    def _check_positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def node_url(self) -> str:
        """Node API URL for the configured network."""
        return (self.algod_url or NETWORK_ENDPOINTS[self.network]["algod"]).rstrip("/")

    @property
    def indexer_api_url(self) -> str:
        """Indexer API URL for the configured network."""
        return (self.indexer_url or NETWORK_ENDPOINTS[self.network]["indexer"]).rstrip("/")

    @property
    def resolution_window(self) -> timedelta:
        return timedelta(hours=self.resolution_window_hours)

    @property
    def connection_params(self) -> dict:
        """Get database connection parameters dict."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }

    @property
    def pool_config(self) -> dict:
        """Get connection pool configuration."""
        return {
            "minconn": self.db_pool_min,
            "maxconn": self.db_pool_max,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def load_settings(**overrides) -> CoreSettings:
    """Build settings, converting pydantic errors into ConfigException."""
    try:
        return CoreSettings(**overrides)
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigException(f"Invalid configuration: {e}", missing_vars=fields) from e


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
