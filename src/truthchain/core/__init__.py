"""TruthChain Core - configuration, logging, errors and shared primitives."""

from .config import CoreSettings, clear_config_cache, get_config, load_settings
from .exceptions import (
    ClaimNotAcceptingStakesError,
    ConfigException,
    ConfirmationTimedOutError,
    ConflictError,
    DatabaseException,
    DuplicateStakeError,
    InsufficientFundsError,
    InsufficientStakeError,
    LedgerException,
    LedgerUnreachableError,
    NotFoundError,
    SelfStakeError,
    SigningDeclinedError,
    SubmissionRejectedError,
    TruthChainException,
    ValidationException,
)
from .locks import KeyedLocks
from .logging import configure_logging, correlation_context, get_logger
from .tasks import PeriodicTask, ScheduledTask

__all__ = [
    # Config
    "CoreSettings",
    "clear_config_cache",
    "get_config",
    "load_settings",
    # Exceptions
    "ClaimNotAcceptingStakesError",
    "ConfigException",
    "ConfirmationTimedOutError",
    "ConflictError",
    "DatabaseException",
    "DuplicateStakeError",
    "InsufficientFundsError",
    "InsufficientStakeError",
    "LedgerException",
    "LedgerUnreachableError",
    "NotFoundError",
    "SelfStakeError",
    "SigningDeclinedError",
    "SubmissionRejectedError",
    "TruthChainException",
    "ValidationException",
    # Logging
    "configure_logging",
    "correlation_context",
    "get_logger",
    # Concurrency
    "KeyedLocks",
    "PeriodicTask",
    "ScheduledTask",
]
