# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Custom exception hierarchy for TruthChain.

Provides specific exception types for the claim, staking and ledger error
categories so callers can tell user-actionable failures (validation, funds,
duplicates) from transient ledger failures that may be retried.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class TruthChainException(Exception):  # noqa: N818
    """Base exception for all TruthChain errors.

    All TruthChain-specific exceptions should inherit from this class.
    """

    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class DatabaseException(TruthChainException):
    """Exception for persistent store errors.

    Raised when:
    - Database connection fails
    - Query execution fails
    - Transaction errors occur
    """

    pass


class ValidationException(TruthChainException):
    """Exception for validation errors.

    Raised when:
    - An address fails the ledger address grammar
    - Claim content is empty or too long
    - A stake amount is out of bounds
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InsufficientStakeError(ValidationException):
    """Stake amount is below the configured minimum."""

    def __init__(self, amount: Decimal, minimum: Decimal):
        super().__init__(
            f"Minimum stake amount is {minimum}, got {amount}",
            field="amount",
            value=amount,
        )
        self.details["minimum"] = str(minimum)
        self.amount = amount
        self.minimum = minimum


class ConfigException(TruthChainException):
    """Exception for configuration errors."""

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(TruthChainException):
    """Exception for resource not found errors.

    Raised when:
    - Requested claim doesn't exist
    - Requested profile doesn't exist
    - Requested transaction record doesn't exist
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(TruthChainException):
    """Exception for conflict errors.

    Raised when:
    - Attempting to create a duplicate resource
    - State conflict during update
    """

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class DuplicateStakeError(ConflictError):
    """A stake already exists for this (claim, staker) pair."""

    def __init__(self, claim_id: str, staker: str, message: str | None = None):
        super().__init__(
            message or f"{staker} has already staked on claim {claim_id}",
            existing_id=f"{claim_id}:{staker}",
        )
        self.claim_id = claim_id
        self.staker = staker


class SelfStakeError(DuplicateStakeError):
    """The author tried to stake on the verification of their own claim."""

    def __init__(self, claim_id: str, staker: str):
        super().__init__(claim_id, staker, message=f"Cannot stake on your own claim {claim_id}")


class ClaimNotAcceptingStakesError(TruthChainException):
    """Claim is not pending, or its resolution window has expired."""

    def __init__(self, claim_id: str, reason: str):
        super().__init__(
            f"Claim {claim_id} is not accepting stakes: {reason}",
            {"claim_id": claim_id, "reason": reason},
        )
        self.claim_id = claim_id
        self.reason = reason


class InsufficientFundsError(TruthChainException):
    """Available balance (minus the fee buffer) does not cover the stake."""

    def __init__(self, address: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient balance: {address} has {available} available but needs {required}",
            {"address": address, "required": str(required), "available": str(available)},
        )
        self.address = address
        self.required = required
        self.available = available


# ============================================================================
# Ledger transport errors
# ============================================================================


class LedgerException(TruthChainException):
    """Base for failures reported by, or while talking to, the ledger network."""

    pass


class LedgerUnreachableError(LedgerException):
    """Network or transport failure talking to the ledger node.

    Transient: the specific read (balance, status poll) may be retried.
    A submission must not be blindly re-sent.
    """

    retryable = True

    def __init__(self, endpoint: str, detail: str = ""):
        message = f"Ledger node unreachable at {endpoint}"
        if detail:
            message += f": {detail}"
        super().__init__(message, {"endpoint": endpoint})
        self.endpoint = endpoint


class ConfirmationTimedOutError(LedgerException):
    """Transaction was not confirmed before the wait timed out."""

    retryable = True

    def __init__(self, tx_id: str, timeout: float):
        super().__init__(
            f"Transaction {tx_id} not confirmed within {timeout}s",
            {"tx_id": tx_id, "timeout": timeout},
        )
        self.tx_id = tx_id
        self.timeout = timeout


class SigningDeclinedError(LedgerException):
    """The external signer refused to sign the transaction."""

    def __init__(self, message: str = "Transaction signing was declined"):
        super().__init__(message)


class SubmissionRejectedError(LedgerException):
    """The ledger node rejected the transaction. Carries the node's raw reason."""

    def __init__(self, reason: str, tx_id: str | None = None):
        details: dict[str, Any] = {"reason": reason}
        if tx_id:
            details["tx_id"] = tx_id
        super().__init__(f"Transaction rejected: {reason}", details)
        self.reason = reason
        self.tx_id = tx_id
