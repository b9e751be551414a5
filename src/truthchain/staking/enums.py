"""Enums for claims, stakes and their ledger transactions."""

from enum import Enum


class ClaimStatus(str, Enum):
    """Stored status of a claim. Only ever advances forward."""
    DRAFT = "draft"              # Exists only while the creation stake is escrowed
    PENDING = "pending"          # Open for verification stakes
    RESOLVED = "resolved"        # Outcome decided, no more stakes

    @property
    def order(self) -> int:
        return _STATUS_ORDER[self]


_STATUS_ORDER = {
    ClaimStatus.DRAFT: 0,
    ClaimStatus.PENDING: 1,
    ClaimStatus.RESOLVED: 2,
}


class DisplayStatus(str, Enum):
    """Read-time label for a claim. Never persisted."""
    PENDING = "pending"          # Open, sides level
    VERIFIED = "verified"        # Open, support leads
    CHALLENGED = "challenged"    # Open, oppose leads
    RESOLVED = "resolved"        # Window closed and resolved


class StakeSide(str, Enum):
    """Which side of a claim a stake backs."""
    SUPPORT = "support"
    OPPOSE = "oppose"


class Outcome(str, Enum):
    """Result of resolving a claim."""
    SUPPORT = "support"
    OPPOSE = "oppose"
    TIE = "tie"                  # Stakes returned, no reputation change


class TransactionKind(str, Enum):
    """Why a ledger transaction was made."""
    CLAIM_STAKE = "claim_stake"
    VERIFICATION_STAKE = "verification_stake"


class TransactionStatus(str, Enum):
    """Audit status of a ledger transaction."""
    SUBMITTED = "submitted"      # Sent to the ledger, confirmation not yet observed
    CONFIRMED = "confirmed"      # Confirmed and applied to the claim
    FAILED = "failed"            # Rejected by the ledger; a new submission is allowed
    UNAPPLIED = "unapplied"      # Confirmed after the claim stopped accepting stakes


class ExpiryState(str, Enum):
    """How close a claim is to the end of its resolution window."""
    ACTIVE = "active"
    EXPIRING = "expiring"        # Less than a day left
    EXPIRED = "expired"
