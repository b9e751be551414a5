"""Data models for claims, stakes, profiles and resolutions.

Amounts are ``Decimal`` units throughout. Timestamps are timezone-aware UTC.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable
from uuid import uuid4

from .enums import ClaimStatus, Outcome, StakeSide, TransactionKind, TransactionStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ============================================================================
# Tally
# ============================================================================

@dataclass(frozen=True)
class VerificationTally:
    """Summed stake per side. Derived from Stakes, never stored on its own."""
    support_total: Decimal = Decimal(0)
    oppose_total: Decimal = Decimal(0)
    support_count: int = 0
    oppose_count: int = 0

    @property
    def total(self) -> Decimal:
        return self.support_total + self.oppose_total

    @property
    def leader(self) -> Outcome:
        if self.support_total > self.oppose_total:
            return Outcome.SUPPORT
        if self.oppose_total > self.support_total:
            return Outcome.OPPOSE
        return Outcome.TIE

    def to_dict(self) -> dict[str, Any]:
        return {
            "support_total": str(self.support_total),
            "oppose_total": str(self.oppose_total),
            "support_count": self.support_count,
            "oppose_count": self.oppose_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationTally:
        return cls(
            support_total=Decimal(str(data.get("support_total", "0"))),
            oppose_total=Decimal(str(data.get("oppose_total", "0"))),
            support_count=int(data.get("support_count", 0)),
            oppose_count=int(data.get("oppose_count", 0)),
        )


def tally_stakes(stakes: Iterable[Stake], exclude: Iterable[str] = ()) -> VerificationTally:
    """Sum stakes per side, skipping any staker in ``exclude``."""
    excluded = set(exclude)
    support_total = oppose_total = Decimal(0)
    support_count = oppose_count = 0
    for stake in stakes:
        if stake.staker in excluded:
            continue
        if stake.side == StakeSide.SUPPORT:
            support_total += stake.amount
            support_count += 1
        else:
            oppose_total += stake.amount
            oppose_count += 1
    return VerificationTally(support_total, oppose_total, support_count, oppose_count)


# ============================================================================
# Resolution
# ============================================================================

@dataclass
class Resolution:
    """Outcome of a claim, stored on the claim for audit."""
    claim_id: str
    outcome: Outcome
    tally: VerificationTally
    winners: list[str] = field(default_factory=list)
    losers: list[str] = field(default_factory=list)
    excluded_stakers: list[str] = field(default_factory=list)
    degraded: bool = False
    resolved_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "outcome": self.outcome.value,
            "tally": self.tally.to_dict(),
            "winners": list(self.winners),
            "losers": list(self.losers),
            "excluded_stakers": list(self.excluded_stakers),
            "degraded": self.degraded,
            "resolved_at": format_timestamp(self.resolved_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Resolution:
        if isinstance(data, str):
            data = json.loads(data)
        return cls(
            claim_id=data["claim_id"],
            outcome=Outcome(data["outcome"]),
            tally=VerificationTally.from_dict(data.get("tally", {})),
            winners=list(data.get("winners", [])),
            losers=list(data.get("losers", [])),
            excluded_stakers=list(data.get("excluded_stakers", [])),
            degraded=bool(data.get("degraded", False)),
            resolved_at=parse_timestamp(data.get("resolved_at")) or utcnow(),
        )


# ============================================================================
# Claim
# ============================================================================

@dataclass
class Claim:
    """A factual statement backed by its author's stake."""
    id: str
    author: str
    content: str
    original_stake: Decimal
    total_staked: Decimal = Decimal(0)
    verification_count: int = 0
    status: ClaimStatus = ClaimStatus.DRAFT
    created_at: datetime = field(default_factory=utcnow)
    resolution_window: timedelta = timedelta(hours=24)
    ledger_tx_id: str | None = None
    resolution: Resolution | None = None

    @classmethod
    def draft(
        cls,
        author: str,
        content: str,
        stake: Decimal,
        resolution_window: timedelta,
        now: datetime | None = None,
    ) -> Claim:
        return cls(
            id=str(uuid4()),
            author=author,
            content=content,
            original_stake=stake,
            created_at=now or utcnow(),
            resolution_window=resolution_window,
        )

    @property
    def expires_at(self) -> datetime:
        return self.created_at + self.resolution_window

    def is_open(self, now: datetime) -> bool:
        """Pending and still inside the resolution window."""
        return self.status == ClaimStatus.PENDING and now < self.expires_at

    def closed_reason(self, now: datetime) -> str | None:
        """Why the claim cannot take a verification stake, or None if it can."""
        if self.status == ClaimStatus.DRAFT:
            return "claim is still being created"
        if self.status == ClaimStatus.RESOLVED:
            return "claim is resolved"
        if now >= self.expires_at:
            return "resolution window has expired"
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author,
            "content": self.content,
            "original_stake": str(self.original_stake),
            "total_staked": str(self.total_staked),
            "verification_count": self.verification_count,
            "status": self.status.value,
            "created_at": format_timestamp(self.created_at),
            "expires_at": format_timestamp(self.expires_at),
            "resolution_window_seconds": int(self.resolution_window.total_seconds()),
            "ledger_tx_id": self.ledger_tx_id,
            "resolution": self.resolution.to_dict() if self.resolution else None,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Claim:
        """Create from database row."""
        resolution = row.get("resolution")
        return cls(
            id=str(row["id"]),
            author=row["author"],
            content=row["content"],
            original_stake=Decimal(str(row["original_stake"])),
            total_staked=Decimal(str(row["total_staked"])),
            verification_count=int(row["verification_count"]),
            status=ClaimStatus(row["status"]),
            created_at=parse_timestamp(row["created_at"]),
            resolution_window=timedelta(seconds=int(row["resolution_window_seconds"])),
            ledger_tx_id=row.get("ledger_tx_id"),
            resolution=Resolution.from_dict(resolution) if resolution else None,
        )


# ============================================================================
# Stake
# ============================================================================

@dataclass
class Stake:
    """A confirmed, escrowed amount on one side of a claim."""
    claim_id: str
    staker: str
    side: StakeSide
    amount: Decimal
    placed_at: datetime = field(default_factory=utcnow)
    ledger_tx_id: str | None = None
    block_ref: int | None = None
    is_creation: bool = False  # The author's stake made when the claim was created

    def to_dict(self) -> dict[str, Any]:
        return {
            "claim_id": self.claim_id,
            "staker": self.staker,
            "side": self.side.value,
            "amount": str(self.amount),
            "placed_at": format_timestamp(self.placed_at),
            "ledger_tx_id": self.ledger_tx_id,
            "block_ref": self.block_ref,
            "is_creation": self.is_creation,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Stake:
        return cls(
            claim_id=str(row["claim_id"]),
            staker=row["staker"],
            side=StakeSide(row["side"]),
            amount=Decimal(str(row["amount"])),
            placed_at=parse_timestamp(row["placed_at"]),
            ledger_tx_id=row.get("ledger_tx_id"),
            block_ref=row.get("block_ref"),
            is_creation=bool(row.get("is_creation", False)),
        )


# ============================================================================
# Transaction audit record
# ============================================================================

@dataclass
class TransactionRecord:
    """Links a platform stake to its ledger transaction."""
    tx_id: str
    claim_id: str
    staker: str
    side: StakeSide
    kind: TransactionKind
    amount: Decimal
    status: TransactionStatus = TransactionStatus.SUBMITTED
    block_ref: int | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_id": self.tx_id,
            "claim_id": self.claim_id,
            "staker": self.staker,
            "side": self.side.value,
            "kind": self.kind.value,
            "amount": str(self.amount),
            "status": self.status.value,
            "block_ref": self.block_ref,
            "error": self.error,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TransactionRecord:
        return cls(
            tx_id=row["tx_id"],
            claim_id=str(row["claim_id"]),
            staker=row["staker"],
            side=StakeSide(row["side"]),
            kind=TransactionKind(row["kind"]),
            amount=Decimal(str(row["amount"])),
            status=TransactionStatus(row["status"]),
            block_ref=row.get("block_ref"),
            error=row.get("error"),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


# ============================================================================
# Profile
# ============================================================================

@dataclass
class Profile:
    """Per-user counters feeding reputation and the leaderboards."""
    user_id: str
    reputation_score: float = 100.0
    total_stakes: int = 0
    total_rewarded: Decimal = Decimal(0)
    verifications_correct: int = 0
    verifications_total: int = 0
    created_at: datetime = field(default_factory=utcnow)

    @property
    def accuracy_rate(self) -> float:
        if self.verifications_total == 0:
            return 0.0
        return self.verifications_correct / self.verifications_total

    def age_days(self, now: datetime) -> int:
        return max(0, (now - self.created_at).days)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "reputation_score": self.reputation_score,
            "total_stakes": self.total_stakes,
            "total_rewarded": str(self.total_rewarded),
            "verifications_correct": self.verifications_correct,
            "verifications_total": self.verifications_total,
            "accuracy_rate": self.accuracy_rate,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Profile:
        return cls(
            user_id=row["user_id"],
            reputation_score=float(row["reputation_score"]),
            total_stakes=int(row["total_stakes"]),
            total_rewarded=Decimal(str(row["total_rewarded"])),
            verifications_correct=int(row["verifications_correct"]),
            verifications_total=int(row["verifications_total"]),
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class ProfileAdjustment:
    """Counter deltas for one profile, applied together with a resolution."""
    user_id: str
    verifications_correct: int = 0
    verifications_total: int = 0
    reputation_delta: float = 0.0
