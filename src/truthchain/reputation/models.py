"""Leaderboard categories, periods and entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from ..staking.models import format_timestamp, parse_timestamp, utcnow


class LeaderboardCategory(str, Enum):
    """Closed set of ranking categories. Each has exactly one scorer."""
    EARNINGS = "earnings"
    ACCURACY = "accuracy"
    CHALLENGES = "challenges"
    CONTRIBUTIONS = "contributions"
    EXPERTISE = "expertise"
    RISING_STARS = "rising_stars"


class LeaderboardPeriod(str, Enum):
    """Window of stake history a leaderboard looks at."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"

    @property
    def window(self) -> timedelta | None:
        return _PERIOD_WINDOWS[self]

    def start(self, now: datetime) -> datetime | None:
        """Earliest timestamp inside the period, or None for all time."""
        window = self.window
        return now - window if window is not None else None


_PERIOD_WINDOWS: dict[LeaderboardPeriod, timedelta | None] = {
    LeaderboardPeriod.WEEKLY: timedelta(days=7),
    LeaderboardPeriod.MONTHLY: timedelta(days=30),
    LeaderboardPeriod.ALL_TIME: None,
}


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    category: LeaderboardCategory
    period: LeaderboardPeriod
    score: float
    rank: int
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "category": self.category.value,
            "period": self.period.value,
            "score": self.score,
            "rank": self.rank,
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> LeaderboardEntry:
        return cls(
            user_id=row["user_id"],
            category=LeaderboardCategory(row["category"]),
            period=LeaderboardPeriod(row["period"]),
            score=float(row["score"]),
            rank=int(row["rank"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass(frozen=True)
class LeaderboardStats:
    """Summary figures shown above a leaderboard."""
    category: LeaderboardCategory
    period: LeaderboardPeriod
    participants: int
    total_staked: str
    average_accuracy: float
    active_users: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "period": self.period.value,
            "participants": self.participants,
            "total_staked": self.total_staked,
            "average_accuracy": self.average_accuracy,
            "active_users": self.active_users,
        }
