# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Per-category leaderboard scores.

Each LeaderboardCategory maps to exactly one pure scorer. The mapping is
checked at import time so a new category cannot ship without a scorer.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..staking.models import Profile, utcnow
from .models import LeaderboardCategory

RISING_STAR_WINDOW_DAYS = 30


@dataclass(frozen=True)
class ScoreInputs:
    """Everything a scorer may read."""

    profile: Profile
    period_staked: Decimal
    now: datetime


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def earnings_score(inputs: ScoreInputs) -> float:
    return float(inputs.period_staked + inputs.profile.total_rewarded)


def accuracy_score(inputs: ScoreInputs) -> float:
    return float(_round_half_up(inputs.profile.accuracy_rate * 100))


def challenges_score(inputs: ScoreInputs) -> float:
    return float(math.floor(inputs.profile.reputation_score / 20))


def contributions_score(inputs: ScoreInputs) -> float:
    return float(math.floor(inputs.profile.reputation_score / 5))


def expertise_score(inputs: ScoreInputs) -> float:
    return float(inputs.profile.reputation_score)


def rising_stars_score(inputs: ScoreInputs) -> float:
    """Reputation plus a bonus for accounts under a month old."""
    age_days = inputs.profile.age_days(inputs.now)
    base = math.floor(inputs.profile.reputation_score / 10)
    return float(base + max(0, RISING_STAR_WINDOW_DAYS - age_days) * 2)


SCORERS: dict[LeaderboardCategory, Callable[[ScoreInputs], float]] = {
    LeaderboardCategory.EARNINGS: earnings_score,
    LeaderboardCategory.ACCURACY: accuracy_score,
    LeaderboardCategory.CHALLENGES: challenges_score,
    LeaderboardCategory.CONTRIBUTIONS: contributions_score,
    LeaderboardCategory.EXPERTISE: expertise_score,
    LeaderboardCategory.RISING_STARS: rising_stars_score,
}

_unscored = set(LeaderboardCategory) - set(SCORERS)
if _unscored:
    raise RuntimeError(f"No scorer for leaderboard categories: {sorted(c.value for c in _unscored)}")


def compute_score(
    profile: Profile,
    category: LeaderboardCategory,
    *,
    period_staked: Decimal = Decimal(0),
    now: datetime | None = None,
) -> float:
    """Score a profile in one category. Never negative."""
    inputs = ScoreInputs(profile=profile, period_staked=period_staked, now=now or utcnow())
    return max(0.0, SCORERS[LeaderboardCategory(category)](inputs))
