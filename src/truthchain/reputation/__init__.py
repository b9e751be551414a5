"""Reputation scoring and leaderboards."""

from .leaderboard import LeaderboardEngine, Subscription
from .models import LeaderboardCategory, LeaderboardEntry, LeaderboardPeriod, LeaderboardStats
from .scoring import SCORERS, ScoreInputs, compute_score

__all__ = [
    "SCORERS",
    "LeaderboardCategory",
    "LeaderboardEngine",
    "LeaderboardEntry",
    "LeaderboardPeriod",
    "LeaderboardStats",
    "ScoreInputs",
    "Subscription",
    "compute_score",
]
