# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Leaderboard engine.

Leaderboards are rebuilt wholesale per (category, period): every profile is
scored, sorted by score descending with older accounts first on ties, and
given ranks 1..N. The new set replaces the old one in a single store call,
so readers see either the old board or the new one.

Freshness is pull-based. Components that care call ``subscribe`` and get
the new entries after each rebuild; a resolution marks boards stale so the
next read rebuilds them; ``start_refresh`` rebuilds on a timer.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Union

from ..core.config import CoreSettings, get_config
from ..core.locks import KeyedLocks
from ..core.tasks import PeriodicTask
from ..staking.enums import TransactionKind, TransactionStatus
from ..staking.models import utcnow
from .models import LeaderboardCategory, LeaderboardEntry, LeaderboardPeriod, LeaderboardStats
from .scoring import compute_score

if TYPE_CHECKING:
    from ..staking.resolver import ResolutionEvent
    from ..store.interface import ClaimStore

logger = logging.getLogger(__name__)

BoardKey = tuple[LeaderboardCategory, LeaderboardPeriod]
LeaderboardCallback = Callable[[list[LeaderboardEntry]], Union[Awaitable[None], None]]


class Subscription:
    """Handle returned by ``LeaderboardEngine.subscribe``."""

    def __init__(self, engine: LeaderboardEngine, key: BoardKey, callback: LeaderboardCallback):
        self._engine = engine
        self.key = key
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._engine._remove_subscription(self)
            self.active = False


class LeaderboardEngine:
    """Builds, stores and serves leaderboards."""

    def __init__(
        self,
        store: ClaimStore,
        *,
        settings: CoreSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.settings = settings or get_config()
        self._clock = clock
        self._locks = KeyedLocks()
        self._subscriptions: dict[BoardKey, list[Subscription]] = defaultdict(list)
        self._built: set[BoardKey] = set()
        self._stale: set[BoardKey] = set()

    # =========================================================================
    # Scoring and rebuilding
    # =========================================================================

    async def period_staked(self, period: LeaderboardPeriod, now: datetime) -> dict[str, Decimal]:
        """Confirmed verification stake per user inside the period.

        Creation stakes back the author's own claim and are not counted.
        """
        records = await self.store.list_transactions(
            status=TransactionStatus.CONFIRMED, since=period.start(now)
        )
        totals: dict[str, Decimal] = defaultdict(Decimal)
        for record in records:
            if record.kind == TransactionKind.VERIFICATION_STAKE:
                totals[record.staker] += record.amount
        return dict(totals)

    async def rebuild_leaderboard(
        self, category: LeaderboardCategory, period: LeaderboardPeriod
    ) -> list[LeaderboardEntry]:
        category = LeaderboardCategory(category)
        period = LeaderboardPeriod(period)
        key = (category, period)

        async with self._locks.hold(key):
            now = self._clock()
            profiles = await self.store.list_profiles()
            staked = await self.period_staked(period, now)

            scored = [
                (
                    compute_score(
                        profile,
                        category,
                        period_staked=staked.get(profile.user_id, Decimal(0)),
                        now=now,
                    ),
                    profile,
                )
                for profile in profiles
            ]
            scored.sort(key=lambda item: (-item[0], item[1].created_at, item[1].user_id))

            entries = [
                LeaderboardEntry(
                    user_id=profile.user_id,
                    category=category,
                    period=period,
                    score=score,
                    rank=rank,
                    updated_at=now,
                )
                for rank, (score, profile) in enumerate(scored, start=1)
            ]
            await self.store.replace_leaderboard(category, period, entries)
            self._built.add(key)
            self._stale.discard(key)

        logger.debug(f"Rebuilt {category.value}/{period.value} leaderboard: {len(entries)} entries")
        await self._publish(key, entries)
        return entries

    async def get_leaderboard(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
        limit: int | None = None,
    ) -> list[LeaderboardEntry]:
        """Stored entries, rebuilt first if the set is empty or stale."""
        category = LeaderboardCategory(category)
        period = LeaderboardPeriod(period)
        if limit is None:
            limit = self.settings.leaderboard_limit

        if (category, period) not in self._stale:
            entries = await self.store.get_leaderboard(category, period, limit)
            if entries:
                return entries
        entries = await self.rebuild_leaderboard(category, period)
        return entries[:limit]

    async def user_rank(
        self,
        user_id: str,
        category: LeaderboardCategory,
        period: LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
    ) -> LeaderboardEntry | None:
        entries = await self.store.get_leaderboard(category, period)
        if not entries or (category, period) in self._stale:
            entries = await self.rebuild_leaderboard(category, period)
        for entry in entries:
            if entry.user_id == user_id:
                return entry
        return None

    async def stats(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod = LeaderboardPeriod.ALL_TIME,
    ) -> LeaderboardStats:
        now = self._clock()
        profiles = await self.store.list_profiles()
        staked = await self.period_staked(period, now)

        rated = [p.accuracy_rate for p in profiles if p.verifications_total > 0]
        average_accuracy = round(sum(rated) / len(rated) * 100, 1) if rated else 0.0

        since = now - timedelta(days=self.settings.active_user_window_days)
        recent = await self.store.list_transactions(
            status=TransactionStatus.CONFIRMED, since=since
        )

        return LeaderboardStats(
            category=LeaderboardCategory(category),
            period=LeaderboardPeriod(period),
            participants=len(profiles),
            total_staked=str(sum(staked.values(), Decimal(0))),
            average_accuracy=average_accuracy,
            active_users=len({r.staker for r in recent}),
        )

    # =========================================================================
    # Freshness
    # =========================================================================

    def subscribe(
        self,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        callback: LeaderboardCallback,
    ) -> Subscription:
        """Call ``callback(entries)`` after every rebuild of (category, period)."""
        key = (LeaderboardCategory(category), LeaderboardPeriod(period))
        subscription = Subscription(self, key, callback)
        self._subscriptions[key].append(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.key, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.key, None)

    def subscriber_count(self, category: LeaderboardCategory, period: LeaderboardPeriod) -> int:
        return len(self._subscriptions.get((category, period), []))

    async def on_resolution(self, event: ResolutionEvent) -> None:
        """Resolver listener: every board built so far is now stale."""
        self._stale.update(self._built)
        logger.debug(f"Leaderboards marked stale after resolution of {event.claim_id}")

    def tracked_keys(self) -> set[BoardKey]:
        return set(self._built) | set(self._subscriptions)

    async def refresh(self) -> None:
        """Rebuild every board that has been built or subscribed to."""
        for category, period in sorted(self.tracked_keys(), key=lambda k: (k[0].value, k[1].value)):
            await self.rebuild_leaderboard(category, period)

    def start_refresh(self, interval: float | None = None) -> PeriodicTask:
        """Rebuild tracked boards every ``interval`` seconds until cancelled."""
        return PeriodicTask(
            self.refresh,
            interval or self.settings.leaderboard_refresh_interval,
            name="leaderboard-refresh",
        ).start()

    async def _publish(self, key: BoardKey, entries: list[LeaderboardEntry]) -> None:
        for subscription in list(self._subscriptions.get(key, [])):
            try:
                result = subscription.callback(list(entries))
                if inspect.isawaitable(result):
                    await result
            except Exception:  # noqa: BLE001
                logger.exception(f"Leaderboard subscriber failed for {key[0].value}/{key[1].value}")
