# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Wiring for the staking core.

Builds the ledger client, stake ledger, lifecycle, resolver, leaderboard
engine and explorer over one store, and connects resolution events to the
leaderboard.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from .core.config import CoreSettings, get_config
from .core.tasks import PeriodicTask
from .explorer import TransactionExplorer
from .ledger.client import LedgerClient
from .ledger.signing import TransactionSigner
from .reputation.leaderboard import LeaderboardEngine
from .staking.lifecycle import ClaimLifecycle
from .staking.models import utcnow
from .staking.resolver import VerificationResolver
from .staking.stake_ledger import StakeLedger
from .store.interface import ClaimStore

logger = logging.getLogger(__name__)


class TruthChain:
    """All core components sharing one store and one ledger client."""

    def __init__(
        self,
        store: ClaimStore,
        *,
        signer: TransactionSigner | None = None,
        ledger: LedgerClient | None = None,
        settings: CoreSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or get_config()
        self.store = store
        self.ledger = ledger or LedgerClient(signer, settings=self.settings)
        self.stake_ledger = StakeLedger(store, self.ledger, settings=self.settings, clock=clock)
        self.claims = ClaimLifecycle(store, self.stake_ledger, settings=self.settings, clock=clock)
        self.resolver = VerificationResolver(store, self.ledger, settings=self.settings, clock=clock)
        self.leaderboards = LeaderboardEngine(store, settings=self.settings, clock=clock)
        self.explorer = TransactionExplorer(store, self.ledger)

        self._remove_listener = self.resolver.add_listener(self.leaderboards.on_resolution)
        self._tasks: list[PeriodicTask] = []

    def start_background(self, resolve_interval: float = 60.0) -> None:
        """Start the resolution sweep, draft recovery and leaderboard refresh loops."""
        self._tasks.append(self.resolver.start(resolve_interval))
        self._tasks.append(
            PeriodicTask(self.claims.recover_drafts, resolve_interval, name="recover-drafts").start()
        )
        self._tasks.append(self.leaderboards.start_refresh())

    async def aclose(self) -> None:
        for task in self._tasks:
            await task.stop()
        self._tasks.clear()
        self._remove_listener()
        await self.ledger.aclose()

    async def __aenter__(self) -> TruthChain:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
