# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""Entity-scoped asyncio locks."""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it.

    Keys are entity ids (a claim id, a profile id, a ``(claim_id, staker)``
    pair), so work on unrelated entities never queues behind each other.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self.get(key)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
