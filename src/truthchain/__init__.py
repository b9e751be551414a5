# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""TruthChain - stake-weighted claim verification and reputation.

Users post factual claims backed by a stake on a public ledger; others stake
for or against them. When a claim's window closes its outcome is decided by
stake, and the result rolls up into per-user reputation and leaderboards.

Layout:
  core        config, logging, errors, DB pool, locks, background tasks
  ledger      address grammar, unit conversion, the ledger REST client
  staking     claims, stakes, escrow, lifecycle and resolution
  reputation  leaderboard scoring and ranking
  store       in-memory and PostgreSQL storage
  explorer    read-only transaction lookups

CLI entry point: ``truthchain``
"""

__version__ = "0.1.0"

from . import (
    core as core,
)
