#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 TruthChain Contributors

"""
TruthChain CLI - operator commands for the staking core.

Commands:
  truthchain init-db                 Create the database schema
  truthchain network                 Show ledger node health
  truthchain balance <address>       Show an account balance
  truthchain lookup <tx_id>          Explore a stake transaction
  truthchain recent                  List recent stake transactions
  truthchain leaderboard <category>  Show a leaderboard
  truthchain resolve-due             Resolve every claim whose window closed
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from .core.config import get_config
from .core.exceptions import TruthChainException
from .core.logging import configure_logging
from .ledger.client import LedgerClient
from .reputation.models import LeaderboardCategory, LeaderboardPeriod

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _output_error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


async def _with_core(func):
    from .service import TruthChain
    from .store.postgres import PostgresStore

    async with TruthChain(PostgresStore()) as core:
        return await func(core)


def cmd_init_db(args: argparse.Namespace) -> int:
    from .store.postgres import PostgresStore

    PostgresStore().create_schema()
    print("Schema ready")
    return 0


def cmd_network(args: argparse.Namespace) -> int:
    async def run() -> int:
        async with LedgerClient() as ledger:
            status = await ledger.check_network_status()
        _print_json(status.__dict__)
        return 0 if status.healthy else 1

    return asyncio.run(run())


def cmd_balance(args: argparse.Namespace) -> int:
    async def run() -> int:
        async with LedgerClient() as ledger:
            balance = await ledger.get_balance(args.address, fresh=True)
        _print_json({"address": args.address, "balance": str(balance)})
        return 0

    return asyncio.run(run())


def cmd_lookup(args: argparse.Namespace) -> int:
    async def run(core) -> int:
        result = await core.explorer.lookup(args.tx_id)
        _print_json(result.to_dict())
        return 0 if result.found else 1

    return asyncio.run(_with_core(run))


def cmd_recent(args: argparse.Namespace) -> int:
    async def run(core) -> int:
        records = await core.explorer.recent(limit=args.limit)
        _print_json([r.to_dict() for r in records])
        return 0

    return asyncio.run(_with_core(run))


def cmd_leaderboard(args: argparse.Namespace) -> int:
    async def run(core) -> int:
        category = LeaderboardCategory(args.category)
        period = LeaderboardPeriod(args.period)
        if args.rebuild:
            entries = await core.leaderboards.rebuild_leaderboard(category, period)
            entries = entries[: args.limit]
        else:
            entries = await core.leaderboards.get_leaderboard(category, period, args.limit)
        _print_json([e.to_dict() for e in entries])
        return 0

    return asyncio.run(_with_core(run))


def cmd_resolve_due(args: argparse.Namespace) -> int:
    async def run(core) -> int:
        resolutions = await core.resolver.resolve_due()
        _print_json([r.to_dict() for r in resolutions])
        return 0

    return asyncio.run(_with_core(run))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="truthchain",
        description="Operator commands for the TruthChain staking core",
    )
    parser.add_argument("--log-level", help="Override TRUTHCHAIN_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.set_defaults(func=cmd_init_db)

    network_parser = subparsers.add_parser("network", help="Show ledger node health")
    network_parser.set_defaults(func=cmd_network)

    balance_parser = subparsers.add_parser("balance", help="Show an account balance")
    balance_parser.add_argument("address", help="Ledger address")
    balance_parser.set_defaults(func=cmd_balance)

    lookup_parser = subparsers.add_parser("lookup", help="Explore a stake transaction")
    lookup_parser.add_argument("tx_id", help="Ledger transaction id")
    lookup_parser.set_defaults(func=cmd_lookup)

    recent_parser = subparsers.add_parser("recent", help="List recent stake transactions")
    recent_parser.add_argument("--limit", "-n", type=int, default=20)
    recent_parser.set_defaults(func=cmd_recent)

    board_parser = subparsers.add_parser("leaderboard", help="Show a leaderboard")
    board_parser.add_argument("category", choices=[c.value for c in LeaderboardCategory])
    board_parser.add_argument(
        "--period",
        "-p",
        choices=[p.value for p in LeaderboardPeriod],
        default=LeaderboardPeriod.ALL_TIME.value,
    )
    board_parser.add_argument("--limit", "-n", type=int, default=None)
    board_parser.add_argument("--rebuild", action="store_true", help="Rebuild before showing")
    board_parser.set_defaults(func=cmd_leaderboard)

    resolve_parser = subparsers.add_parser("resolve-due", help="Resolve expired claims")
    resolve_parser.set_defaults(func=cmd_resolve_due)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(level=args.log_level)
        if args.command == "leaderboard" and args.limit is None:
            args.limit = get_config().leaderboard_limit
        return args.func(args)
    except TruthChainException as e:
        _output_error(e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
