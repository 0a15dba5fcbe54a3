#!/usr/bin/env python3
"""CLI for syncing on-chain pool positions into the ledger."""
from __future__ import annotations

import argparse
import asyncio
import sys

from yieldway.errors import YieldWayError
from yieldway.services.dependencies import get_reconciler


async def _run(args: argparse.Namespace) -> int:
    reconciler = get_reconciler()
    if args.user:
        try:
            result = await reconciler.reconcile(args.user)
        except YieldWayError as exc:
            print(f"❌ Reconciliation failed: {exc.message}")
            return 1
        print(f"{args.user}: {result.created} created, {result.updated} updated")
        return 0

    summary = await reconciler.reconcile_all()
    print(
        f"{summary['users']} users: {summary['created']} created, "
        f"{summary['updated']} updated, {summary['failed']} failed"
    )
    return 1 if summary["failed"] else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile ledger balances with on-chain positions")
    parser.add_argument("--user", help="Reconcile a single user (default: every user with a wallet)")
    args = parser.parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
