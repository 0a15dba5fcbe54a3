#!/usr/bin/env python3
"""Fund a custodial wallet with test USDC (and optionally gas) from the master wallet."""
from __future__ import annotations

import argparse
import asyncio
from decimal import Decimal, InvalidOperation
import sys

from yieldway.errors import TransactionUnconfirmedError, YieldWayError
from yieldway.services.dependencies import get_funding, get_provisioner


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fund a user wallet from the master wallet")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--address", help="Wallet address to fund")
    target.add_argument("--user", help="User id; the wallet is created if missing")
    parser.add_argument("--amount", required=True, help="USDC amount, e.g. 50")
    parser.add_argument("--gas", action="store_true", help="Also send native gas")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    try:
        amount = Decimal(args.amount)
    except InvalidOperation:
        print(f"❌ Invalid amount: {args.amount}")
        return 1

    try:
        address = args.address or await get_provisioner().ensure_wallet(args.user)
        result = await get_funding().fund(address, amount, include_gas=args.gas)
    except TransactionUnconfirmedError as exc:
        print(f"⏳ Submitted but unconfirmed: {exc.tx_hash}. Check status before retrying.")
        return 2
    except YieldWayError as exc:
        print(f"❌ Funding failed at {exc.stage or 'setup'}: {exc.message}")
        return 1

    print(f"✅ Funded {result.address} with {result.amount} USDC")
    print(f"   Tx: {result.tx_hash}")
    if result.gas_tx_hash:
        print(f"   Gas tx: {result.gas_tx_hash}")
    return 0


def main(argv=None) -> int:
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
