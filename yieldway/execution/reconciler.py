"""Detect on-chain pool positions and sync them into the ledger.

On-chain receipt-token balances are the source of truth; account balances
are a cache that this overwrites (last write wins).
"""
from __future__ import annotations

from dataclasses import dataclass
import logging

from yieldway.errors import YieldWayError, stage
from yieldway.onchain.gateway import ChainGateway
from yieldway.services.accounts import AccountService
from yieldway.services.ledger import LedgerStore
from yieldway.services.pools import tracked_pools

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    created: int = 0
    updated: int = 0

    def to_dict(self) -> dict:
        return {"created": self.created, "updated": self.updated}


class PositionReconciler:
    def __init__(self, gateway: ChainGateway, ledger: LedgerStore, accounts: AccountService) -> None:
        self.gateway = gateway
        self.ledger = ledger
        self.accounts = accounts

    async def reconcile(self, user_id: str) -> ReconcileResult:
        user = await self.ledger.require_user(user_id)
        result = ReconcileResult()
        if not user.wallet_address:
            logger.info("User %s has no wallet yet; nothing to reconcile", user_id)
            return result

        for pool in tracked_pools():
            with stage("reconcile", pool_id=pool.id, address=user.wallet_address):
                balance = await self.gateway.token_balance(pool.receipt_token, user.wallet_address)
            if balance <= 0:
                continue

            existing = await self.ledger.find_pool_account(user_id, pool.id)
            if existing is None:
                account, created = await self.accounts.open_yield_account(
                    user_id, pool.name, pool.id, initial_deposit=balance
                )
                if created:
                    logger.info(
                        "Detected %s position for user %s: created account %s with %s",
                        pool.id,
                        user_id,
                        account.id,
                        balance,
                    )
                    result.created += 1
                    continue
                existing = account

            await self.ledger.set_balance(existing.id, balance)
            if existing.balance != balance:
                logger.info(
                    "Synced %s account %s for user %s: %s -> %s",
                    pool.id,
                    existing.id,
                    user_id,
                    existing.balance,
                    balance,
                )
            result.updated += 1

        logger.info(
            "Reconciled user %s: %d created, %d updated", user_id, result.created, result.updated
        )
        return result

    async def reconcile_all(self) -> dict:
        summary = {"users": 0, "created": 0, "updated": 0, "failed": 0}
        for user in await self.ledger.users_with_wallets():
            summary["users"] += 1
            try:
                result = await self.reconcile(user.id)
            except YieldWayError as exc:
                summary["failed"] += 1
                logger.error("Reconciliation failed for user %s at %s: %s", user.id, exc.stage, exc)
                continue
            summary["created"] += result.created
            summary["updated"] += result.updated
        return summary
