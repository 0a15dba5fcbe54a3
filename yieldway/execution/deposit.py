"""Supply custodial USDC to the lending pool and withdraw it back.

Deposit sequence for one wallet, strictly ordered:
wallet -> balance_check -> approve (skipped if allowance suffices) -> supply
-> receipt post-check (logged only) -> ledger credit (optional).

Every failure carries the stage it happened in, so callers can tell
whether funds moved on-chain even if the ledger did not change.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from yieldway.config import settings
from yieldway.errors import (
    ChainError,
    ConfigurationError,
    InsufficientFundsError,
    InvalidRequestError,
    LedgerError,
    NotFoundError,
    YieldWayError,
    stage,
)
from yieldway.models.database import Account
from yieldway.onchain.gateway import ChainGateway
from yieldway.services.ledger import LedgerStore
from yieldway.services.pools import DEFAULT_POOL_ID, YieldPool, get_pool_by_id
from yieldway.services.wallets import WalletProvisioner
from yieldway.utils.amounts import positive_amount
from yieldway.utils.locks import wallet_lock

logger = logging.getLogger(__name__)


@dataclass
class DepositResult:
    user_id: str
    wallet_address: str
    pool_id: str
    amount: Decimal
    tx_hash: str
    approve_tx_hash: Optional[str] = None
    receipt_balance: Optional[Decimal] = None
    account_id: Optional[str] = None
    account_balance: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "wallet_address": self.wallet_address,
            "pool_id": self.pool_id,
            "amount": str(self.amount),
            "tx_hash": self.tx_hash,
            "approve_tx_hash": self.approve_tx_hash,
            "receipt_balance": str(self.receipt_balance) if self.receipt_balance is not None else None,
            "account_id": self.account_id,
            "account_balance": str(self.account_balance) if self.account_balance is not None else None,
        }


@dataclass
class WithdrawResult:
    user_id: str
    wallet_address: str
    pool_id: str
    amount: Decimal
    tx_hash: str
    account_id: Optional[str] = None
    account_balance: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "wallet_address": self.wallet_address,
            "pool_id": self.pool_id,
            "amount": str(self.amount),
            "tx_hash": self.tx_hash,
            "account_id": self.account_id,
            "account_balance": str(self.account_balance) if self.account_balance is not None else None,
        }


class YieldDepositOrchestrator:
    def __init__(
        self,
        gateway: ChainGateway,
        provisioner: WalletProvisioner,
        ledger: LedgerStore,
        *,
        pool_id: str = DEFAULT_POOL_ID,
        asset_address: Optional[str] = None,
    ) -> None:
        pool = get_pool_by_id(pool_id)
        if pool is None:
            raise ConfigurationError(f"Unknown pool: {pool_id}")
        self.gateway = gateway
        self.provisioner = provisioner
        self.ledger = ledger
        self.pool: YieldPool = pool
        self.asset_address = asset_address or settings.usdc_address

    async def deposit_to_pool(
        self, user_id: str, amount: Decimal, account_id: Optional[str] = None
    ) -> DepositResult:
        amount = positive_amount(amount)
        if account_id:
            await self._require_pool_account(user_id, account_id)

        with stage("wallet", user_id=user_id):
            address = await self.provisioner.get_wallet_address(user_id)
            signer = await self.provisioner.load_signer(user_id)

        pool_address = self.pool.contract_address
        approve_tx: Optional[str] = None
        async with wallet_lock(address, operation="deposit"):
            with stage("balance_check", address=address):
                available = await self.gateway.token_balance(self.asset_address, address)
                if available < amount:
                    raise InsufficientFundsError(available, amount, context={"address": address})

            with stage("approve", address=address, amount=amount):
                allowance = await self.gateway.allowance(self.asset_address, address, pool_address)
                if allowance >= amount:
                    logger.info("Allowance %s already covers %s for %s", allowance, amount, address)
                else:
                    approve_tx = await self.gateway.approve(
                        signer, self.asset_address, pool_address, amount
                    )

            with stage("supply", address=address, amount=amount, approve_tx_hash=approve_tx):
                tx_hash = await self.gateway.supply(
                    signer, pool_address, self.asset_address, amount, address
                )
            logger.info("Supplied %s USDC from %s to %s: %s", amount, address, self.pool.id, tx_hash)

            receipt_balance = await self._receipt_balance(address)

        result = DepositResult(
            user_id=user_id,
            wallet_address=address,
            pool_id=self.pool.id,
            amount=amount,
            tx_hash=tx_hash,
            approve_tx_hash=approve_tx,
            receipt_balance=receipt_balance,
            account_id=account_id,
        )
        if account_id:
            account = await self._apply_ledger(
                "deposit",
                tx_hash,
                account_id,
                lambda: self.ledger.increment_balance(account_id, amount, count_as_deposit=True),
                amount,
            )
            result.account_balance = account.balance
        return result

    async def withdraw_from_pool(
        self, user_id: str, amount: Decimal, account_id: Optional[str] = None
    ) -> WithdrawResult:
        amount = positive_amount(amount)
        receipt_token = self.pool.receipt_token
        if not receipt_token:
            raise ConfigurationError(f"No receipt token configured for pool {self.pool.id}")
        if account_id:
            account = await self._require_pool_account(user_id, account_id)
            if account.balance < amount:
                raise InsufficientFundsError(
                    account.balance, amount, stage="balance_check", context={"account_id": account_id}
                )

        with stage("wallet", user_id=user_id):
            address = await self.provisioner.get_wallet_address(user_id)
            signer = await self.provisioner.load_signer(user_id)

        async with wallet_lock(address, operation="withdraw"):
            with stage("balance_check", address=address):
                position = await self.gateway.token_balance(receipt_token, address)
                if position < amount:
                    raise InsufficientFundsError(position, amount, context={"address": address})

            with stage("withdraw", address=address, amount=amount):
                tx_hash = await self.gateway.withdraw(
                    signer, self.pool.contract_address, self.asset_address, amount, address
                )
            logger.info("Withdrew %s USDC from %s to %s: %s", amount, self.pool.id, address, tx_hash)

        result = WithdrawResult(
            user_id=user_id,
            wallet_address=address,
            pool_id=self.pool.id,
            amount=amount,
            tx_hash=tx_hash,
            account_id=account_id,
        )
        if account_id:
            account = await self._apply_ledger(
                "withdraw",
                tx_hash,
                account_id,
                lambda: self.ledger.debit(account_id, amount),
                amount,
            )
            result.account_balance = account.balance
        return result

    async def _require_pool_account(self, user_id: str, account_id: str) -> Account:
        account = await self.ledger.require_account(account_id)
        if account.user_id != user_id:
            raise NotFoundError(
                f"Account {account_id} not found for user {user_id}",
                context={"account_id": account_id},
            )
        if account.pool_id != self.pool.id:
            raise InvalidRequestError(
                f"Account {account_id} is not a {self.pool.id} account",
                context={"account_id": account_id},
            )
        return account

    async def _receipt_balance(self, address: str) -> Optional[Decimal]:
        receipt_token = self.pool.receipt_token
        if not receipt_token:
            return None
        try:
            balance = await self.gateway.token_balance(receipt_token, address)
        except ChainError as exc:
            logger.warning("Receipt balance post-check failed for %s: %s", address, exc)
            return None
        logger.info("Receipt balance for %s in %s: %s", address, self.pool.id, balance)
        return balance

    async def _apply_ledger(self, operation: str, tx_hash: str, account_id: str, write, amount):
        try:
            return await write()
        except (YieldWayError, SQLAlchemyError) as exc:
            # The chain already moved; the ledger now lags until reconciled.
            logger.error(
                "LEDGER INCONSISTENCY RISK: %s %s confirmed on-chain (%s) but ledger update "
                "of account %s failed: %s",
                operation,
                amount,
                tx_hash,
                account_id,
                exc,
            )
            raise LedgerError(
                f"{operation.capitalize()} confirmed on-chain but ledger update failed",
                stage="ledger",
                context={"tx_hash": tx_hash, "account_id": account_id, "amount": amount},
            ) from exc


async def fund_and_deposit(
    funding,
    depositor: YieldDepositOrchestrator,
    user_id: str,
    amount: Decimal,
    account_id: Optional[str] = None,
    include_gas: bool = False,
) -> dict:
    """Dev flow: master wallet funds the user, then the user deposits into the pool."""
    address = await depositor.provisioner.ensure_wallet(user_id)
    funded = await funding.fund(address, amount, include_gas=include_gas)
    try:
        deposit = await depositor.deposit_to_pool(user_id, amount, account_id=account_id)
    except YieldWayError as exc:
        exc.context.setdefault("funding_tx_hash", funded.tx_hash)
        raise
    return {"funding": funded.to_dict(), "deposit": deposit.to_dict()}
