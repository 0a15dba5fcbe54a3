"""Internal transfers between two users' yield accounts of the same pool.

Purely off-chain: the sender debit, recipient credit and audit record are
one database transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
import secrets
import string
import time
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from yieldway.errors import (
    InsufficientFundsError,
    InvalidRequestError,
    LedgerError,
    NotFoundError,
    stage,
)
from yieldway.models.database import TX_TYPE_YIELD_TRANSFER, Account
from yieldway.services.accounts import AccountService
from yieldway.services.ledger import LedgerStore
from yieldway.services.pools import get_pool_by_id
from yieldway.utils.amounts import positive_amount

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def synthetic_reference(prefix: str = "YT") -> str:
    """Local reference for ledger-only moves, e.g. ``YTm2x9k1abc...``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(10))
    return f"{prefix}{_base36(int(time.time() * 1000))}{suffix}"


@dataclass
class TransferResult:
    tx_hash: str
    amount_sent: Decimal
    recipient_account_id: str
    account_created: bool

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "amount_sent": str(self.amount_sent),
            "recipient_account_id": self.recipient_account_id,
            "account_created": self.account_created,
        }


class TransferOrchestrator:
    def __init__(self, ledger: LedgerStore, accounts: AccountService) -> None:
        self.ledger = ledger
        self.accounts = accounts

    async def transfer(
        self, sender_id: str, recipient_id: str, sender_account_id: str, amount: Decimal
    ) -> TransferResult:
        amount = positive_amount(amount)
        if sender_id == recipient_id:
            raise InvalidRequestError("Cannot transfer to yourself")

        sender = await self.ledger.require_user(sender_id)
        recipient = await self.ledger.require_user(recipient_id)
        sender_account = await self._sender_account(sender_id, sender_account_id)
        if sender_account.balance < amount:
            raise InsufficientFundsError(
                sender_account.balance,
                amount,
                stage="balance_check",
                context={"account_id": sender_account_id},
            )

        with stage("recipient_account", recipient_id=recipient_id, pool_id=sender_account.pool_id):
            recipient_account = await self.ledger.find_pool_account(
                recipient_id, sender_account.pool_id
            )
            account_created = False
            if recipient_account is None:
                pool = get_pool_by_id(sender_account.pool_id)
                recipient_account, account_created = await self.accounts.open_yield_account(
                    recipient_id, pool.name if pool else sender_account.name, sender_account.pool_id
                )

        tx_hash = synthetic_reference()
        try:
            await self.ledger.move_between_accounts(
                sender_account_id=sender_account.id,
                recipient_account_id=recipient_account.id,
                amount_sent=amount,
                amount_received=amount,
                count_as_deposit=True,
                record={
                    "type": TX_TYPE_YIELD_TRANSFER,
                    "sender_id": sender_id,
                    "sender_name": sender.full_name,
                    "sender_account_name": sender_account.name,
                    "recipient_id": recipient_id,
                    "recipient_name": recipient.full_name,
                    "recipient_account_name": recipient_account.name,
                    "pool_id": sender_account.pool_id,
                    "protocol": sender_account.protocol,
                    "account_created": account_created,
                    "tx_hash": tx_hash,
                },
            )
        except InsufficientFundsError as exc:
            exc.stage = exc.stage or "ledger"
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "Yield transfer %s failed and was rolled back: %s -> %s (%s): %s",
                tx_hash,
                sender_account.id,
                recipient_account.id,
                amount,
                exc,
            )
            raise LedgerError("Transfer could not be recorded", stage="ledger") from exc

        logger.info(
            "Yield transfer %s: %s %s from %s to %s (account created: %s)",
            tx_hash,
            amount,
            sender_account.pool_id,
            sender_id,
            recipient_id,
            account_created,
        )
        return TransferResult(
            tx_hash=tx_hash,
            amount_sent=amount,
            recipient_account_id=recipient_account.id,
            account_created=account_created,
        )

    async def preview(self, sender_account_id: str, recipient_id: str) -> dict:
        sender_account = await self.ledger.require_account(sender_account_id)
        await self.ledger.require_user(recipient_id)
        matching: Optional[Account] = None
        if sender_account.pool_id:
            matching = await self.ledger.find_pool_account(recipient_id, sender_account.pool_id)
        if matching:
            return {
                "recipient_has_matching_account": True,
                "recipient_account_name": matching.name,
                "will_create_account": False,
                "account_to_create": None,
            }
        pool = get_pool_by_id(sender_account.pool_id) if sender_account.pool_id else None
        return {
            "recipient_has_matching_account": False,
            "recipient_account_name": None,
            "will_create_account": True,
            "account_to_create": pool.name if pool else None,
        }

    async def _sender_account(self, sender_id: str, account_id: str) -> Account:
        account = await self.ledger.require_account(account_id)
        if account.user_id != sender_id:
            raise NotFoundError(
                f"Account {account_id} not found for user {sender_id}",
                context={"account_id": account_id},
            )
        if account.is_waiting_room or not account.pool_id:
            raise InvalidRequestError("Only yield accounts can be used for yield transfers")
        return account
