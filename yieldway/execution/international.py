"""Cross-currency transfers between two users' waiting rooms."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from yieldway.errors import (
    InsufficientFundsError,
    InvalidRequestError,
    LedgerError,
    NotFoundError,
    UnsupportedCurrencyError,
    YieldWayError,
    stage,
)
from yieldway.execution.settlement import SettlementProvider, get_exchange_rate
from yieldway.models.database import TX_TYPE_INTERNATIONAL, User
from yieldway.services.countries import currency_for_country
from yieldway.services.ledger import LedgerStore
from yieldway.utils.amounts import positive_amount

logger = logging.getLogger(__name__)


@dataclass
class InternationalTransferResult:
    tx_hash: str
    amount_sent: Decimal
    amount_received: Decimal
    exchange_rate: Decimal
    currency_sent: str
    currency_received: str
    fee: Decimal

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "amount_sent": str(self.amount_sent),
            "amount_received": str(self.amount_received),
            "exchange_rate": str(self.exchange_rate),
            "currency_sent": self.currency_sent,
            "currency_received": self.currency_received,
            "fee": str(self.fee),
        }


def resolve_currency(user: User) -> str:
    """User's currency, falling back to their country's; never guessed."""
    currency: Optional[str] = user.currency or currency_for_country(user.country)
    if not currency:
        raise UnsupportedCurrencyError(
            f"User {user.id} has no currency or supported country",
            context={"user_id": user.id, "country": user.country},
        )
    return currency.upper()


class InternationalTransferOrchestrator:
    def __init__(self, ledger: LedgerStore, settlement: SettlementProvider) -> None:
        self.ledger = ledger
        self.settlement = settlement

    async def send_international(
        self, sender_id: str, recipient_id: str, amount: Decimal
    ) -> InternationalTransferResult:
        amount = positive_amount(amount)
        if sender_id == recipient_id:
            raise InvalidRequestError("Cannot transfer to yourself")

        sender = await self.ledger.require_user(sender_id)
        recipient = await self.ledger.require_user(recipient_id)
        currency_sent = resolve_currency(sender)
        currency_received = resolve_currency(recipient)
        # Fails before any money moves if the pair is unsupported.
        get_exchange_rate(currency_sent, currency_received)

        sender_room = await self.ledger.get_waiting_room(sender_id)
        if sender_room is None:
            raise NotFoundError("Sender has no waiting room", context={"user_id": sender_id})
        if sender_room.balance < amount:
            raise InsufficientFundsError(
                sender_room.balance,
                amount,
                stage="balance_check",
                context={"account_id": sender_room.id},
            )
        recipient_room = await self.ledger.get_waiting_room(recipient_id)
        if recipient_room is None:
            raise NotFoundError("Recipient has no waiting room", context={"user_id": recipient_id})

        with stage("settlement", currency_sent=currency_sent, currency_received=currency_received):
            settled = await self.settlement.settle(
                currency_sent, currency_received, amount, recipient_id
            )
        logger.info(
            "Settled %s %s -> %s %s (%s): %s",
            amount,
            currency_sent,
            settled.amount_received,
            currency_received,
            settled.exchange_rate,
            settled.tx_hash,
        )

        try:
            await self.ledger.move_between_accounts(
                sender_account_id=sender_room.id,
                recipient_account_id=recipient_room.id,
                amount_sent=amount,
                amount_received=settled.amount_received,
                record={
                    "type": TX_TYPE_INTERNATIONAL,
                    "sender_id": sender_id,
                    "sender_name": sender.full_name,
                    "sender_account_name": sender_room.name,
                    "recipient_id": recipient_id,
                    "recipient_name": recipient.full_name,
                    "recipient_account_name": recipient_room.name,
                    "currency_sent": currency_sent,
                    "currency_received": currency_received,
                    "exchange_rate": settled.exchange_rate,
                    "fee": settled.fee,
                    "settlement_seconds": settled.settlement_seconds,
                    "tx_hash": settled.tx_hash,
                },
            )
        except (YieldWayError, SQLAlchemyError) as exc:
            logger.error(
                "LEDGER INCONSISTENCY RISK: settlement %s completed but ledger move "
                "%s -> %s (%s %s / %s %s) failed: %s",
                settled.tx_hash,
                sender_room.id,
                recipient_room.id,
                amount,
                currency_sent,
                settled.amount_received,
                currency_received,
                exc,
            )
            raise LedgerError(
                "Settlement completed but ledger update failed",
                stage="ledger",
                context={
                    "tx_hash": settled.tx_hash,
                    "sender_account_id": sender_room.id,
                    "recipient_account_id": recipient_room.id,
                    "amount": amount,
                },
            ) from exc

        return InternationalTransferResult(
            tx_hash=settled.tx_hash,
            amount_sent=amount,
            amount_received=settled.amount_received,
            exchange_rate=settled.exchange_rate,
            currency_sent=currency_sent,
            currency_received=currency_received,
            fee=settled.fee,
        )
