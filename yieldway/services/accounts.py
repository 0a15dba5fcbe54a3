"""User registration and account opening."""
from __future__ import annotations

from decimal import Decimal
import logging
import random
from typing import Optional

from yieldway.errors import InvalidRequestError, NotFoundError
from yieldway.models.database import (
    ACCOUNT_TYPE_SAVINGS,
    ACCOUNT_TYPE_WAITING_ROOM,
    ACCOUNT_TYPES,
    Account,
    User,
)
from yieldway.services.countries import DEFAULT_COUNTRY_CODE, get_country_by_code
from yieldway.services.ledger import LedgerStore
from yieldway.services.pools import get_pool_by_id
from yieldway.services.wallets import WalletProvisioner
from yieldway.utils.amounts import positive_amount, quantize_amount

logger = logging.getLogger(__name__)

WAITING_ROOM_NAME = "Waiting Room"


def generate_account_number() -> str:
    return f"•••• {random.randint(1000, 9999)}"


class AccountService:
    def __init__(self, ledger: LedgerStore, provisioner: WalletProvisioner) -> None:
        self.ledger = ledger
        self.provisioner = provisioner

    async def register_user(
        self,
        user_id: str,
        phone_number: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        country: Optional[str] = None,
    ) -> User:
        """Create the user profile and its waiting room. Re-registering is a no-op."""
        resolved = get_country_by_code(country) or get_country_by_code(DEFAULT_COUNTRY_CODE)
        user, created = await self.ledger.create_user(
            user_id,
            phone_number=phone_number,
            first_name=first_name,
            last_name=last_name,
            country=resolved.code,
            currency=resolved.currency,
            currency_symbol=resolved.currency_symbol,
        )
        if created:
            logger.info("Registered user %s (%s)", user_id, resolved.code)
        await self.ensure_waiting_room(user_id)
        return user

    async def ensure_waiting_room(self, user_id: str) -> Account:
        account, created = await self.ledger.insert_account_if_absent(
            user_id=user_id,
            name=WAITING_ROOM_NAME,
            type=ACCOUNT_TYPE_WAITING_ROOM,
        )
        if created:
            logger.info("Created waiting room %s for user %s", account.id, user_id)
        return account

    async def open_yield_account(
        self,
        user_id: str,
        name: Optional[str],
        pool_id: str,
        initial_deposit: Decimal = Decimal("0"),
        account_type: str = ACCOUNT_TYPE_SAVINGS,
    ) -> tuple[Account, bool]:
        """Open a pool-backed account; returns the existing one for the same pool.

        The user's custodial wallet is created first so every yield account has
        an on-chain home. Returns (account, created).
        """
        pool = get_pool_by_id(pool_id)
        if pool is None:
            raise NotFoundError(f"Unknown pool: {pool_id}", context={"pool_id": pool_id})
        if account_type not in ACCOUNT_TYPES or account_type == ACCOUNT_TYPE_WAITING_ROOM:
            raise InvalidRequestError(f"Invalid account type: {account_type}")
        initial_deposit = quantize_amount(initial_deposit)
        if initial_deposit < 0:
            raise InvalidRequestError("Initial deposit cannot be negative")

        wallet_address = await self.provisioner.ensure_wallet(user_id)
        account, created = await self.ledger.insert_account_if_absent(
            user_id=user_id,
            name=name or pool.name,
            account_number=generate_account_number(),
            balance=initial_deposit,
            initial_deposit=initial_deposit,
            type=account_type,
            apy=pool.apy,
            pool_id=pool.id,
            protocol=pool.protocol,
            chain=pool.chain,
            wallet_address=wallet_address,
        )
        if created:
            logger.info(
                "Opened %s account %s for user %s (initial %s)",
                pool.id,
                account.id,
                user_id,
                initial_deposit,
            )
        else:
            logger.info("User %s already has %s account %s", user_id, pool.id, account.id)
        return account, created

    async def add_to_waiting_room(self, user_id: str, amount: Decimal) -> Account:
        amount = positive_amount(amount)
        waiting_room = await self.ledger.get_waiting_room(user_id)
        if waiting_room is None:
            raise NotFoundError(
                f"No waiting room account for user {user_id}", context={"user_id": user_id}
            )
        account = await self.ledger.increment_balance(waiting_room.id, amount)
        logger.info("Added %s to waiting room of user %s", amount, user_id)
        return account
