"""Off-chain bookkeeping for users, accounts and transfer records.

Balances only change through atomic SQL expressions (``balance = balance + x``)
or conditional debits (``... WHERE balance >= x``); never read-modify-write.
Amounts are truncated to 6 decimals and stored as integer micro-units.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
import logging
from typing import Any, Optional
import uuid

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from yieldway.errors import InsufficientFundsError, NotFoundError
from yieldway.models.database import ACCOUNT_TYPE_WAITING_ROOM, Account, Transaction, User
from yieldway.services.database import async_session
from yieldway.utils.amounts import quantize_amount

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerStore:
    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or async_session

    # ------------------------------------------------------------------ users

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._session_factory() as db:
            return await db.get(User, user_id)

    async def require_user(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", context={"user_id": user_id})
        return user

    async def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(User).where(User.phone_number == phone_number).limit(1)
            )
            return result.scalar_one_or_none()

    async def create_user(self, user_id: str, **fields: Any) -> tuple[User, bool]:
        """Insert a user unless one with ``user_id`` exists; returns (user, created)."""
        async with self._session_factory() as db:
            values = {"id": user_id, "created_at": utc_now(), **fields}
            created = await self._insert_ignore(db, User, values, User.id)
            await db.commit()
        user = await self.get_user(user_id)
        return user, created

    async def claim_wallet(self, user_id: str, address: str, encrypted_private_key: str) -> bool:
        """Persist a wallet only if the user has none yet (compare-and-set)."""
        async with self._session_factory() as db:
            result = await db.execute(
                update(User)
                .where(User.id == user_id, User.wallet_address.is_(None))
                .values(
                    wallet_address=address,
                    encrypted_private_key=encrypted_private_key,
                    wallet_created_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount == 1

    async def users_with_wallets(self) -> list[User]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(User).where(User.wallet_address.is_not(None)).order_by(User.created_at)
            )
            return list(result.scalars().all())

    # --------------------------------------------------------------- accounts

    async def list_accounts(self, user_id: str) -> list[Account]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Account).where(Account.user_id == user_id).order_by(Account.created_at)
            )
            return list(result.scalars().all())

    async def get_account(self, account_id: str) -> Optional[Account]:
        async with self._session_factory() as db:
            return await db.get(Account, account_id)

    async def require_account(self, account_id: str) -> Account:
        account = await self.get_account(account_id)
        if account is None:
            raise NotFoundError(
                f"Account {account_id} not found", context={"account_id": account_id}
            )
        return account

    async def find_pool_account(self, user_id: str, pool_id: str) -> Optional[Account]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Account).where(Account.user_id == user_id, Account.pool_id == pool_id)
            )
            return result.scalar_one_or_none()

    async def get_waiting_room(self, user_id: str) -> Optional[Account]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Account).where(
                    Account.user_id == user_id, Account.type == ACCOUNT_TYPE_WAITING_ROOM
                )
            )
            return result.scalar_one_or_none()

    async def insert_account_if_absent(self, **fields: Any) -> tuple[Account, bool]:
        """Insert an account unless one already exists for the same (user, pool).

        Waiting rooms are unique per user instead. Returns (account, created);
        when the insert lost a race the surviving row is returned.
        """
        values = {
            "id": new_id(),
            "balance": Decimal("0"),
            "initial_deposit": Decimal("0"),
            "apy": Decimal("0"),
            "account_number": "",
            "created_at": utc_now(),
            **fields,
        }
        async with self._session_factory() as db:
            created = await self._insert_ignore(db, Account, values, Account.id)
            await db.commit()
        if created:
            return await self.require_account(values["id"]), True
        if values.get("type") == ACCOUNT_TYPE_WAITING_ROOM:
            existing = await self.get_waiting_room(values["user_id"])
        else:
            existing = await self.find_pool_account(values["user_id"], values["pool_id"])
        if existing is None:
            # Conflict on something other than the uniqueness keys we look up.
            raise NotFoundError(
                "Account insert conflicted but no matching account exists",
                context={"user_id": values.get("user_id"), "pool_id": values.get("pool_id")},
            )
        return existing, False

    async def increment_balance(
        self, account_id: str, amount: Decimal, *, count_as_deposit: bool = False
    ) -> Account:
        amount = quantize_amount(amount)
        values: dict[str, Any] = {
            "balance": Account.balance + amount,
            "last_updated": utc_now(),
        }
        if count_as_deposit:
            values["initial_deposit"] = Account.initial_deposit + amount
        async with self._session_factory() as db:
            result = await db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                raise NotFoundError(
                    f"Account {account_id} not found", context={"account_id": account_id}
                )
            await db.commit()
        return await self.require_account(account_id)

    async def debit(self, account_id: str, amount: Decimal) -> Account:
        """Atomically subtract ``amount``; fails without writing if the balance is short."""
        amount = quantize_amount(amount)
        async with self._session_factory() as db:
            await self._debit(db, account_id, amount)
            await db.commit()
        return await self.require_account(account_id)

    async def set_balance(self, account_id: str, balance: Decimal) -> Account:
        """Overwrite the cached balance with the on-chain value (last write wins)."""
        now = utc_now()
        async with self._session_factory() as db:
            result = await db.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(balance=quantize_amount(balance), last_updated=now, last_synced=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                raise NotFoundError(
                    f"Account {account_id} not found", context={"account_id": account_id}
                )
            await db.commit()
        return await self.require_account(account_id)

    # ------------------------------------------------------------- transfers

    async def move_between_accounts(
        self,
        *,
        sender_account_id: str,
        recipient_account_id: str,
        amount_sent: Decimal,
        amount_received: Decimal,
        record: dict[str, Any],
        count_as_deposit: bool = False,
    ) -> Transaction:
        """Debit, credit and append the audit record in a single DB transaction.

        Either all three writes land or none do.
        """
        amount_sent = quantize_amount(amount_sent)
        amount_received = quantize_amount(amount_received)
        now = utc_now()
        async with self._session_factory() as db:
            async with db.begin():
                await self._debit(db, sender_account_id, amount_sent)
                credit: dict[str, Any] = {
                    "balance": Account.balance + amount_received,
                    "last_updated": now,
                }
                if count_as_deposit:
                    credit["initial_deposit"] = Account.initial_deposit + amount_received
                result = await db.execute(
                    update(Account)
                    .where(Account.id == recipient_account_id)
                    .values(**credit)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise NotFoundError(
                        f"Account {recipient_account_id} not found",
                        context={"account_id": recipient_account_id},
                    )
                tx = Transaction(
                    id=new_id(),
                    sender_account_id=sender_account_id,
                    recipient_account_id=recipient_account_id,
                    amount_sent=amount_sent,
                    amount_received=amount_received,
                    status="completed",
                    created_at=now,
                    **record,
                )
                db.add(tx)
        logger.info(
            "Ledger move %s: %s -> %s (%s sent, %s received)",
            tx.id,
            sender_account_id,
            recipient_account_id,
            amount_sent,
            amount_received,
        )
        return tx

    async def get_transaction_by_ref(self, tx_hash: str) -> Optional[Transaction]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Transaction).where(Transaction.tx_hash == tx_hash).limit(1)
            )
            return result.scalar_one_or_none()

    async def list_transactions(self, user_id: str, limit: int = 50) -> list[Transaction]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Transaction)
                .where((Transaction.sender_id == user_id) | (Transaction.recipient_id == user_id))
                .order_by(Transaction.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # --------------------------------------------------------------- helpers

    async def _debit(self, db, account_id: str, amount: Decimal) -> None:
        result = await db.execute(
            update(Account)
            .where(Account.id == account_id, Account.balance >= amount)
            .values(balance=Account.balance - amount, last_updated=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return
        current = await db.execute(select(Account.balance).where(Account.id == account_id))
        available = current.scalar_one_or_none()
        if available is None:
            raise NotFoundError(f"Account {account_id} not found", context={"account_id": account_id})
        raise InsufficientFundsError(available, amount, context={"account_id": account_id})

    async def _insert_ignore(self, db, model, values: dict[str, Any], returning_col) -> bool:
        dialect = db.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert_fn(model).values(**values).on_conflict_do_nothing().returning(returning_col)
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None
