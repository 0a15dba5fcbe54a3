from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from yieldway.utils.amounts import LEDGER_DECIMALS, from_base_units, to_base_units


class TokenAmount(TypeDecorator):
    """Decimal amount stored as integer micro-units.

    SQL-side arithmetic (``balance + x``, ``balance >= x``) stays exact on
    every backend, including SQLite where ``Numeric`` is a float.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_base_units(value, LEDGER_DECIMALS)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return from_base_units(value, LEDGER_DECIMALS)


BALANCE_TYPE = TokenAmount()
RATE_TYPE = Numeric(20, 8)

ACCOUNT_TYPE_WAITING_ROOM = "waiting-room"
ACCOUNT_TYPE_CHECKING = "checking"
ACCOUNT_TYPE_SAVINGS = "savings"
ACCOUNT_TYPES = (ACCOUNT_TYPE_WAITING_ROOM, ACCOUNT_TYPE_CHECKING, ACCOUNT_TYPE_SAVINGS)

TX_TYPE_YIELD_TRANSFER = "yield_account_transfer"
TX_TYPE_INTERNATIONAL = "international_transfer"


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    phone_number: Mapped[str] = mapped_column(String(32), index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(2))
    currency: Mapped[Optional[str]] = mapped_column(String(3))
    currency_symbol: Mapped[Optional[str]] = mapped_column(String(8))
    wallet_address: Mapped[Optional[str]] = mapped_column(String(42), unique=True)
    encrypted_private_key: Mapped[Optional[str]] = mapped_column(Text)
    wallet_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )

    accounts: Mapped[list["Account"]] = relationship(back_populates="user")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, wallet_address={self.wallet_address!r})"


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "pool_id", name="uq_accounts_user_pool"),
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        Index(
            "uq_accounts_user_waiting_room",
            "user_id",
            unique=True,
            sqlite_where=text("type = 'waiting-room'"),
            postgresql_where=text("type = 'waiting-room'"),
        ),
        Index("idx_accounts_user_type", "user_id", "type"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    account_number: Mapped[str] = mapped_column(String(32), default="")
    balance: Mapped[Decimal] = mapped_column(BALANCE_TYPE, default=Decimal("0"))
    initial_deposit: Mapped[Decimal] = mapped_column(BALANCE_TYPE, default=Decimal("0"))
    type: Mapped[str] = mapped_column(String(20))
    apy: Mapped[Decimal] = mapped_column(Numeric(8, 4), default=Decimal("0"))
    pool_id: Mapped[Optional[str]] = mapped_column(String(64))
    protocol: Mapped[Optional[str]] = mapped_column(String(64))
    chain: Mapped[Optional[str]] = mapped_column(String(64))
    wallet_address: Mapped[Optional[str]] = mapped_column(String(42))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_synced: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    user: Mapped["User"] = relationship(back_populates="accounts")

    @property
    def is_waiting_room(self) -> bool:
        return self.type == ACCOUNT_TYPE_WAITING_ROOM


class Transaction(Base):
    """Append-only audit record of a completed transfer."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_sender", "sender_id", "created_at"),
        Index("idx_transactions_recipient", "recipient_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(40))
    status: Mapped[str] = mapped_column(String(20), default="completed")
    sender_id: Mapped[str] = mapped_column(String(128))
    sender_name: Mapped[Optional[str]] = mapped_column(String(255))
    sender_account_id: Mapped[Optional[str]] = mapped_column(String(64))
    sender_account_name: Mapped[Optional[str]] = mapped_column(String(255))
    recipient_id: Mapped[str] = mapped_column(String(128))
    recipient_name: Mapped[Optional[str]] = mapped_column(String(255))
    recipient_account_id: Mapped[Optional[str]] = mapped_column(String(64))
    recipient_account_name: Mapped[Optional[str]] = mapped_column(String(255))
    amount_sent: Mapped[Decimal] = mapped_column(BALANCE_TYPE)
    currency_sent: Mapped[Optional[str]] = mapped_column(String(8))
    amount_received: Mapped[Decimal] = mapped_column(BALANCE_TYPE)
    currency_received: Mapped[Optional[str]] = mapped_column(String(8))
    exchange_rate: Mapped[Optional[Decimal]] = mapped_column(RATE_TYPE)
    fee: Mapped[Optional[Decimal]] = mapped_column(RATE_TYPE)
    settlement_seconds: Mapped[Optional[float]] = mapped_column(Numeric(10, 3))
    pool_id: Mapped[Optional[str]] = mapped_column(String(64))
    protocol: Mapped[Optional[str]] = mapped_column(String(64))
    account_created: Mapped[bool] = mapped_column(Boolean, default=False)
    tx_hash: Mapped[str] = mapped_column(String(80), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow
    )
