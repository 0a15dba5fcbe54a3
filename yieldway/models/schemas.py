from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from yieldway.models.database import ACCOUNT_TYPE_SAVINGS


class UserSchema(BaseModel):
    """User profile served to the app. Never carries key material."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    phoneNumber: str = Field(validation_alias=AliasChoices("phoneNumber", "phone_number"))
    firstName: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("firstName", "first_name")
    )
    lastName: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lastName", "last_name")
    )
    country: Optional[str] = None
    currency: Optional[str] = None
    currencySymbol: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("currencySymbol", "currency_symbol")
    )
    walletAddress: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("walletAddress", "wallet_address")
    )
    createdAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )


class AccountSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    userId: str = Field(validation_alias=AliasChoices("userId", "user_id"))
    name: str
    accountNumber: str = Field(
        default="", validation_alias=AliasChoices("accountNumber", "account_number")
    )
    balance: Decimal
    initialDeposit: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices("initialDeposit", "initial_deposit")
    )
    type: str
    apy: Decimal = Decimal("0")
    poolId: Optional[str] = Field(default=None, validation_alias=AliasChoices("poolId", "pool_id"))
    protocol: Optional[str] = None
    chain: Optional[str] = None
    walletAddress: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("walletAddress", "wallet_address")
    )
    createdAt: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("createdAt", "created_at")
    )
    lastUpdated: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("lastUpdated", "last_updated")
    )
    lastSynced: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("lastSynced", "last_synced")
    )


class AccountListResponse(BaseModel):
    accounts: List[AccountSchema]
    total: int


class RegisterUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("id", "userId", "user_id"), min_length=1)
    phoneNumber: str = Field(
        validation_alias=AliasChoices("phoneNumber", "phone_number"), min_length=3
    )
    firstName: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("firstName", "first_name")
    )
    lastName: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lastName", "last_name")
    )
    country: Optional[str] = None


class OpenAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    poolId: str = Field(validation_alias=AliasChoices("poolId", "pool_id"))
    name: Optional[str] = None
    initialDeposit: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("initialDeposit", "initial_deposit"),
        ge=0,
    )
    type: str = ACCOUNT_TYPE_SAVINGS


class OpenAccountResponse(BaseModel):
    account: AccountSchema
    created: bool


class WalletResponse(BaseModel):
    userId: str
    walletAddress: str


class AmountRequest(BaseModel):
    """Deposit / withdrawal body. ``accountId`` selects the ledger account to update."""

    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal = Field(gt=0)
    accountId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("accountId", "account_id")
    )


class DepositResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    userId: str = Field(validation_alias=AliasChoices("userId", "user_id"))
    walletAddress: str = Field(validation_alias=AliasChoices("walletAddress", "wallet_address"))
    poolId: str = Field(validation_alias=AliasChoices("poolId", "pool_id"))
    amount: Decimal
    txHash: str = Field(validation_alias=AliasChoices("txHash", "tx_hash"))
    approveTxHash: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("approveTxHash", "approve_tx_hash")
    )
    receiptBalance: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("receiptBalance", "receipt_balance")
    )
    accountId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("accountId", "account_id")
    )
    accountBalance: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("accountBalance", "account_balance")
    )


class WithdrawResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    userId: str = Field(validation_alias=AliasChoices("userId", "user_id"))
    walletAddress: str = Field(validation_alias=AliasChoices("walletAddress", "wallet_address"))
    poolId: str = Field(validation_alias=AliasChoices("poolId", "pool_id"))
    amount: Decimal
    txHash: str = Field(validation_alias=AliasChoices("txHash", "tx_hash"))
    accountId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("accountId", "account_id")
    )
    accountBalance: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("accountBalance", "account_balance")
    )


class ReconcileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created: int
    updated: int


class YieldTransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    senderId: str = Field(validation_alias=AliasChoices("senderId", "sender_id"))
    recipientId: str = Field(validation_alias=AliasChoices("recipientId", "recipient_id"))
    senderAccountId: str = Field(
        validation_alias=AliasChoices("senderAccountId", "sender_account_id")
    )
    amount: Decimal = Field(gt=0)


class YieldTransferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    txHash: str = Field(validation_alias=AliasChoices("txHash", "tx_hash"))
    amountSent: Decimal = Field(validation_alias=AliasChoices("amountSent", "amount_sent"))
    recipientAccountId: str = Field(
        validation_alias=AliasChoices("recipientAccountId", "recipient_account_id")
    )
    accountCreated: bool = Field(
        validation_alias=AliasChoices("accountCreated", "account_created")
    )


class TransferPreviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipientHasMatchingAccount: bool = Field(
        validation_alias=AliasChoices(
            "recipientHasMatchingAccount", "recipient_has_matching_account"
        )
    )
    recipientAccountName: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("recipientAccountName", "recipient_account_name"),
    )
    willCreateAccount: bool = Field(
        validation_alias=AliasChoices("willCreateAccount", "will_create_account")
    )
    accountToCreate: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("accountToCreate", "account_to_create")
    )


class InternationalTransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    senderId: str = Field(validation_alias=AliasChoices("senderId", "sender_id"))
    recipientId: str = Field(validation_alias=AliasChoices("recipientId", "recipient_id"))
    amount: Decimal = Field(gt=0)


class InternationalTransferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    txHash: str = Field(validation_alias=AliasChoices("txHash", "tx_hash"))
    amountSent: Decimal = Field(validation_alias=AliasChoices("amountSent", "amount_sent"))
    amountReceived: Decimal = Field(
        validation_alias=AliasChoices("amountReceived", "amount_received")
    )
    exchangeRate: Decimal = Field(validation_alias=AliasChoices("exchangeRate", "exchange_rate"))
    currencySent: str = Field(validation_alias=AliasChoices("currencySent", "currency_sent"))
    currencyReceived: str = Field(
        validation_alias=AliasChoices("currencyReceived", "currency_received")
    )
    fee: Decimal


class ExchangeRateResponse(BaseModel):
    fromCurrency: str
    toCurrency: str
    rate: Decimal


class TransactionStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    txHash: str = Field(validation_alias=AliasChoices("txHash", "tx_hash"))
    status: str
    blockNumber: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("blockNumber", "block_number")
    )
    gasUsed: Optional[int] = Field(default=None, validation_alias=AliasChoices("gasUsed", "gas_used"))


class FundRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    userId: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    address: Optional[str] = None
    amount: Decimal = Field(gt=0)
    includeGas: bool = Field(default=False, validation_alias=AliasChoices("includeGas", "include_gas"))

    @field_validator("address")
    @classmethod
    def validate_address(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value.startswith("0x") or len(value) != 42:
            raise ValueError("Invalid address")
        return value


class FundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    txHash: str = Field(validation_alias=AliasChoices("txHash", "tx_hash"))
    address: str
    amount: Decimal
    gasTxHash: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("gasTxHash", "gas_tx_hash")
    )


class FundAndDepositRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    userId: str = Field(validation_alias=AliasChoices("userId", "user_id"))
    amount: Decimal = Field(gt=0)
    accountId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("accountId", "account_id")
    )
    includeGas: bool = Field(default=False, validation_alias=AliasChoices("includeGas", "include_gas"))


class WaitingRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    userId: str = Field(validation_alias=AliasChoices("userId", "user_id"))
    amount: Decimal = Field(gt=0)
