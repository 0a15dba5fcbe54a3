from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from yieldway.models.schemas import (
    AccountListResponse,
    AccountSchema,
    OpenAccountRequest,
    OpenAccountResponse,
    RegisterUserRequest,
    UserSchema,
    WalletResponse,
)
from yieldway.services.accounts import AccountService
from yieldway.services.dependencies import get_account_service, get_ledger, get_provisioner
from yieldway.services.ledger import LedgerStore
from yieldway.services.wallets import WalletProvisioner

router = APIRouter()


@router.post("/users", response_model=UserSchema)
async def register_user(
    payload: RegisterUserRequest,
    accounts: AccountService = Depends(get_account_service),
) -> UserSchema:
    user = await accounts.register_user(
        payload.id,
        payload.phoneNumber,
        first_name=payload.firstName,
        last_name=payload.lastName,
        country=payload.country,
    )
    return UserSchema.model_validate(user)


@router.get("/users/lookup", response_model=UserSchema)
async def find_user_by_phone(
    phone: str = Query(min_length=3),
    ledger: LedgerStore = Depends(get_ledger),
) -> UserSchema:
    user = await ledger.get_user_by_phone(phone)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserSchema.model_validate(user)


@router.get("/users/{user_id}", response_model=UserSchema)
async def get_user(user_id: str, ledger: LedgerStore = Depends(get_ledger)) -> UserSchema:
    return UserSchema.model_validate(await ledger.require_user(user_id))


@router.get("/users/{user_id}/accounts", response_model=AccountListResponse)
async def list_accounts(
    user_id: str, ledger: LedgerStore = Depends(get_ledger)
) -> AccountListResponse:
    await ledger.require_user(user_id)
    accounts = await ledger.list_accounts(user_id)
    return AccountListResponse(
        accounts=[AccountSchema.model_validate(account) for account in accounts],
        total=len(accounts),
    )


@router.post("/users/{user_id}/accounts", response_model=OpenAccountResponse)
async def open_account(
    user_id: str,
    payload: OpenAccountRequest,
    accounts: AccountService = Depends(get_account_service),
) -> OpenAccountResponse:
    account, created = await accounts.open_yield_account(
        user_id,
        payload.name,
        payload.poolId,
        initial_deposit=payload.initialDeposit,
        account_type=payload.type,
    )
    return OpenAccountResponse(account=AccountSchema.model_validate(account), created=created)


@router.post("/users/{user_id}/wallet", response_model=WalletResponse)
async def ensure_wallet(
    user_id: str, provisioner: WalletProvisioner = Depends(get_provisioner)
) -> WalletResponse:
    address = await provisioner.ensure_wallet(user_id)
    return WalletResponse(userId=user_id, walletAddress=address)


@router.get("/users/{user_id}/transactions")
async def list_transactions(
    user_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    ledger: LedgerStore = Depends(get_ledger),
) -> dict:
    await ledger.require_user(user_id)
    rows = await ledger.list_transactions(user_id, limit=limit)
    return {
        "transactions": [
            {
                "id": row.id,
                "type": row.type,
                "status": row.status,
                "senderId": row.sender_id,
                "senderName": row.sender_name,
                "recipientId": row.recipient_id,
                "recipientName": row.recipient_name,
                "amountSent": str(row.amount_sent),
                "currencySent": row.currency_sent,
                "amountReceived": str(row.amount_received),
                "currencyReceived": row.currency_received,
                "exchangeRate": str(row.exchange_rate) if row.exchange_rate is not None else None,
                "poolId": row.pool_id,
                "txHash": row.tx_hash,
                "createdAt": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ],
        "total": len(rows),
    }
