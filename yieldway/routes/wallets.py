from __future__ import annotations

import re

from fastapi import APIRouter, Depends, HTTPException

from yieldway.execution.deposit import YieldDepositOrchestrator
from yieldway.execution.reconciler import PositionReconciler
from yieldway.models.schemas import (
    AmountRequest,
    DepositResponse,
    ReconcileResponse,
    TransactionStatusResponse,
    WithdrawResponse,
)
from yieldway.onchain.gateway import ChainGateway
from yieldway.services.dependencies import get_depositor, get_gateway, get_reconciler

router = APIRouter()

TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")


@router.post("/users/{user_id}/deposits", response_model=DepositResponse)
async def deposit_to_pool(
    user_id: str,
    payload: AmountRequest,
    depositor: YieldDepositOrchestrator = Depends(get_depositor),
) -> DepositResponse:
    result = await depositor.deposit_to_pool(user_id, payload.amount, account_id=payload.accountId)
    return DepositResponse.model_validate(result)


@router.post("/users/{user_id}/withdrawals", response_model=WithdrawResponse)
async def withdraw_from_pool(
    user_id: str,
    payload: AmountRequest,
    depositor: YieldDepositOrchestrator = Depends(get_depositor),
) -> WithdrawResponse:
    result = await depositor.withdraw_from_pool(
        user_id, payload.amount, account_id=payload.accountId
    )
    return WithdrawResponse.model_validate(result)


@router.post("/users/{user_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_positions(
    user_id: str, reconciler: PositionReconciler = Depends(get_reconciler)
) -> ReconcileResponse:
    result = await reconciler.reconcile(user_id)
    return ReconcileResponse.model_validate(result)


@router.get("/transactions/{tx_hash}/status", response_model=TransactionStatusResponse)
async def transaction_status(
    tx_hash: str, gateway: ChainGateway = Depends(get_gateway)
) -> TransactionStatusResponse:
    if not TX_HASH_RE.match(tx_hash):
        raise HTTPException(status_code=422, detail="Invalid transaction hash")
    status = await gateway.transaction_status(tx_hash)
    return TransactionStatusResponse.model_validate(status)
