"""Test-network funding helpers. Disabled unless DEV_FUNDING_ENABLED is set."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from yieldway.config import settings
from yieldway.execution.deposit import YieldDepositOrchestrator, fund_and_deposit
from yieldway.execution.funding import FundingOrchestrator
from yieldway.models.schemas import (
    AccountSchema,
    FundAndDepositRequest,
    FundRequest,
    FundResponse,
    WaitingRoomRequest,
)
from yieldway.services.accounts import AccountService
from yieldway.services.dependencies import (
    get_account_service,
    get_depositor,
    get_funding,
    get_provisioner,
)
from yieldway.services.wallets import WalletProvisioner


def require_dev_funding() -> None:
    if not settings.dev_funding_enabled:
        raise HTTPException(status_code=404, detail="Not found")


router = APIRouter(prefix="/dev", dependencies=[Depends(require_dev_funding)])


@router.post("/fund", response_model=FundResponse)
async def fund_wallet(
    payload: FundRequest,
    funding: FundingOrchestrator = Depends(get_funding),
    provisioner: WalletProvisioner = Depends(get_provisioner),
) -> FundResponse:
    if payload.address:
        address = payload.address
    elif payload.userId:
        address = await provisioner.ensure_wallet(payload.userId)
    else:
        raise HTTPException(status_code=422, detail="userId or address is required")
    result = await funding.fund(address, payload.amount, include_gas=payload.includeGas)
    return FundResponse.model_validate(result)


@router.post("/fund-and-deposit")
async def fund_and_deposit_route(
    payload: FundAndDepositRequest,
    funding: FundingOrchestrator = Depends(get_funding),
    depositor: YieldDepositOrchestrator = Depends(get_depositor),
) -> dict:
    return await fund_and_deposit(
        funding,
        depositor,
        payload.userId,
        payload.amount,
        account_id=payload.accountId,
        include_gas=payload.includeGas,
    )


@router.post("/waiting-room", response_model=AccountSchema)
async def add_to_waiting_room(
    payload: WaitingRoomRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AccountSchema:
    account = await accounts.add_to_waiting_room(payload.userId, payload.amount)
    return AccountSchema.model_validate(account)
