from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from yieldway.execution.international import InternationalTransferOrchestrator
from yieldway.execution.transfers import TransferOrchestrator
from yieldway.models.schemas import (
    InternationalTransferRequest,
    InternationalTransferResponse,
    TransferPreviewResponse,
    YieldTransferRequest,
    YieldTransferResponse,
)
from yieldway.services.dependencies import get_international, get_transfer_orchestrator

router = APIRouter(prefix="/transfers")


@router.post("/yield", response_model=YieldTransferResponse)
async def transfer_between_yield_accounts(
    payload: YieldTransferRequest,
    transfers: TransferOrchestrator = Depends(get_transfer_orchestrator),
) -> YieldTransferResponse:
    result = await transfers.transfer(
        payload.senderId, payload.recipientId, payload.senderAccountId, payload.amount
    )
    return YieldTransferResponse.model_validate(result)


@router.get("/yield/preview", response_model=TransferPreviewResponse)
async def preview_yield_transfer(
    sender_account_id: str = Query(alias="senderAccountId"),
    recipient_id: str = Query(alias="recipientId"),
    transfers: TransferOrchestrator = Depends(get_transfer_orchestrator),
) -> TransferPreviewResponse:
    preview = await transfers.preview(sender_account_id, recipient_id)
    return TransferPreviewResponse.model_validate(preview)


@router.post("/international", response_model=InternationalTransferResponse)
async def send_international(
    payload: InternationalTransferRequest,
    international: InternationalTransferOrchestrator = Depends(get_international),
) -> InternationalTransferResponse:
    result = await international.send_international(
        payload.senderId, payload.recipientId, payload.amount
    )
    return InternationalTransferResponse.model_validate(result)
