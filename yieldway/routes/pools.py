from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from yieldway.execution.settlement import get_exchange_rate
from yieldway.models.schemas import ExchangeRateResponse
from yieldway.services.pools import YIELD_POOLS, get_pool_by_id, get_pools_by_risk

router = APIRouter()

RISK_LEVELS = {"low", "medium", "high"}


@router.get("/pools")
async def list_pools(risk: Optional[str] = Query(default=None)) -> dict:
    if risk is not None:
        if risk not in RISK_LEVELS:
            raise HTTPException(status_code=422, detail="risk must be low, medium or high")
        pools = get_pools_by_risk(risk)
    else:
        pools = list(YIELD_POOLS)
    return {"pools": [pool.to_dict() for pool in pools], "total": len(pools)}


@router.get("/pools/{pool_id}")
async def get_pool(pool_id: str) -> dict:
    pool = get_pool_by_id(pool_id)
    if pool is None:
        raise HTTPException(status_code=404, detail="Pool not found")
    return pool.to_dict()


@router.get("/exchange-rate", response_model=ExchangeRateResponse)
async def exchange_rate(
    from_currency: str = Query(alias="from"),
    to_currency: str = Query(alias="to"),
) -> ExchangeRateResponse:
    rate = get_exchange_rate(from_currency, to_currency)
    return ExchangeRateResponse(
        fromCurrency=from_currency.upper(), toCurrency=to_currency.upper(), rate=rate
    )
