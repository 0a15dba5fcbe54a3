"""Currency conversion and the (mocked) external settlement network."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
import logging
import secrets
from typing import Optional, Protocol

from yieldway.config import settings
from yieldway.errors import UnsupportedCurrencyError
from yieldway.utils.amounts import quantize_amount

logger = logging.getLogger(__name__)

# 1 unit of the outer currency in units of the inner currency.
_RAW_RATES = {
    "USD": {"GBP": "0.79", "EUR": "0.92", "CAD": "1.36", "MXN": "17.5", "RUB": "92", "CNY": "7.2", "BRL": "5.0", "AED": "3.67"},
    "GBP": {"USD": "1.27", "EUR": "1.17", "CAD": "1.72", "MXN": "22.15", "RUB": "116", "CNY": "9.11", "BRL": "6.33", "AED": "4.65"},
    "EUR": {"USD": "1.09", "GBP": "0.86", "CAD": "1.48", "MXN": "19.05", "RUB": "100", "CNY": "7.85", "BRL": "5.45", "AED": "4.00"},
    "CAD": {"USD": "0.74", "GBP": "0.58", "EUR": "0.68", "MXN": "12.87", "RUB": "67.6", "CNY": "5.29", "BRL": "3.68", "AED": "2.70"},
    "MXN": {"USD": "0.057", "GBP": "0.045", "EUR": "0.052", "CAD": "0.078", "RUB": "5.26", "CNY": "0.41", "BRL": "0.29", "AED": "0.21"},
    "RUB": {"USD": "0.011", "GBP": "0.0086", "EUR": "0.01", "CAD": "0.015", "MXN": "0.19", "CNY": "0.078", "BRL": "0.054", "AED": "0.040"},
    "CNY": {"USD": "0.139", "GBP": "0.110", "EUR": "0.127", "CAD": "0.189", "MXN": "2.43", "RUB": "12.8", "BRL": "0.69", "AED": "0.51"},
    "BRL": {"USD": "0.20", "GBP": "0.158", "EUR": "0.183", "CAD": "0.272", "MXN": "3.5", "RUB": "18.4", "CNY": "1.44", "AED": "0.73"},
    "AED": {"USD": "0.272", "GBP": "0.215", "EUR": "0.25", "CAD": "0.370", "MXN": "4.77", "RUB": "25", "CNY": "1.96", "BRL": "1.37"},
}
RATE_TABLE: dict[str, dict[str, Decimal]] = {
    source: {target: Decimal(rate) for target, rate in targets.items()}
    for source, targets in _RAW_RATES.items()
}


def get_exchange_rate(from_currency: str, to_currency: str) -> Decimal:
    """Rate for converting ``from_currency`` into ``to_currency``.

    Raises:
        UnsupportedCurrencyError: no rate is known for the pair
    """
    source = (from_currency or "").upper()
    target = (to_currency or "").upper()
    if not source or not target:
        raise UnsupportedCurrencyError(
            "Currency is required", context={"from": from_currency, "to": to_currency}
        )
    if source == target:
        return Decimal("1")
    rate = RATE_TABLE.get(source, {}).get(target)
    if rate is None:
        raise UnsupportedCurrencyError(
            f"No exchange rate for {source} -> {target}",
            context={"from": source, "to": target},
        )
    return rate


def convert(amount: Decimal, rate: Decimal) -> Decimal:
    return quantize_amount(Decimal(amount) * rate)


@dataclass
class SettlementResult:
    tx_hash: str
    amount_sent: Decimal
    amount_received: Decimal
    exchange_rate: Decimal
    fee: Decimal
    settlement_seconds: float


class SettlementProvider(Protocol):
    async def settle(
        self, from_currency: str, to_currency: str, amount: Decimal, recipient_ref: str
    ) -> SettlementResult: ...


class MockSettlementNetwork:
    """Deterministic rate-table conversion plus an artificial network delay."""

    SETTLEMENT_SECONDS = 3.2

    def __init__(self, delay_seconds: Optional[float] = None, fee: Optional[Decimal] = None) -> None:
        self.delay_seconds = settings.settlement_delay_seconds if delay_seconds is None else delay_seconds
        self.fee = Decimal(settings.settlement_fee) if fee is None else Decimal(fee)

    async def settle(
        self, from_currency: str, to_currency: str, amount: Decimal, recipient_ref: str
    ) -> SettlementResult:
        rate = get_exchange_rate(from_currency, to_currency)
        received = convert(amount, rate)
        logger.info(
            "Settling %s %s -> %s %s (rate %s) for %s",
            amount,
            from_currency,
            received,
            to_currency,
            rate,
            recipient_ref,
        )
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return SettlementResult(
            tx_hash=secrets.token_hex(32).upper(),
            amount_sent=Decimal(amount),
            amount_received=received,
            exchange_rate=rate,
            fee=self.fee,
            settlement_seconds=self.SETTLEMENT_SECONDS,
        )
