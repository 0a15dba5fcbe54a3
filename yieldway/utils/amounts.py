"""Token amount conversions shared by the ledger and the chain gateway.

Ledger balances carry the stablecoin's 6 decimals. Every amount entering
the system is truncated to that precision once, so the value credited
off-chain never exceeds what the gateway moves on-chain.
"""
from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

from yieldway.errors import InvalidRequestError

LEDGER_DECIMALS = 6


def _as_decimal(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() first so floats keep their printed value instead of binary noise
    return Decimal(str(amount))


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a decimal token amount to integer base units, truncating dust."""
    scaled = _as_decimal(amount).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(raw: int, decimals: int) -> Decimal:
    return Decimal(int(raw)) / (Decimal(10) ** decimals)


def quantize_amount(amount, decimals: int = LEDGER_DECIMALS) -> Decimal:
    """Truncate ``amount`` to ``decimals`` places."""
    return from_base_units(to_base_units(amount, decimals), decimals)


def positive_amount(amount, decimals: int = LEDGER_DECIMALS) -> Decimal:
    """Validate and truncate a caller-supplied amount.

    Raises:
        InvalidRequestError: the amount is not a number, or is zero once truncated
    """
    try:
        value = quantize_amount(amount, decimals)
    except (InvalidOperation, OverflowError, TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Invalid amount: {amount!r}") from exc
    if value <= 0:
        raise InvalidRequestError(
            f"Amount must be positive with at most {decimals} decimals",
            context={"amount": amount},
        )
    return value
