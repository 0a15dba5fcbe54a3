"""Error taxonomy shared by the orchestrators and the HTTP layer.

Every error can carry the ``stage`` it failed in (``approve``, ``supply``,
``ledger`` ...) so callers can tell whether funds moved on-chain even when
the visible balance did not change.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional


class YieldWayError(Exception):
    """Base application error."""

    code = "yieldway_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.stage = stage
        self.context: dict[str, Any] = dict(context or {})
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "stage": self.stage,
            "context": {key: str(value) for key, value in self.context.items()},
        }


class ConfigurationError(YieldWayError):
    code = "configuration_error"
    http_status = 503


class NotFoundError(YieldWayError):
    code = "not_found"
    http_status = 404


class InsufficientFundsError(YieldWayError):
    code = "insufficient_funds"
    http_status = 409

    def __init__(self, available, required, **kwargs) -> None:
        self.available = available
        self.required = required
        super().__init__(f"Insufficient balance. Have {available}, need {required}", **kwargs)


class InvalidRequestError(YieldWayError):
    code = "invalid_request"
    http_status = 422


class UnsupportedCurrencyError(YieldWayError):
    code = "unsupported_currency"
    http_status = 422


class LedgerError(YieldWayError):
    code = "ledger_error"
    http_status = 500


class ChainError(YieldWayError):
    """RPC failure or on-chain revert.

    ``retryable`` is only set for submission failures where the transaction
    may or may not have reached the mempool; its status must be re-queried
    by ``tx_hash`` before anything is resubmitted.
    """

    code = "chain_error"
    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        revert_reason: Optional[str] = None,
        tx_hash: Optional[str] = None,
        **kwargs,
    ) -> None:
        self.retryable = retryable
        self.revert_reason = revert_reason
        self.tx_hash = tx_hash
        super().__init__(message, **kwargs)
        if tx_hash:
            self.context.setdefault("tx_hash", tx_hash)


class TransactionUnconfirmedError(YieldWayError):
    """Submitted, but no receipt before the confirmation timeout."""

    code = "transaction_unconfirmed"
    http_status = 202

    def __init__(self, tx_hash: str, timeout: float, nonce: Optional[int] = None, **kwargs) -> None:
        self.tx_hash = tx_hash
        self.nonce = nonce
        super().__init__(f"Transaction confirmation timeout after {timeout}s: {tx_hash}", **kwargs)
        self.context.setdefault("tx_hash", tx_hash)
        if nonce is not None:
            self.context.setdefault("nonce", nonce)


@contextmanager
def stage(name: str, **context: Any) -> Iterator[None]:
    """Tag any YieldWayError raised inside the block with the failing step."""
    try:
        yield
    except YieldWayError as exc:
        if exc.stage is None:
            exc.stage = name
        for key, value in context.items():
            if value is not None:
                exc.context.setdefault(key, value)
        raise
