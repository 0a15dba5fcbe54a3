"""Per-wallet concurrency control.

Two namespaces are used:

- ``nonce``: held by the chain gateway around nonce fetch, sign and send so
  concurrent sends from one address never reuse a nonce.
- ``operation``: held by orchestrators around a whole multi-step flow
  (approve then supply, withdraw, funding) for one wallet.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator, Optional

from yieldway.errors import YieldWayError

logger = logging.getLogger(__name__)

# (namespace, lowercased address) -> lock
_wallet_locks: dict[tuple[str, str], asyncio.Lock] = {}


class LockTimeoutError(YieldWayError):
    """Raised when a wallet lock cannot be acquired within the timeout period."""

    code = "wallet_busy"
    http_status = 409


def get_wallet_lock(address: str, namespace: str = "operation") -> asyncio.Lock:
    key = (namespace, address.lower())
    lock = _wallet_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _wallet_locks[key] = lock
    return lock


@asynccontextmanager
async def wallet_lock(
    address: str,
    operation: str = "wallet_operation",
    timeout: Optional[float] = 60.0,
    namespace: str = "operation",
) -> AsyncIterator[None]:
    """Hold the lock for ``address`` in ``namespace`` for the duration of the block.

    Example:
        async with wallet_lock(address, operation="deposit"):
            await gateway.approve(...)
            await gateway.supply(...)
    """
    lock = get_wallet_lock(address, namespace)
    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError as exc:
        logger.warning("Lock timeout for wallet %s after %ss: %s", address, timeout, operation)
        raise LockTimeoutError(
            f"Wallet {address} is busy with another operation",
            context={"address": address, "operation": operation},
        ) from exc

    logger.debug("Lock acquired for wallet %s: %s", address, operation)
    try:
        yield
    finally:
        lock.release()
        logger.debug("Lock released for wallet %s: %s", address, operation)


def clear_wallet_locks() -> None:
    """Drop all registered locks (tests run each case on a fresh event loop)."""
    _wallet_locks.clear()
