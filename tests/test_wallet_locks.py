import asyncio

import pytest

from yieldway.utils.locks import LockTimeoutError, get_wallet_lock, wallet_lock

ADDRESS = "0x00000000000000000000000000000000000000aa"


def test_lock_is_shared_case_insensitively() -> None:
    assert get_wallet_lock(ADDRESS) is get_wallet_lock(ADDRESS.upper().replace("0X", "0x"))


def test_namespaces_are_independent() -> None:
    assert get_wallet_lock(ADDRESS, "nonce") is not get_wallet_lock(ADDRESS, "operation")


@pytest.mark.asyncio
async def test_wallet_lock_serialises_operations() -> None:
    events = []

    async def operation(name):
        async with wallet_lock(ADDRESS, operation=name):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    await asyncio.gather(operation("a"), operation("b"))
    assert events == ["a:start", "a:end", "b:start", "b:end"]


@pytest.mark.asyncio
async def test_wallet_lock_times_out_when_busy() -> None:
    async with wallet_lock(ADDRESS, operation="deposit"):
        with pytest.raises(LockTimeoutError) as excinfo:
            async with wallet_lock(ADDRESS, operation="withdraw", timeout=0.01):
                pass
    assert excinfo.value.http_status == 409
    assert excinfo.value.context["operation"] == "withdraw"


@pytest.mark.asyncio
async def test_nonce_lock_does_not_block_operation_lock() -> None:
    async with wallet_lock(ADDRESS, operation="deposit"):
        async with wallet_lock(ADDRESS, operation="approve", timeout=0.01, namespace="nonce"):
            assert get_wallet_lock(ADDRESS, "nonce").locked()
