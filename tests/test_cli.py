from decimal import Decimal
from types import SimpleNamespace

import pytest

from yieldway.cli import reconcile as reconcile_cli
from yieldway.cli.fund_wallet import parse_args, run
from yieldway.errors import ChainError, TransactionUnconfirmedError
from yieldway.execution.funding import FundingResult

ADDRESS = "0x00000000000000000000000000000000000000aa"


class DummyFunding:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def fund(self, address, amount, include_gas=False):
        self.calls.append((address, amount, include_gas))
        if self.error:
            raise self.error
        return FundingResult(tx_hash="0xfeed", address=address, amount=amount)


def test_parse_args_requires_target() -> None:
    with pytest.raises(SystemExit):
        parse_args(["--amount", "5"])


def test_parse_args_with_flags() -> None:
    args = parse_args(["--address", ADDRESS, "--amount", "5", "--gas"])
    assert args.address == ADDRESS
    assert args.gas is True


@pytest.mark.asyncio
async def test_run_success(monkeypatch, capsys):
    funding = DummyFunding()
    monkeypatch.setattr("yieldway.cli.fund_wallet.get_funding", lambda: funding)
    assert await run(parse_args(["--address", ADDRESS, "--amount", "12.5"])) == 0
    assert funding.calls == [(ADDRESS, Decimal("12.5"), False)]
    assert "0xfeed" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_by_user_provisions_wallet(monkeypatch):
    funding = DummyFunding()

    async def ensure_wallet(user_id):
        assert user_id == "alice"
        return ADDRESS

    monkeypatch.setattr("yieldway.cli.fund_wallet.get_funding", lambda: funding)
    monkeypatch.setattr(
        "yieldway.cli.fund_wallet.get_provisioner",
        lambda: SimpleNamespace(ensure_wallet=ensure_wallet),
    )
    assert await run(parse_args(["--user", "alice", "--amount", "5", "--gas"])) == 0
    assert funding.calls == [(ADDRESS, Decimal("5"), True)]


@pytest.mark.asyncio
async def test_run_invalid_amount():
    assert await run(parse_args(["--address", ADDRESS, "--amount", "lots"])) == 1


@pytest.mark.asyncio
async def test_run_unconfirmed_exit_code(monkeypatch, capsys):
    funding = DummyFunding(error=TransactionUnconfirmedError("0xabc", 120.0))
    monkeypatch.setattr("yieldway.cli.fund_wallet.get_funding", lambda: funding)
    assert await run(parse_args(["--address", ADDRESS, "--amount", "5"])) == 2
    assert "0xabc" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_run_chain_failure(monkeypatch):
    funding = DummyFunding(error=ChainError("reverted", stage="funding"))
    monkeypatch.setattr("yieldway.cli.fund_wallet.get_funding", lambda: funding)
    assert await run(parse_args(["--address", ADDRESS, "--amount", "5"])) == 1


def test_reconcile_cli_all_users(monkeypatch, capsys):
    class DummyReconciler:
        async def reconcile_all(self):
            return {"users": 3, "created": 1, "updated": 2, "failed": 0}

    monkeypatch.setattr(reconcile_cli, "get_reconciler", DummyReconciler)
    assert reconcile_cli.main([]) == 0
    assert "3 users" in capsys.readouterr().out


def test_reconcile_cli_single_user_failure(monkeypatch):
    class DummyReconciler:
        async def reconcile(self, user_id):
            raise ChainError("rpc down", stage="reconcile")

    monkeypatch.setattr(reconcile_cli, "get_reconciler", DummyReconciler)
    assert reconcile_cli.main(["--user", "alice"]) == 1
