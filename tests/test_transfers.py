from decimal import Decimal
import re

import pytest
from sqlalchemy.exc import SQLAlchemyError

from yieldway.errors import InsufficientFundsError, InvalidRequestError, LedgerError, NotFoundError
from yieldway.execution.transfers import TransferOrchestrator, synthetic_reference


@pytest.fixture()
def transfers(ledger, accounts) -> TransferOrchestrator:
    return TransferOrchestrator(ledger, accounts)


async def _sender_with_balance(accounts, amount="100"):
    await accounts.register_user("alice", "+15550001", "Alice", "Smith", "US")
    await accounts.register_user("bob", "+15550002", "Bob", "Jones", "US")
    account, _ = await accounts.open_yield_account(
        "alice", None, "aave-usdc", initial_deposit=Decimal(amount)
    )
    return account


@pytest.mark.asyncio
async def test_transfer_creates_recipient_account(transfers, accounts, ledger):
    sender_account = await _sender_with_balance(accounts)

    result = await transfers.transfer("alice", "bob", sender_account.id, Decimal("40"))

    assert result.account_created is True
    recipient_account = await ledger.find_pool_account("bob", "aave-usdc")
    assert recipient_account.id == result.recipient_account_id
    assert recipient_account.balance == Decimal("40")
    assert recipient_account.initial_deposit == Decimal("40")
    assert (await ledger.get_account(sender_account.id)).balance == Decimal("60")
    assert (await ledger.get_user("bob")).wallet_address is not None


@pytest.mark.asyncio
async def test_transfer_conserves_total_balance(transfers, accounts, ledger):
    sender_account = await _sender_with_balance(accounts)
    await transfers.transfer("alice", "bob", sender_account.id, Decimal("40"))
    second = await transfers.transfer("alice", "bob", sender_account.id, Decimal("10.5"))

    assert second.account_created is False
    sender_balance = (await ledger.get_account(sender_account.id)).balance
    recipient_balance = (await ledger.get_account(second.recipient_account_id)).balance
    assert sender_balance + recipient_balance == Decimal("100")


@pytest.mark.asyncio
async def test_transfer_writes_audit_record(transfers, accounts, ledger):
    sender_account = await _sender_with_balance(accounts)
    result = await transfers.transfer("alice", "bob", sender_account.id, Decimal("5"))

    record = await ledger.get_transaction_by_ref(result.tx_hash)
    assert record.type == "yield_account_transfer"
    assert record.sender_name == "Alice Smith"
    assert record.recipient_name == "Bob Jones"
    assert record.pool_id == "aave-usdc"
    assert record.account_created is True
    assert record.amount_sent == record.amount_received == Decimal("5")


@pytest.mark.asyncio
async def test_transfer_insufficient_balance_changes_nothing(transfers, accounts, ledger):
    sender_account = await _sender_with_balance(accounts, amount="10")
    with pytest.raises(InsufficientFundsError) as excinfo:
        await transfers.transfer("alice", "bob", sender_account.id, Decimal("10.01"))
    assert excinfo.value.stage == "balance_check"
    assert (await ledger.get_account(sender_account.id)).balance == Decimal("10")
    assert await ledger.find_pool_account("bob", "aave-usdc") is None


@pytest.mark.asyncio
async def test_transfer_to_self_rejected(transfers, accounts):
    sender_account = await _sender_with_balance(accounts)
    with pytest.raises(InvalidRequestError):
        await transfers.transfer("alice", "alice", sender_account.id, Decimal("1"))


@pytest.mark.asyncio
async def test_transfer_from_waiting_room_rejected(transfers, accounts, ledger):
    await _sender_with_balance(accounts)
    room = await ledger.get_waiting_room("alice")
    with pytest.raises(InvalidRequestError):
        await transfers.transfer("alice", "bob", room.id, Decimal("1"))


@pytest.mark.asyncio
async def test_transfer_from_someone_elses_account_rejected(transfers, accounts):
    sender_account = await _sender_with_balance(accounts)
    with pytest.raises(NotFoundError):
        await transfers.transfer("bob", "alice", sender_account.id, Decimal("1"))


@pytest.mark.asyncio
async def test_transfer_to_unknown_recipient(transfers, accounts):
    sender_account = await _sender_with_balance(accounts)
    with pytest.raises(NotFoundError):
        await transfers.transfer("alice", "ghost", sender_account.id, Decimal("1"))


@pytest.mark.asyncio
async def test_transfer_database_failure_is_ledger_error(transfers, accounts, ledger, monkeypatch):
    sender_account = await _sender_with_balance(accounts)

    async def broken_move(**_):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(ledger, "move_between_accounts", broken_move)
    with pytest.raises(LedgerError) as excinfo:
        await transfers.transfer("alice", "bob", sender_account.id, Decimal("1"))
    assert excinfo.value.stage == "ledger"


@pytest.mark.asyncio
async def test_preview_before_and_after_first_transfer(transfers, accounts):
    sender_account = await _sender_with_balance(accounts)

    before = await transfers.preview(sender_account.id, "bob")
    assert before == {
        "recipient_has_matching_account": False,
        "recipient_account_name": None,
        "will_create_account": True,
        "account_to_create": "Aave USDC",
    }

    await transfers.transfer("alice", "bob", sender_account.id, Decimal("1"))
    after = await transfers.preview(sender_account.id, "bob")
    assert after["recipient_has_matching_account"] is True
    assert after["recipient_account_name"] == "Aave USDC"
    assert after["will_create_account"] is False


def test_synthetic_reference_format() -> None:
    reference = synthetic_reference()
    assert re.fullmatch(r"YT[0-9a-z]{18,}", reference)
    assert synthetic_reference() != reference


@pytest.mark.asyncio
async def test_transfer_truncates_sub_micro_amounts(transfers, accounts, ledger):
    sender_account = await _sender_with_balance(accounts, amount="0.8")

    result = await transfers.transfer("alice", "bob", sender_account.id, Decimal("0.80000099"))

    assert result.amount_sent == Decimal("0.8")
    assert (await ledger.get_account(sender_account.id)).balance == Decimal("0")
    assert (await ledger.get_account(result.recipient_account_id)).balance == Decimal("0.8")
