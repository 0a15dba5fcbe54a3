import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest
from web3.exceptions import TransactionNotFound

from yieldway.config import settings
from yieldway.errors import ChainError, ConfigurationError, TransactionUnconfirmedError
from yieldway.onchain.gateway import ChainGateway, from_base_units, to_base_units

TOKEN = "0x00000000000000000000000000000000000000aa"
POOL = "0x00000000000000000000000000000000000000bb"
RECIPIENT = "0x00000000000000000000000000000000000000cc"
SENDER = "0x000000000000000000000000000000000000dEaD"
SENT_HASH = "0x" + "ab" * 32
SIGNED_HASH = "0x" + "cd" * 32


class DummyCall:
    def __init__(self, eth, name, args):
        self.eth = eth
        self.name = name
        self.args = args

    def call(self):
        return self.eth.call_results[self.name]

    def estimate_gas(self, _params):
        if self.eth.estimate_error is not None:
            raise self.eth.estimate_error
        return 100_000

    def build_transaction(self, params):
        tx = dict(params, to=TOKEN, data=self.name)
        self.eth.built.append((self.name, self.args, tx))
        return tx


class DummyFunctions:
    def __init__(self, eth):
        self._eth = eth

    def __getattr__(self, name):
        return lambda *args: DummyCall(self._eth, name, args)


class DummyEth:
    def __init__(self):
        self.gas_price = 1_000_000_000
        self.receipt = {"status": 1, "blockNumber": 7, "gasUsed": 54321}
        self.pending = None
        self.call_results = {}
        self.estimate_error = None
        self.send_error = None
        self.built = []
        self.sent = []

    def get_transaction_count(self, _address, _block):
        return 5

    def contract(self, address=None, abi=None):
        return SimpleNamespace(address=address, functions=DummyFunctions(self))

    def send_raw_transaction(self, raw):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(raw)
        return bytes.fromhex("ab" * 32)

    def get_transaction_receipt(self, _tx_hash):
        if self.receipt is None:
            raise TransactionNotFound("not found")
        return self.receipt

    def get_transaction(self, _tx_hash):
        if self.pending is None:
            raise TransactionNotFound("not found")
        return self.pending

    def get_balance(self, _address):
        return 10**18


class DummySigner:
    address = SENDER

    def __init__(self):
        self.signed = []

    def sign_transaction(self, tx):
        self.signed.append(tx)
        return SimpleNamespace(raw_transaction=b"raw", hash=bytes.fromhex("cd" * 32))


def make_gateway(eth=None, **kwargs):
    eth = eth or DummyEth()
    web3 = type("DummyWeb3", (), {"eth": eth})()
    options = {
        "chain_id": 84532,
        "max_retries": 0,
        "backoff_seconds": 0,
        "confirmation_timeout": 0,
        "poll_seconds": 0,
    }
    options.update(kwargs)
    return ChainGateway(web3, **options), eth


def test_to_base_units_truncates_dust() -> None:
    assert to_base_units(Decimal("1.2345678"), 6) == 1_234_567
    assert to_base_units(Decimal("50"), 6) == 50_000_000


def test_from_base_units() -> None:
    assert from_base_units(1_234_567, 6) == Decimal("1.234567")


def test_missing_rpc_url_is_configuration_error(monkeypatch) -> None:
    monkeypatch.setattr(settings, "rpc_url", "")
    with pytest.raises(ConfigurationError):
        ChainGateway()


def test_token_balance_scales_by_decimals() -> None:
    gateway, eth = make_gateway()
    eth.call_results["balanceOf"] = 50_000_000
    balance = asyncio.run(gateway.token_balance(TOKEN, RECIPIENT))
    assert balance == Decimal("50")


def test_allowance_reads_owner_and_spender() -> None:
    gateway, eth = make_gateway()
    eth.call_results["allowance"] = 2_500_000
    assert asyncio.run(gateway.allowance(TOKEN, RECIPIENT, POOL)) == Decimal("2.5")


def test_invalid_address_rejected() -> None:
    gateway, _ = make_gateway()
    with pytest.raises(ValueError, match="owner"):
        asyncio.run(gateway.token_balance(TOKEN, "not-an-address"))


def test_read_retries_then_succeeds() -> None:
    gateway, eth = make_gateway(max_retries=2)
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("connection reset")
        return 42

    assert asyncio.run(gateway._retry_call(flaky)) == 42
    assert len(attempts) == 3


def test_read_gives_up_with_retryable_chain_error() -> None:
    gateway, _ = make_gateway(max_retries=1)

    def broken():
        raise ConnectionError("connection reset")

    with pytest.raises(ChainError) as excinfo:
        asyncio.run(gateway._retry_call(broken))
    assert excinfo.value.retryable is True


def test_read_backoff_yields_to_event_loop(monkeypatch) -> None:
    gateway, _ = make_gateway(max_retries=2, backoff_seconds=0.01)
    ticks = []
    failures = iter([ConnectionError("reset"), ConnectionError("reset")])

    def flaky():
        error = next(failures, None)
        if error is not None:
            raise error
        return 7

    def blocking_sleep(_seconds):
        raise AssertionError("backoff must not block the event loop")

    monkeypatch.setattr("yieldway.onchain.gateway.time.sleep", blocking_sleep)

    async def ticker():
        while True:
            ticks.append(1)
            await asyncio.sleep(0)

    async def run():
        task = asyncio.create_task(ticker())
        try:
            return await gateway._retry_call(flaky)
        finally:
            task.cancel()

    assert asyncio.run(run()) == 7
    assert ticks


def test_transfer_builds_eip1559_transaction() -> None:
    gateway, eth = make_gateway()
    signer = DummySigner()
    tx_hash = asyncio.run(gateway.transfer(signer, TOKEN, RECIPIENT, Decimal("1.5")))

    assert tx_hash == SENT_HASH
    name, args, tx = eth.built[0]
    assert name == "transfer"
    assert args[1] == 1_500_000
    assert tx["nonce"] == 5
    assert tx["gas"] == 130_000
    assert tx["maxFeePerGas"] == 2_000_000_000
    assert tx["chainId"] == 84532
    assert signer.signed == [tx]
    assert eth.sent == [b"raw"]


def test_supply_reverted_receipt_raises_chain_error() -> None:
    gateway, eth = make_gateway()
    eth.receipt = {"status": 0}
    with pytest.raises(ChainError) as excinfo:
        asyncio.run(gateway.supply(DummySigner(), POOL, TOKEN, Decimal("10"), RECIPIENT))
    assert excinfo.value.tx_hash == SENT_HASH
    assert excinfo.value.retryable is False


def test_unconfirmed_transaction_reports_hash_and_nonce() -> None:
    gateway, eth = make_gateway()
    eth.receipt = None
    with pytest.raises(TransactionUnconfirmedError) as excinfo:
        asyncio.run(gateway.approve(DummySigner(), TOKEN, POOL, Decimal("10")))
    assert excinfo.value.tx_hash == SENT_HASH
    assert excinfo.value.nonce == 5
    assert excinfo.value.context["tx_hash"] == SENT_HASH


def test_submission_failure_is_retryable_with_expected_hash() -> None:
    gateway, eth = make_gateway()
    eth.send_error = ConnectionError("connection dropped")
    with pytest.raises(ChainError) as excinfo:
        asyncio.run(gateway.transfer(DummySigner(), TOKEN, RECIPIENT, Decimal("1")))
    assert excinfo.value.retryable is True
    assert excinfo.value.tx_hash == SIGNED_HASH
    assert excinfo.value.context["nonce"] == 5


def test_estimate_revert_is_not_submitted() -> None:
    gateway, eth = make_gateway()
    eth.estimate_error = ValueError("execution reverted: ERC20: transfer amount exceeds balance")
    with pytest.raises(ChainError) as excinfo:
        asyncio.run(gateway.transfer(DummySigner(), TOKEN, RECIPIENT, Decimal("1")))
    assert excinfo.value.retryable is False
    assert "exceeds balance" in excinfo.value.revert_reason
    assert eth.sent == []


def test_estimate_failure_falls_back_to_default_gas() -> None:
    gateway, eth = make_gateway()
    eth.estimate_error = ConnectionError("rpc hiccup")
    asyncio.run(gateway.transfer(DummySigner(), TOKEN, RECIPIENT, Decimal("1")))
    assert eth.built[0][2]["gas"] == 300_000


def test_send_native_uses_plain_transfer_gas() -> None:
    gateway, eth = make_gateway()
    signer = DummySigner()
    asyncio.run(gateway.send_native(signer, RECIPIENT, 10**16))
    tx = signer.signed[0]
    assert tx["gas"] == 21_000
    assert tx["value"] == 10**16
    assert tx["to"].lower() == RECIPIENT


def test_transaction_status_confirmed() -> None:
    gateway, _ = make_gateway()
    status = asyncio.run(gateway.transaction_status(SENT_HASH))
    assert status.status == "confirmed"
    assert status.block_number == 7
    assert status.gas_used == 54321


def test_transaction_status_pending_and_unknown() -> None:
    gateway, eth = make_gateway()
    eth.receipt = None
    assert asyncio.run(gateway.transaction_status(SENT_HASH)).status == "unknown"
    eth.pending = {"hash": SENT_HASH}
    assert asyncio.run(gateway.transaction_status(SENT_HASH)).status == "pending"


def test_transaction_status_reverted() -> None:
    gateway, eth = make_gateway()
    eth.receipt = {"status": 0, "blockNumber": 9, "gasUsed": 1}
    assert asyncio.run(gateway.transaction_status(SENT_HASH)).to_dict()["status"] == "reverted"
