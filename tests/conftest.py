from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from yieldway.config import settings
from yieldway.onchain.crypto import FernetSecretCipher
from yieldway.onchain.gateway import TransactionStatus
from yieldway.models.database import Base
from yieldway.services.accounts import AccountService
from yieldway.services.ledger import LedgerStore
from yieldway.services.pools import DEFAULT_POOL_ID, get_pool_by_id
from yieldway.services.wallets import WalletProvisioner
from yieldway.utils.locks import clear_wallet_locks


class FakeChainGateway:
    """In-memory ChainGateway: token balances, allowances and a call log.

    ``failures`` maps a write label (``approve``, ``supply`` ...) to the
    exception that write should raise; ``read_failures`` maps a lowercased
    token or owner address to the exception balance reads should raise.
    """

    def __init__(self, receipt_token: Optional[str] = None):
        self.receipt_token = receipt_token or get_pool_by_id(DEFAULT_POOL_ID).receipt_token
        self.balances: dict[tuple[str, str], Decimal] = {}
        self.allowances: dict[tuple[str, str, str], Decimal] = {}
        self.native: dict[str, int] = {}
        self.calls: list[tuple[str, dict]] = []
        self.failures: dict[str, Exception] = {}
        self.read_failures: dict[str, Exception] = {}
        self._counter = 0

    def set_balance(self, token: str, owner: str, amount) -> None:
        self.balances[(token.lower(), owner.lower())] = Decimal(amount)

    def balance_of(self, token: str, owner: str) -> Decimal:
        return self.balances.get((token.lower(), owner.lower()), Decimal("0"))

    @property
    def labels(self) -> list[str]:
        return [label for label, _ in self.calls]

    def _move(self, token: str, owner: str, delta: Decimal) -> None:
        self.set_balance(token, owner, self.balance_of(token, owner) + Decimal(delta))

    def _record(self, label: str, **details) -> str:
        self.calls.append((label, details))
        error = self.failures.get(label)
        if error is not None:
            raise error
        self._counter += 1
        return "0x" + f"{self._counter:064x}"

    async def token_balance(self, token, owner, decimals=None) -> Decimal:
        for key in (token.lower(), owner.lower()):
            if key in self.read_failures:
                raise self.read_failures[key]
        return self.balance_of(token, owner)

    async def allowance(self, token, owner, spender, decimals=None) -> Decimal:
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), Decimal("0"))

    async def native_balance(self, address) -> int:
        return self.native.get(address.lower(), 0)

    async def transaction_status(self, tx_hash) -> TransactionStatus:
        return TransactionStatus(tx_hash=tx_hash, status="confirmed", block_number=1, gas_used=21000)

    async def approve(self, signer, token, spender, amount, decimals=None) -> str:
        tx_hash = self._record("approve", token=token, spender=spender, amount=amount)
        self.allowances[(token.lower(), signer.address.lower(), spender.lower())] = Decimal(amount)
        return tx_hash

    async def supply(self, signer, pool, asset, amount, on_behalf_of, decimals=None) -> str:
        tx_hash = self._record("supply", pool=pool, asset=asset, amount=amount)
        key = (asset.lower(), signer.address.lower(), pool.lower())
        self.allowances[key] = self.allowances.get(key, Decimal("0")) - Decimal(amount)
        self._move(asset, signer.address, -Decimal(amount))
        self._move(self.receipt_token, on_behalf_of, Decimal(amount))
        return tx_hash

    async def withdraw(self, signer, pool, asset, amount, to, decimals=None) -> str:
        tx_hash = self._record("withdraw", pool=pool, asset=asset, amount=amount)
        self._move(self.receipt_token, signer.address, -Decimal(amount))
        self._move(asset, to, Decimal(amount))
        return tx_hash

    async def transfer(self, signer, token, to, amount, decimals=None) -> str:
        tx_hash = self._record("transfer", token=token, to=to, amount=amount)
        self._move(token, signer.address, -Decimal(amount))
        self._move(token, to, Decimal(amount))
        return tx_hash

    async def send_native(self, signer, to, value_wei) -> str:
        tx_hash = self._record("send_native", to=to, value=value_wei)
        self.native[to.lower()] = self.native.get(to.lower(), 0) + int(value_wei)
        return tx_hash


@pytest.fixture(autouse=True)
def fresh_wallet_locks():
    clear_wallet_locks()
    yield
    clear_wallet_locks()


@pytest_asyncio.fixture()
async def session_factory(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture()
def ledger(session_factory) -> LedgerStore:
    return LedgerStore(session_factory)


@pytest.fixture()
def cipher() -> FernetSecretCipher:
    return FernetSecretCipher(Fernet.generate_key().decode())


@pytest.fixture()
def provisioner(ledger, cipher) -> WalletProvisioner:
    return WalletProvisioner(ledger, cipher)


@pytest.fixture()
def accounts(ledger, provisioner) -> AccountService:
    return AccountService(ledger, provisioner)


@pytest.fixture()
def chain() -> FakeChainGateway:
    return FakeChainGateway()


@pytest.fixture()
def usdc() -> str:
    return settings.usdc_address


@pytest.fixture()
def receipt_token(chain) -> str:
    return chain.receipt_token
