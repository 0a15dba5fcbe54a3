"""Key generation and loading for custodial and master wallets."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from yieldway.config import settings
from yieldway.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedKeypair:
    address: str
    private_key: str

    def __repr__(self) -> str:
        return f"GeneratedKeypair(address={self.address})"


def generate_keypair() -> GeneratedKeypair:
    account = Account.create()
    key = account.key.hex()
    if not key.startswith("0x"):
        key = f"0x{key}"
    return GeneratedKeypair(address=account.address, private_key=key)


def normalize_private_key(key: str) -> str:
    raw = key[2:] if key.startswith("0x") else key
    if len(raw) != 64 or any(c not in "0123456789abcdefABCDEF" for c in raw):
        raise ValueError("Invalid private key")
    return f"0x{raw}"


def load_signer(private_key: str) -> LocalAccount:
    key = normalize_private_key(private_key)
    try:
        return Account.from_key(key)
    except Exception as exc:
        raise ValueError("Invalid private key") from exc


class MasterWallet:
    """The single funding wallet that tops up custodial wallets."""

    def __init__(self, private_key: Optional[str] = None) -> None:
        key = private_key or settings.master_wallet_private_key
        if not key:
            raise ConfigurationError("Missing MASTER_WALLET_PRIVATE_KEY")
        try:
            self._account: LocalAccount = load_signer(key)
        except ValueError as exc:
            raise ConfigurationError("Invalid MASTER_WALLET_PRIVATE_KEY") from exc

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def signer(self) -> LocalAccount:
        return self._account

    def __repr__(self) -> str:
        return f"MasterWallet(address={self.address})"
