import asyncio

import pytest
from cryptography.fernet import Fernet

from yieldway.errors import ConfigurationError, LedgerError, NotFoundError
from yieldway.onchain.crypto import FernetSecretCipher
from yieldway.onchain.wallet import generate_keypair
from yieldway.services.wallets import WalletProvisioner


@pytest.mark.asyncio
async def test_ensure_wallet_is_idempotent(ledger, provisioner):
    await ledger.create_user("alice", phone_number="+15550001")
    first = await provisioner.ensure_wallet("alice")
    second = await provisioner.ensure_wallet("alice")
    assert first == second
    assert first.startswith("0x") and len(first) == 42


@pytest.mark.asyncio
async def test_private_key_is_stored_encrypted(ledger, provisioner):
    await ledger.create_user("alice", phone_number="+15550001")
    address = await provisioner.ensure_wallet("alice")
    user = await ledger.get_user("alice")
    assert user.encrypted_private_key
    assert not user.encrypted_private_key.startswith("0x")
    signer = await provisioner.load_signer("alice")
    assert signer.address == address


@pytest.mark.asyncio
async def test_concurrent_ensure_wallet_converges(ledger, provisioner):
    await ledger.create_user("alice", phone_number="+15550001")
    addresses = await asyncio.gather(*(provisioner.ensure_wallet("alice") for _ in range(5)))
    user = await ledger.get_user("alice")
    assert set(addresses) == {user.wallet_address}
    signer = await provisioner.load_signer("alice")
    assert signer.address == user.wallet_address


@pytest.mark.asyncio
async def test_ensure_wallet_unknown_user(provisioner):
    with pytest.raises(NotFoundError):
        await provisioner.ensure_wallet("ghost")


@pytest.mark.asyncio
async def test_get_wallet_address_does_not_create(ledger, provisioner):
    await ledger.create_user("alice", phone_number="+15550001")
    with pytest.raises(NotFoundError):
        await provisioner.get_wallet_address("alice")
    assert (await ledger.get_user("alice")).wallet_address is None


@pytest.mark.asyncio
async def test_load_signer_with_rotated_key_fails(ledger, provisioner):
    await ledger.create_user("alice", phone_number="+15550001")
    await provisioner.ensure_wallet("alice")
    rotated = WalletProvisioner(ledger, FernetSecretCipher(Fernet.generate_key().decode()))
    with pytest.raises(ConfigurationError):
        await rotated.load_signer("alice")


@pytest.mark.asyncio
async def test_load_signer_detects_mismatched_key(ledger, provisioner, cipher):
    await ledger.create_user("alice", phone_number="+15550001")
    other = generate_keypair()
    await ledger.claim_wallet("alice", generate_keypair().address, cipher.encrypt(other.private_key))
    with pytest.raises(LedgerError):
        await provisioner.load_signer("alice")


def test_provisioner_requires_encryption_key(monkeypatch):
    from yieldway.config import settings

    monkeypatch.setattr(settings, "wallet_encryption_key", "")
    with pytest.raises(ConfigurationError):
        WalletProvisioner(ledger=None)
