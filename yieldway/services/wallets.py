"""Custodial wallet provisioning: one keypair per user, created once, never rotated."""
from __future__ import annotations

import logging
from typing import Optional

from eth_account.signers.local import LocalAccount

from yieldway.errors import LedgerError, NotFoundError
from yieldway.onchain.crypto import SecretCipher, get_cipher
from yieldway.onchain.wallet import generate_keypair, load_signer
from yieldway.services.ledger import LedgerStore

logger = logging.getLogger(__name__)


class WalletProvisioner:
    def __init__(self, ledger: LedgerStore, cipher: Optional[SecretCipher] = None) -> None:
        self.ledger = ledger
        # Built eagerly so a missing WALLET_ENCRYPTION_KEY fails at startup.
        self.cipher = cipher or get_cipher()

    async def ensure_wallet(self, user_id: str) -> str:
        """Return the user's wallet address, creating and persisting one if needed.

        Safe under concurrency: the write is a compare-and-set on an empty
        ``wallet_address``, so a losing caller discards its generated key and
        returns the address that won.
        """
        user = await self.ledger.require_user(user_id)
        if user.wallet_address:
            return user.wallet_address

        keypair = generate_keypair()
        ciphertext = self.cipher.encrypt(keypair.private_key)
        claimed = await self.ledger.claim_wallet(user_id, keypair.address, ciphertext)
        if claimed:
            logger.info("Created custodial wallet %s for user %s", keypair.address, user_id)
            return keypair.address

        user = await self.ledger.require_user(user_id)
        logger.warning(
            "Concurrent wallet creation for user %s; discarded %s, keeping %s",
            user_id,
            keypair.address,
            user.wallet_address,
        )
        return user.wallet_address

    async def get_wallet_address(self, user_id: str) -> str:
        """Resolve an existing wallet without creating one."""
        user = await self.ledger.require_user(user_id)
        if not user.wallet_address:
            raise NotFoundError(
                f"User {user_id} has no custodial wallet", context={"user_id": user_id}
            )
        return user.wallet_address

    async def load_signer(self, user_id: str) -> LocalAccount:
        user = await self.ledger.require_user(user_id)
        if not user.wallet_address or not user.encrypted_private_key:
            raise NotFoundError(
                f"User {user_id} has no custodial wallet", context={"user_id": user_id}
            )
        signer = load_signer(self.cipher.decrypt(user.encrypted_private_key))
        if signer.address.lower() != user.wallet_address.lower():
            raise LedgerError(
                f"Stored key for user {user_id} does not match wallet address",
                context={"user_id": user_id},
            )
        return signer
