"""Move stablecoin (and optionally gas) from the master wallet to custodial wallets."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Optional

from web3 import Web3

from yieldway.config import settings
from yieldway.errors import InvalidRequestError, stage
from yieldway.onchain.gateway import ChainGateway
from yieldway.onchain.wallet import MasterWallet
from yieldway.utils.amounts import positive_amount
from yieldway.utils.locks import wallet_lock

logger = logging.getLogger(__name__)


@dataclass
class FundingResult:
    tx_hash: str
    address: str
    amount: Decimal
    gas_tx_hash: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "address": self.address,
            "amount": str(self.amount),
            "gas_tx_hash": self.gas_tx_hash,
        }


class FundingOrchestrator:
    """Master wallet -> custodial wallet transfers.

    Touches no ledger state and never retries: a retry after an ambiguous
    confirmation failure could fund the wallet twice.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        master: Optional[MasterWallet] = None,
        token_address: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self.master = master or MasterWallet()
        self.token_address = token_address or settings.usdc_address

    async def fund_wallet(self, address: str, amount: Decimal) -> str:
        amount = positive_amount(amount)
        if not Web3.is_address(address):
            raise InvalidRequestError(f"Invalid wallet address: {address}")

        logger.info("Funding %s with %s USDC from %s", address, amount, self.master.address)
        async with wallet_lock(self.master.address, operation="fund_wallet"):
            with stage("funding", address=address, amount=amount):
                tx_hash = await self.gateway.transfer(
                    self.master.signer, self.token_address, address, amount
                )
        logger.info("Funded %s with %s USDC: %s", address, amount, tx_hash)
        return tx_hash

    async def fund_gas(self, address: str, value_wei: Optional[int] = None) -> str:
        value = settings.funding_gas_wei if value_wei is None else int(value_wei)
        if value <= 0:
            raise InvalidRequestError("Gas amount must be positive")
        async with wallet_lock(self.master.address, operation="fund_gas"):
            with stage("gas_funding", address=address):
                tx_hash = await self.gateway.send_native(self.master.signer, address, value)
        logger.info("Sent %s wei gas to %s: %s", value, address, tx_hash)
        return tx_hash

    async def fund(self, address: str, amount: Decimal, include_gas: bool = False) -> FundingResult:
        amount = positive_amount(amount)
        tx_hash = await self.fund_wallet(address, amount)
        gas_tx_hash = None
        if include_gas:
            with stage("gas_funding", address=address):
                current = await self.gateway.native_balance(address)
            if current >= settings.funding_gas_wei:
                logger.info("%s already holds %s wei gas; skipping top-up", address, current)
            else:
                gas_tx_hash = await self.fund_gas(address)
        return FundingResult(
            tx_hash=tx_hash, address=address, amount=amount, gas_tx_hash=gas_tx_hash
        )
