"""Thin chain gateway: ERC-20 reads/writes, lending pool supply/withdraw.

Every write goes through ``_send``, which serialises nonce allocation per
sending address, submits, then blocks until a receipt arrives or the
confirmation timeout elapses.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
import logging
import time
from typing import Any, Callable, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from yieldway.config import settings
from yieldway.errors import ChainError, ConfigurationError, TransactionUnconfirmedError
from yieldway.utils.amounts import from_base_units, to_base_units
from yieldway.utils.locks import wallet_lock

logger = logging.getLogger(__name__)

DEFAULT_GAS_LIMIT = 300_000
NATIVE_TRANSFER_GAS = 21_000


def _hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    hex_value = value.hex()
    return hex_value if hex_value.startswith("0x") else f"0x{hex_value}"


@dataclass
class TransactionStatus:
    tx_hash: str
    status: str  # confirmed | reverted | pending | unknown
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
        }


class ChainGateway:
    def __init__(
        self,
        web3: Optional[Web3] = None,
        *,
        chain_id: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        confirmation_timeout: Optional[float] = None,
        poll_seconds: Optional[float] = None,
    ) -> None:
        if web3 is None:
            if not settings.rpc_url:
                raise ConfigurationError("BASE_SEPOLIA_RPC_URL is not set")
            web3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        self.web3 = web3
        self.chain_id = chain_id or settings.chain_id
        self.max_retries = settings.rpc_max_retries if max_retries is None else max_retries
        self.backoff_seconds = (
            settings.rpc_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self.confirmation_timeout = (
            settings.confirmation_timeout_seconds
            if confirmation_timeout is None
            else confirmation_timeout
        )
        self.poll_seconds = (
            settings.confirmation_poll_seconds if poll_seconds is None else poll_seconds
        )
        self.erc20_abi = self._erc20_abi()
        self.lending_pool_abi = self._lending_pool_abi()

    # ------------------------------------------------------------------ reads

    async def token_balance(self, token: str, owner: str, decimals: Optional[int] = None) -> Decimal:
        contract = self._erc20(token)
        owner_cs = self._checksum(owner, "owner")
        raw = await self._retry_call(lambda: contract.functions.balanceOf(owner_cs).call())
        return from_base_units(raw, self._decimals(decimals))

    async def allowance(
        self, token: str, owner: str, spender: str, decimals: Optional[int] = None
    ) -> Decimal:
        contract = self._erc20(token)
        owner_cs = self._checksum(owner, "owner")
        spender_cs = self._checksum(spender, "spender")
        raw = await self._retry_call(lambda: contract.functions.allowance(owner_cs, spender_cs).call())
        return from_base_units(raw, self._decimals(decimals))

    async def native_balance(self, address: str) -> int:
        address_cs = self._checksum(address, "address")
        return int(await self._retry_call(lambda: self.web3.eth.get_balance(address_cs)))

    async def transaction_status(self, tx_hash: str) -> TransactionStatus:
        """Look up a previously submitted transaction without resubmitting it."""
        try:
            receipt = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            receipt = None
        except Exception as exc:
            raise ChainError(self._format_error(exc), retryable=True, tx_hash=tx_hash) from exc
        if receipt:
            return TransactionStatus(
                tx_hash=tx_hash,
                status="confirmed" if receipt["status"] == 1 else "reverted",
                block_number=receipt.get("blockNumber"),
                gas_used=receipt.get("gasUsed"),
            )
        try:
            pending = self.web3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            pending = None
        except Exception as exc:
            raise ChainError(self._format_error(exc), retryable=True, tx_hash=tx_hash) from exc
        return TransactionStatus(tx_hash=tx_hash, status="pending" if pending else "unknown")

    # ----------------------------------------------------------------- writes

    async def approve(
        self, signer, token: str, spender: str, amount: Decimal, decimals: Optional[int] = None
    ) -> str:
        contract = self._erc20(token)
        spender_cs = self._checksum(spender, "spender")
        value = to_base_units(amount, self._decimals(decimals))
        return await self._send(
            signer, lambda: contract.functions.approve(spender_cs, value), label="approve"
        )

    async def supply(
        self,
        signer,
        pool: str,
        asset: str,
        amount: Decimal,
        on_behalf_of: str,
        decimals: Optional[int] = None,
    ) -> str:
        contract = self._lending_pool(pool)
        asset_cs = self._checksum(asset, "asset")
        beneficiary = self._checksum(on_behalf_of, "on_behalf_of")
        value = to_base_units(amount, self._decimals(decimals))
        return await self._send(
            signer,
            lambda: contract.functions.supply(asset_cs, value, beneficiary, 0),
            label="supply",
        )

    async def withdraw(
        self,
        signer,
        pool: str,
        asset: str,
        amount: Decimal,
        to: str,
        decimals: Optional[int] = None,
    ) -> str:
        contract = self._lending_pool(pool)
        asset_cs = self._checksum(asset, "asset")
        to_cs = self._checksum(to, "to")
        value = to_base_units(amount, self._decimals(decimals))
        return await self._send(
            signer, lambda: contract.functions.withdraw(asset_cs, value, to_cs), label="withdraw"
        )

    async def transfer(
        self, signer, token: str, to: str, amount: Decimal, decimals: Optional[int] = None
    ) -> str:
        contract = self._erc20(token)
        to_cs = self._checksum(to, "to")
        value = to_base_units(amount, self._decimals(decimals))
        return await self._send(
            signer, lambda: contract.functions.transfer(to_cs, value), label="transfer"
        )

    async def send_native(self, signer, to: str, value_wei: int) -> str:
        to_cs = self._checksum(to, "to")
        return await self._send(signer, None, label="send_native", to=to_cs, value=int(value_wei))

    # --------------------------------------------------------------- plumbing

    async def _send(
        self,
        signer,
        build_fn: Optional[Callable[[], Any]],
        *,
        label: str,
        to: Optional[str] = None,
        value: int = 0,
    ) -> str:
        sender = signer.address
        async with wallet_lock(sender, operation=label, namespace="nonce"):
            try:
                nonce = self.web3.eth.get_transaction_count(sender, "pending")
                fees = {
                    "maxFeePerGas": self.web3.eth.gas_price * 2,
                    "maxPriorityFeePerGas": Web3.to_wei(0.1, "gwei"),
                }
            except Exception as exc:
                raise ChainError(self._format_error(exc), retryable=True) from exc

            if build_fn is None:
                tx = {
                    "from": sender,
                    "to": to,
                    "value": value,
                    "nonce": nonce,
                    "gas": NATIVE_TRANSFER_GAS,
                    "chainId": self.chain_id,
                    **fees,
                }
            else:
                call = build_fn()
                gas_limit = self._estimate_gas(call, sender, label)
                tx = call.build_transaction(
                    {
                        "from": sender,
                        "nonce": nonce,
                        "gas": gas_limit,
                        "chainId": self.chain_id,
                        "value": 0,
                        **fees,
                    }
                )

            signed_tx = signer.sign_transaction(tx)
            # Handle both web3.py 5 (rawTransaction) and web3.py 6+ (raw_transaction)
            raw_tx = getattr(signed_tx, "raw_transaction", None) or getattr(
                signed_tx, "rawTransaction", None
            )
            signed_hash = getattr(signed_tx, "hash", None)
            expected_hash = _hex(signed_hash) if signed_hash is not None else None
            try:
                tx_hash = _hex(self.web3.eth.send_raw_transaction(raw_tx))
            except Exception as exc:
                message = self._format_error(exc)
                if "execution reverted" in message:
                    raise ChainError(
                        f"{label} reverted: {message}", revert_reason=message, tx_hash=expected_hash
                    ) from exc
                # The node may have accepted it before the connection dropped.
                raise ChainError(
                    f"{label} submission failed: {message}",
                    retryable=True,
                    tx_hash=expected_hash,
                    context={"nonce": nonce},
                ) from exc

        logger.info("%s submitted from %s: %s (nonce %s)", label, sender, tx_hash, nonce)
        await self._wait_for_confirmation(tx_hash, nonce=nonce, label=label)
        return tx_hash

    def _estimate_gas(self, call, sender: str, label: str) -> int:
        try:
            estimated_gas = call.estimate_gas({"from": sender})
            return int(estimated_gas * 1.3)  # 30% buffer
        except Exception as exc:
            error_msg = str(exc)
            if "execution reverted" in error_msg:
                raise ChainError(
                    f"{label} will revert on-chain: {error_msg}", revert_reason=error_msg
                ) from exc
            logger.warning("Gas estimation failed for %s, using default: %s", label, exc)
            return DEFAULT_GAS_LIMIT

    async def _wait_for_confirmation(
        self, tx_hash: str, *, nonce: Optional[int] = None, label: str = "transaction"
    ) -> dict:
        deadline = time.monotonic() + self.confirmation_timeout
        while True:
            try:
                receipt = self.web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            except Exception as exc:
                logger.debug("Receipt lookup failed for %s: %s", tx_hash, exc)
                receipt = None
            if receipt:
                if receipt["status"] == 0:
                    raise ChainError(
                        f"{label} reverted: {tx_hash}", revert_reason="status 0", tx_hash=tx_hash
                    )
                logger.info("%s confirmed: %s", label, tx_hash)
                return receipt
            if time.monotonic() >= deadline:
                break
            await asyncio.sleep(self.poll_seconds)  # yield to event loop between polls
        logger.warning("%s not confirmed after %ss: %s", label, self.confirmation_timeout, tx_hash)
        raise TransactionUnconfirmedError(tx_hash, self.confirmation_timeout, nonce=nonce)

    async def _retry_call(self, fn: Callable[[], Any]) -> Any:
        last_exc: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                return fn()
            except Exception as exc:
                last_exc = exc
                if attempt >= self.max_retries:
                    break
                await asyncio.sleep(self.backoff_seconds * (2**attempt))
        raise ChainError(self._format_error(last_exc), retryable=True) from last_exc

    def _format_error(self, exc: Optional[Exception]) -> str:
        if exc is None:
            return "Unknown RPC error"
        message = str(exc)
        if "execution reverted" in message:
            return message
        if "timeout" in message.lower():
            return f"RPC timeout: {message}"
        return message

    def _decimals(self, decimals: Optional[int]) -> int:
        return settings.token_decimals if decimals is None else decimals

    @staticmethod
    def _checksum(address: str, field: str) -> str:
        if not address or not Web3.is_address(address):
            raise ValueError(f"Invalid {field} address: {address}")
        return Web3.to_checksum_address(address)

    def _erc20(self, token: str):
        return self.web3.eth.contract(address=self._checksum(token, "token"), abi=self.erc20_abi)

    def _lending_pool(self, pool: str):
        return self.web3.eth.contract(
            address=self._checksum(pool, "pool"), abi=self.lending_pool_abi
        )

    def _erc20_abi(self) -> list:
        return [
            {
                "inputs": [{"name": "account", "type": "address"}],
                "name": "balanceOf",
                "outputs": [{"type": "uint256"}],
                "stateMutability": "view",
                "type": "function",
            },
            {
                "inputs": [
                    {"name": "owner", "type": "address"},
                    {"name": "spender", "type": "address"},
                ],
                "name": "allowance",
                "outputs": [{"type": "uint256"}],
                "stateMutability": "view",
                "type": "function",
            },
            {
                "inputs": [
                    {"name": "spender", "type": "address"},
                    {"name": "amount", "type": "uint256"},
                ],
                "name": "approve",
                "outputs": [{"type": "bool"}],
                "stateMutability": "nonpayable",
                "type": "function",
            },
            {
                "inputs": [
                    {"name": "to", "type": "address"},
                    {"name": "amount", "type": "uint256"},
                ],
                "name": "transfer",
                "outputs": [{"type": "bool"}],
                "stateMutability": "nonpayable",
                "type": "function",
            },
            {
                "inputs": [],
                "name": "decimals",
                "outputs": [{"type": "uint8"}],
                "stateMutability": "view",
                "type": "function",
            },
        ]

    def _lending_pool_abi(self) -> list:
        return [
            {
                "inputs": [
                    {"name": "asset", "type": "address"},
                    {"name": "amount", "type": "uint256"},
                    {"name": "onBehalfOf", "type": "address"},
                    {"name": "referralCode", "type": "uint16"},
                ],
                "name": "supply",
                "outputs": [],
                "stateMutability": "nonpayable",
                "type": "function",
            },
            {
                "inputs": [
                    {"name": "asset", "type": "address"},
                    {"name": "amount", "type": "uint256"},
                    {"name": "to", "type": "address"},
                ],
                "name": "withdraw",
                "outputs": [{"type": "uint256"}],
                "stateMutability": "nonpayable",
                "type": "function",
            },
        ]
