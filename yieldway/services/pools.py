"""Static yield pool catalog."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from yieldway.config import settings


@dataclass(frozen=True)
class YieldPool:
    id: str
    name: str
    protocol: str
    chain: str
    apy: Decimal
    risk_level: str  # low | medium | high
    min_deposit: Decimal
    contract_address: str
    description: str = ""
    tvl: int = 0
    features: tuple[str, ...] = field(default_factory=tuple)

    @property
    def receipt_token(self) -> Optional[str]:
        """Receipt token tracked on-chain for this pool, if one is configured."""
        return settings.pool_receipt_tokens.get(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "protocol": self.protocol,
            "chain": self.chain,
            "apy": float(self.apy),
            "riskLevel": self.risk_level,
            "minDeposit": float(self.min_deposit),
            "contractAddress": self.contract_address,
            "description": self.description,
            "tvl": self.tvl,
            "features": list(self.features),
            "receiptToken": self.receipt_token,
        }


DEFAULT_POOL_ID = "aave-usdc"

YIELD_POOLS: tuple[YieldPool, ...] = (
    YieldPool(
        id=DEFAULT_POOL_ID,
        name="Aave USDC",
        protocol="Aave V3",
        chain="Base Sepolia",
        apy=Decimal("4.5"),
        risk_level="low",
        min_deposit=Decimal("1"),
        contract_address=settings.aave_pool_address,
        description="USDC supplied to the Aave V3 pool on Base",
        features=("Instant withdrawals", "On-chain receipt token"),
    ),
    YieldPool(
        id="aave-eth-conservative",
        name="Conservative",
        protocol="Aave V3",
        chain="Ethereum",
        apy=Decimal("3.5"),
        risk_level="low",
        min_deposit=Decimal("100"),
        contract_address="0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2",
        description="Maximum security with Ethereum mainnet",
        tvl=2_000_000_000,
        features=("Highest security", "Maximum liquidity", "Battle-tested protocol"),
    ),
    YieldPool(
        id="aave-base-balanced",
        name="Balanced",
        protocol="Aave V3",
        chain="Base",
        apy=Decimal("7.2"),
        risk_level="low",
        min_deposit=Decimal("50"),
        contract_address="0xA238Dd80C259a72e81d7e4664a9801593F98d1c5",
        description="Best balance of yield and security",
        tvl=150_000_000,
        features=("Higher yields", "Low transaction fees", "Fast settlements"),
    ),
    YieldPool(
        id="morpho-aggressive",
        name="Aggressive",
        protocol="Morpho Blue",
        chain="Ethereum",
        apy=Decimal("9.8"),
        risk_level="medium",
        min_deposit=Decimal("500"),
        contract_address="0xBBBBBbbBBb9cC5e90e3b3Af64bdAF62C37EEFFCb",
        description="Maximum yield with peer-to-peer matching",
        tvl=400_000_000,
        features=("Highest APY", "Optimized rates", "Peer-to-peer matching"),
    ),
)

_POOLS_BY_ID = {pool.id: pool for pool in YIELD_POOLS}


def get_pool_by_id(pool_id: str) -> Optional[YieldPool]:
    return _POOLS_BY_ID.get(pool_id)


def get_pools_by_risk(risk_level: str) -> list[YieldPool]:
    return [pool for pool in YIELD_POOLS if pool.risk_level == risk_level]


def tracked_pools() -> list[YieldPool]:
    """Pools whose receipt-token balance can be read on-chain."""
    return [pool for pool in YIELD_POOLS if pool.receipt_token]
