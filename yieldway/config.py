from __future__ import annotations

import json
import os
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./yieldway.db"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        enable_decoding=False,
    )

    database_url: str = Field(
        default=DEFAULT_DATABASE_URL,
        validation_alias=AliasChoices("DATABASE_PRIVATE_URL", "DATABASE_URL", "database_url"),
    )
    cors_origins: list[str] = ["http://localhost:8081"]
    api_version: str = "0.1.0"
    rpc_url: str = Field(
        default="",
        validation_alias=AliasChoices("BASE_SEPOLIA_RPC_URL", "RPC_URL", "rpc_url"),
    )
    chain_id: int = 84532  # Base Sepolia
    master_wallet_private_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "MASTER_WALLET_PRIVATE_KEY", "TEST_WALLET_PRIVATE_KEY", "master_wallet_private_key"
        ),
    )
    wallet_encryption_key: str = Field(
        default="",
        validation_alias=AliasChoices("WALLET_ENCRYPTION_KEY", "wallet_encryption_key"),
    )
    usdc_address: str = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
    aave_pool_address: str = "0x07eA79F68B2B3df564D0A34F8e19D9B1e339814b"
    token_decimals: int = 6
    pool_receipt_tokens: dict[str, str] = {
        "aave-usdc": "0xf53B60F4006cab2b3C4688ce41fD5362427A2A66",
    }
    confirmation_timeout_seconds: float = 120.0
    confirmation_poll_seconds: float = 2.0
    rpc_max_retries: int = 2
    rpc_backoff_seconds: float = 0.5
    settlement_delay_seconds: float = 3.0
    settlement_fee: str = "0.00001"
    funding_gas_wei: int = 10_000_000_000_000_000  # 0.01 ETH
    reconcile_enabled: bool = True
    reconcile_interval_minutes: int = 15
    dev_funding_enabled: bool = False

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, value: str) -> str:
        if not isinstance(value, str):
            return value
        if not value.strip():
            return DEFAULT_DATABASE_URL
        url = value
        if url.startswith("postgres://"):
            url = "postgresql+asyncpg://" + url[len("postgres://") :]
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://") and "+aiosqlite" not in url:
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        parts = urlsplit(url)
        if "asyncpg" in parts.scheme:
            query = parse_qs(parts.query, keep_blank_values=True)
            if "sslmode" in query and "ssl" not in query:
                mode = (query.pop("sslmode")[0] or "").lower()
                if mode in ("disable", "false", "0", "no"):
                    query["ssl"] = ["false"]
                else:
                    query["ssl"] = ["true"]
                url = urlunsplit(
                    (parts.scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment)
                )
        return url

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("pool_receipt_tokens", mode="before")
    @classmethod
    def parse_pool_receipt_tokens(cls, value):
        if isinstance(value, str):
            stripped = value.strip()
            # JSON format: {"aave-usdc": "0x..."}
            if stripped.startswith("{") and stripped.endswith("}"):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, dict):
                        return {k.strip().lower(): v.strip() for k, v in parsed.items()}
                except json.JSONDecodeError:
                    pass
            # Fallback: aave-usdc:0x...,other-pool:0x...
            items = [item.strip() for item in stripped.split(",") if item.strip()]
            parsed: dict[str, str] = {}
            for item in items:
                if ":" not in item:
                    continue
                pool_id, address = item.split(":", 1)
                parsed[pool_id.strip().lower()] = address.strip()
            return parsed
        return value

    @field_validator("funding_gas_wei", mode="before")
    @classmethod
    def parse_funding_gas_wei(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return 0
        return value


settings = Settings()


def running_in_hosted_env() -> bool:
    """Detect hosted/runtime environments (Railway/containers) by common vars."""
    markers = (
        "RAILWAY_ENVIRONMENT",
        "RAILWAY_PROJECT_ID",
        "RAILWAY_SERVICE_NAME",
        "PORT",
    )
    return any(os.getenv(name) for name in markers)


def database_dsn_safe(raw_url: str | None = None) -> str:
    """Return a redacted DB URL for logs (no password)."""
    url = raw_url or settings.database_url
    if not isinstance(url, str):
        return "<invalid>"
    if url.startswith("sqlite"):
        return f"{urlsplit(url).scheme}://<local-file>"
    parts = urlsplit(url)
    host = parts.hostname or "<unknown>"
    port = parts.port or ""
    db = (parts.path or "").lstrip("/") or "<unknown>"
    port_str = f":{port}" if port else ""
    return f"{parts.scheme}://{host}{port_str}/{db}"


def configuration_problems(current: Settings | None = None) -> list[str]:
    """List missing settings that block custodial wallet operations."""
    current = current or settings
    problems = []
    if not current.rpc_url:
        problems.append("BASE_SEPOLIA_RPC_URL is not set")
    if not current.wallet_encryption_key:
        problems.append("WALLET_ENCRYPTION_KEY is not set")
    if not current.usdc_address:
        problems.append("USDC_ADDRESS is not set")
    if not current.aave_pool_address:
        problems.append("AAVE_POOL_ADDRESS is not set")
    return problems
