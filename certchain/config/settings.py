"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

import re
from decimal import Decimal
from typing import Literal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from certchain.config.constants import (
    AMOY_CHAIN_ID,
    AMOY_EXPLORER_URL,
    AMOY_RPC_URL,
    BLOCKCHAIN_LONG_TIMEOUT,
    BLOCKCHAIN_RPC_TIMEOUT,
    DEFAULT_BATCH_CONCURRENCY,
    DEFAULT_CONFIRMATION_BLOCKS,
    ISSUER_LOOKBACK_BLOCKS,
    LOG_CHUNK_SIZE,
    MINT_MAX_ATTEMPTS,
    NOTIFICATION_MAX_RETRIES,
    RECEIPT_POLL_INTERVAL,
)

PRIVATE_KEY_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Blockchain RPC
    rpc_url: str = AMOY_RPC_URL
    chain_id: int = Field(default=AMOY_CHAIN_ID, gt=0)
    rpc_request_timeout: int = Field(
        default=BLOCKCHAIN_RPC_TIMEOUT, gt=0, description="RPC provider HTTP timeout in seconds"
    )

    # Contract binding
    contract_address: str
    contract_profile: Literal["certificate", "simple"] = Field(
        default="certificate",
        description="ABI family of the deployed contract (one per deployment)",
    )
    contract_abi_path: str | None = Field(
        default=None,
        description="Optional ABI JSON (plain array or Hardhat artifact) overriding the profile ABI",
    )

    # Signer (optional: read-only deployments leave it empty)
    private_key: str | None = None

    # Transaction lifecycle
    confirmation_blocks: int = Field(
        default=DEFAULT_CONFIRMATION_BLOCKS, ge=1, le=64,
        description="Confirmations to wait for after a mutation is mined",
    )
    gas_price_gwei: Decimal | None = Field(
        default=None, gt=0,
        description="Fixed legacy gas price; empty lets the network determine fees",
    )
    transaction_timeout: float = Field(
        default=BLOCKCHAIN_LONG_TIMEOUT, gt=0,
        description="Upper bound for the confirmation wait in seconds",
    )
    receipt_poll_interval: float = Field(default=RECEIPT_POLL_INTERVAL, gt=0)
    mint_max_attempts: int = Field(default=MINT_MAX_ATTEMPTS, ge=1, le=5)

    # Queries
    issuer_lookback_blocks: int = Field(default=ISSUER_LOOKBACK_BLOCKS, gt=0)
    log_chunk_size: int = Field(default=LOG_CHUNK_SIZE, gt=0)
    batch_concurrency: int = Field(default=DEFAULT_BATCH_CONCURRENCY, ge=1, le=50)

    # Collaborators
    frontend_url: str = "http://localhost:3000"
    explorer_url: str = AMOY_EXPLORER_URL
    notification_max_retries: int = Field(default=NOTIFICATION_MAX_RETRIES, ge=0)
    notification_webhook_url: str | None = Field(
        default=None,
        description="Webhook receiving post-mint notifications; empty logs them only",
    )

    # HTTP API
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=4000, ge=1, le=65535)

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = "logs/certchain.log"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if not self.private_key:
                logger.warning(
                    'PRIVATE_KEY is not set - running read-only, '
                    'mint and revoke will be rejected.'
                )
        return self

    @field_validator('contract_address')
    @classmethod
    def validate_contract_address(cls, v: str) -> str:
        """Validate contract address format."""
        v = v.strip()
        if not v.startswith('0x') or len(v) != 42:
            raise ValueError(
                f'Invalid contract address: {v}. '
                'Must start with 0x and be 42 characters long.'
            )
        try:
            int(v[2:], 16)
        except ValueError as exc:
            raise ValueError(f'Invalid contract address format: {v}') from exc
        return v

    @field_validator('private_key')
    @classmethod
    def validate_private_key(cls, v: str | None) -> str | None:
        """Validate private key format (0x + 32 bytes hex)."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith('0x'):
            v = f'0x{v}'
        if not PRIVATE_KEY_PATTERN.match(v):
            raise ValueError('PRIVATE_KEY must be 0x-prefixed 32 bytes of hex')
        return v

    @field_validator('frontend_url', 'explorer_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs."""
        return v.rstrip('/')

    @property
    def is_development(self) -> bool:
        """Whether raw error details may be exposed to API callers."""
        return self.environment == 'development'

    @property
    def gas_price_wei(self) -> int | None:
        """Fixed gas price in wei, or None to let the network decide."""
        if self.gas_price_gwei is None:
            return None
        return int(self.gas_price_gwei * 10**9)


# Global settings instance
settings = Settings()
