from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

# EntryPoint v0.6 and the canonical SimpleAccountFactory deployment
ENTRYPOINT_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
SIMPLE_ACCOUNT_FACTORY = "0x9406Cc6185a346906296840746125a0E44976454"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Chain
    chain_id: int = Field(default=689, description="Chain ID the wallet operates on")
    rpc_url: str = Field(default="", description="Chain node JSON-RPC URL")
    native_token_symbol: str = Field(default="NERO", description="Symbol of the chain's native asset")
    native_token_decimals: int = Field(default=18, ge=0, description="Decimals of the chain's native asset")

    # Account abstraction services
    bundler_url: str = Field(default="", description="ERC-4337 bundler JSON-RPC URL")
    paymaster_url: str = Field(default="", description="Paymaster JSON-RPC URL")
    paymaster_api_key: str = Field(
        default="",
        description="API key sent with every paymaster request",
        validation_alias=AliasChoices("paymaster_api_key", "paymaster_apikey", "PAYMASTER_API"),
    )

    # Contracts
    entry_point_address: str = Field(default=ENTRYPOINT_V06, description="EntryPoint contract address")
    account_factory_address: str = Field(
        default=SIMPLE_ACCOUNT_FACTORY,
        description="SimpleAccountFactory used to derive counterfactual accounts",
    )
    token_paymaster_address: str = Field(
        default="",
        description="Paymaster contract that token-paid operations approve and reference",
    )
    account_salt: int = Field(default=0, ge=0, description="Salt of account index 0; index N uses this plus N")
    account_execute_signature: str = Field(
        default="execute(address,uint256,bytes)",
        description="Account function used for single calls",
    )
    account_execute_batch_signature: str = Field(
        default="executeBatch(address[],bytes[])",
        description="Account function used for batched calls",
    )

    # Networking
    request_timeout_seconds: float = Field(default=20.0, gt=0, description="Per-request HTTP timeout")
    gas_price_buffer_percent: int = Field(default=13, ge=0, description="Buffer added to node fee suggestions")

    # Receipts
    receipt_poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Delay between eth_getUserOperationReceipt polls",
    )
    receipt_wait_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Default bound on receipt waits (None waits until the caller cancels)",
    )

    # Supported-token cache
    supported_tokens_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Fetch attempts before the supported-token error is pinned",
    )
    supported_tokens_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Initial backoff between supported-token fetch attempts",
    )

    # Fee estimation
    fee_estimate_fallback: Decimal = Field(
        default=Decimal("0.0001"),
        description="Placeholder shown when the bundler cannot estimate an operation",
    )

    @property
    def paymaster_configured(self) -> bool:
        return bool(self.paymaster_url and self.token_paymaster_address)


# Global settings instance
settings = Settings()
