"""
Deployment settings loaded from environment variables / ``.env``.

``BotSettings`` configures the trading process (``GRID_BOT_*``);
``ProxySettings`` configures the trusted signing backend (``GRID_PROXY_*``).
Grid parameters themselves live in YAML files (see ``config_yaml``).
"""

from typing import FrozenSet, Literal, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings

from exchange_clients.base_models import RetryPolicy
from exchange_clients.exceptions import InvalidConfigurationError

PROXY_OPERATIONS: FrozenSet[str] = frozenset(
    {
        "get_balance",
        "get_price",
        "place_order",
        "cancel_order",
        "get_order",
        "validate_credentials",
    }
)


def _split_csv(value: str) -> FrozenSet[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


class BotSettings(BaseSettings):
    """Settings of the trading process."""

    # Signing mode: "backend" keeps the secret out of this process
    mode: Literal["backend", "direct"] = "backend"
    testnet: bool = True

    # Exchange
    api_key: Optional[str] = None
    api_secret: Optional[SecretStr] = None
    exchange_base_url: Optional[str] = None
    symbol: str = "BTCUSDT"
    base_asset: str = "BTC"
    quote_asset: str = "USDT"

    # Trusted backend
    proxy_url: str = "http://localhost:4000"
    # Key sent as X-API-Key to the backend; falls back to api_key
    proxy_client_key: Optional[str] = None

    # Scheduling (seconds)
    price_poll_seconds: float = Field(10.0, gt=0)
    balance_poll_seconds: float = Field(60.0, gt=0)
    reconcile_poll_seconds: float = Field(15.0, gt=0)

    # Timeouts and retries
    request_timeout: float = Field(10.0, gt=0)
    price_timeout: float = Field(5.0, gt=0)
    retry_max_attempts: int = Field(3, ge=1, le=10)
    retry_min_wait: float = Field(1.0, ge=0)
    retry_max_wait: float = Field(8.0, ge=0)
    retry_deadline_seconds: float = Field(30.0, gt=0)

    liquidate_on_halt: bool = False
    log_level: str = "INFO"

    @field_validator("symbol", "base_asset", "quote_asset")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _check_mode(self) -> "BotSettings":
        if self.mode == "backend" and self.api_secret is not None and self.api_secret.get_secret_value():
            raise InvalidConfigurationError(
                "GRID_BOT_API_SECRET must not be set in backend mode; the secret belongs to the proxy service"
            )
        return self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            min_wait=self.retry_min_wait,
            max_wait=self.retry_max_wait,
            deadline=self.retry_deadline_seconds,
        )

    class Config:
        env_prefix = "GRID_BOT_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


class ProxySettings(BaseSettings):
    """Settings of the trusted signing backend."""

    host: str = "127.0.0.1"
    port: int = 4000

    api_key: Optional[str] = None
    api_secret: Optional[SecretStr] = None
    testnet: bool = True
    exchange_base_url: Optional[str] = None
    base_asset: str = "BTC"
    quote_asset: str = "USDT"
    request_timeout: float = Field(10.0, gt=0)
    price_timeout: float = Field(5.0, gt=0)

    # Comma-separated; empty client_keys means "the exchange API key only"
    client_keys: str = ""
    allowed_operations: str = ",".join(sorted(PROXY_OPERATIONS))
    cors_origins: str = "http://localhost:3000"

    @field_validator("allowed_operations")
    @classmethod
    def _known_operations(cls, value: str) -> str:
        unknown = _split_csv(value) - PROXY_OPERATIONS
        if unknown:
            raise ValueError(f"Unknown proxy operations: {', '.join(sorted(unknown))}")
        return value

    @property
    def client_key_set(self) -> FrozenSet[str]:
        keys = _split_csv(self.client_keys)
        if not keys and self.api_key:
            keys = frozenset({self.api_key})
        return keys

    @property
    def allowed_operation_set(self) -> FrozenSet[str]:
        return _split_csv(self.allowed_operations)

    @property
    def cors_origin_list(self) -> list:
        return sorted(_split_csv(self.cors_origins))

    class Config:
        env_prefix = "GRID_PROXY_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"
