"""
Exchange Clients Library

Unified access to the trading venue for the grid engine.

Modules:
    - base_client: ``ExchangeAccess`` capability consumed by the engine
    - base_models: shared dataclasses, credential checks and retry policy
    - exceptions: typed error taxonomy
    - signing: canonical query strings and HMAC-SHA256 signatures
    - credentials: secret holder for the trusted boundary
    - binance: direct (in-process signing) client
    - remote: client for the trusted signing backend
    - factory: picks exactly one of the two per deployment
"""

from .base_client import ExchangeAccess
from .base_models import (
    Balance,
    ErrorInfo,
    OrderInfo,
    OrderSide,
    OrderStatus,
    RetryPolicy,
    call_with_retry,
    validate_credentials,
)
from .credentials import Credentials
from .exceptions import (
    AuthenticationError,
    CredentialBoundaryError,
    ExchangeAPIError,
    ExchangeTimeoutError,
    InvalidConfigurationError,
    MissingCredentialsError,
    NetworkError,
    OperationInProgressError,
    OperationNotAllowedError,
    OrderNotFoundError,
    ProtocolError,
    TradingError,
)

__all__ = [
    "ExchangeAccess",
    "Balance",
    "ErrorInfo",
    "OrderInfo",
    "OrderSide",
    "OrderStatus",
    "RetryPolicy",
    "call_with_retry",
    "validate_credentials",
    "Credentials",
    "AuthenticationError",
    "CredentialBoundaryError",
    "ExchangeAPIError",
    "ExchangeTimeoutError",
    "InvalidConfigurationError",
    "MissingCredentialsError",
    "NetworkError",
    "OperationInProgressError",
    "OperationNotAllowedError",
    "OrderNotFoundError",
    "ProtocolError",
    "TradingError",
]

__version__ = "1.0.0"
