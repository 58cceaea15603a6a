"""
Error taxonomy shared by exchange clients, the grid engine and the proxy service.

Every error carries a stable ``kind`` string so it can cross a process
boundary (proxy JSON body, engine snapshot) and be rebuilt on the other side.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type


class TradingError(Exception):
    """Base class for all typed trading errors."""

    kind = "TradingError"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class InvalidConfigurationError(TradingError):
    """A grid configuration or deployment setting failed validation."""

    kind = "InvalidConfiguration"


class MissingCredentialsError(InvalidConfigurationError):
    """Raised when exchange credentials are missing or placeholders."""

    kind = "MissingCredentials"


class CredentialBoundaryError(InvalidConfigurationError):
    """The requested signing mode is not allowed for this deployment."""

    kind = "CredentialBoundary"


class NetworkError(TradingError):
    """Connection could not be established or was dropped."""

    kind = "NetworkError"


class ExchangeTimeoutError(TradingError):
    """The call exceeded its timeout budget."""

    kind = "Timeout"
    retryable = True


class ProtocolError(TradingError):
    """The exchange answered with a body that could not be parsed."""

    kind = "ProtocolError"


class AuthenticationError(TradingError):
    """Rejected credentials, signature or timestamp. Never retried."""

    kind = "AuthenticationError"


class ExchangeAPIError(TradingError):
    """Error reported by the exchange, forwarded with its code."""

    kind = "ExchangeError"

    def __init__(
        self,
        message: str = "",
        code: Optional[int] = None,
        http_status: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.http_status = http_status
        self.retryable = retryable

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}" if self.code is not None else self.message

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["code"] = self.code
        data["retryable"] = self.retryable
        return data


class OrderNotFoundError(TradingError):
    """The exchange does not know the order. Terminal, not retried."""

    kind = "OrderNotFound"


class OperationInProgressError(TradingError):
    """A status-changing call for the same order id is still outstanding."""

    kind = "OperationInProgress"


class OperationNotAllowedError(TradingError):
    """The trusted backend does not expose the requested operation to this caller."""

    kind = "OperationNotAllowed"


_KINDS: Dict[str, Type[TradingError]] = {
    cls.kind: cls
    for cls in (
        InvalidConfigurationError,
        MissingCredentialsError,
        CredentialBoundaryError,
        NetworkError,
        ExchangeTimeoutError,
        ProtocolError,
        AuthenticationError,
        OrderNotFoundError,
        OperationInProgressError,
        OperationNotAllowedError,
    )
}


def error_from_dict(payload: Dict[str, Any]) -> TradingError:
    """Rebuild a typed error from its ``to_dict()`` form."""
    kind = payload.get("kind", "")
    message = str(payload.get("message", ""))
    if kind == ExchangeAPIError.kind:
        code = payload.get("code")
        return ExchangeAPIError(
            message,
            code=int(code) if code is not None else None,
            retryable=bool(payload.get("retryable", False)),
        )
    cls = _KINDS.get(kind)
    if cls is None:
        return ProtocolError(f"Unknown error kind '{kind}': {message}")
    return cls(message)


def is_retryable(exc: BaseException) -> bool:
    """Transient errors worth another attempt: timeouts and rate limits only."""
    return isinstance(exc, TradingError) and exc.retryable


__all__ = [
    "TradingError",
    "InvalidConfigurationError",
    "MissingCredentialsError",
    "CredentialBoundaryError",
    "NetworkError",
    "ExchangeTimeoutError",
    "ProtocolError",
    "AuthenticationError",
    "ExchangeAPIError",
    "OrderNotFoundError",
    "OperationInProgressError",
    "OperationNotAllowedError",
    "error_from_dict",
    "is_retryable",
]
