"""
Shared data structures and utilities for exchange clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from .exceptions import MissingCredentialsError, TradingError, is_retryable

T = TypeVar("T")


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderStatus(str, Enum):
    """Lifecycle of a grid order: PENDING -> OPEN -> FILLED | CANCELLED | REJECTED."""

    PENDING = "PENDING"
    OPEN = "OPEN"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED})


@dataclass(frozen=True)
class Balance:
    """Free balance of the traded pair."""

    base: Decimal = Decimal("0")
    quote: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {"base": str(self.base), "quote": str(self.quote)}


@dataclass(frozen=True)
class OrderInfo:
    """Exchange view of one order, as returned by place/cancel/status calls."""

    order_id: str
    symbol: str
    side: OrderSide
    quantity: Decimal
    price: Optional[Decimal]
    status: OrderStatus
    exchange_order_id: Optional[str] = None
    filled_quantity: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": str(self.quantity),
            "price": str(self.price) if self.price is not None else None,
            "status": self.status.value,
            "exchange_order_id": self.exchange_order_id,
            "filled_quantity": str(self.filled_quantity),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderInfo":
        price = data.get("price")
        exchange_order_id = data.get("exchange_order_id")
        return cls(
            order_id=str(data["order_id"]),
            symbol=data["symbol"],
            side=OrderSide(data["side"]),
            quantity=Decimal(str(data["quantity"])),
            price=Decimal(str(price)) if price is not None else None,
            status=OrderStatus(data["status"]),
            exchange_order_id=str(exchange_order_id) if exchange_order_id is not None else None,
            filled_quantity=Decimal(str(data.get("filled_quantity", "0"))),
        )


@dataclass(frozen=True)
class ErrorInfo:
    """Structured error (kind + message) exposed to callers instead of bare strings."""

    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        if isinstance(exc, TradingError):
            return cls(kind=exc.kind, message=str(exc))
        return cls(kind="InternalError", message=str(exc) or type(exc).__name__)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Convert API numbers (usually strings) to Decimal."""
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default


PLACEHOLDER_VALUES: List[str] = [
    "your_api_key_here",
    "your_secret_key_here",
    "PLACEHOLDER",
    "placeholder",
    "",
]


def validate_credentials(
    credential_name: str,
    credential_value: Optional[str],
    placeholder_values: Optional[List[str]] = None,
) -> None:
    """
    Ensure a credential is present and is not a template placeholder.

    Raises:
        MissingCredentialsError: If the credential is missing or a placeholder
    """
    if placeholder_values is None:
        placeholder_values = PLACEHOLDER_VALUES

    if not credential_value:
        raise MissingCredentialsError(f"Missing {credential_name}")

    if credential_value in placeholder_values:
        raise MissingCredentialsError(f"{credential_name} is not configured (placeholder or empty)")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry policy for transient exchange failures.

    Both limits apply: whichever of ``max_attempts`` or ``deadline`` (seconds)
    is hit first stops the retries and the last error is re-raised.
    """

    max_attempts: int = 3
    min_wait: float = 1.0
    max_wait: float = 8.0
    deadline: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.deadline <= 0:
            raise ValueError("deadline must be positive")


async def call_with_retry(
    policy: RetryPolicy,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    on_retry: Optional[Callable[[RetryCallState], None]] = None,
    **kwargs: Any,
) -> T:
    """
    Await ``func`` retrying only errors classified as transient.

    Non-retryable errors (authentication, order not found, hard network
    failures...) propagate on the first attempt.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts) | stop_after_delay(policy.deadline),
        wait=wait_exponential(multiplier=policy.min_wait or 0, min=policy.min_wait, max=policy.max_wait),
        retry=retry_if_exception(is_retryable),
        before_sleep=on_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)
    raise RuntimeError("retry loop exited without result")  # pragma: no cover


__all__ = [
    "OrderSide",
    "OrderStatus",
    "TERMINAL_STATUSES",
    "Balance",
    "OrderInfo",
    "ErrorInfo",
    "to_decimal",
    "validate_credentials",
    "RetryPolicy",
    "call_with_retry",
]
