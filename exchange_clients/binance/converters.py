"""
Converters for the Binance client.

Raw REST payloads -> OrderInfo / Balance, and HTTP error payloads -> typed errors.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from exchange_clients.base_models import Balance, OrderInfo, OrderSide, OrderStatus, to_decimal
from exchange_clients.exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    OrderNotFoundError,
    ProtocolError,
    TradingError,
)

from .common import (
    AUTH_ERROR_CODES,
    CANCEL_REJECTED_CODE,
    NO_SUCH_ORDER_CODE,
    RATE_LIMIT_CODES,
    RATE_LIMIT_HTTP_STATUSES,
)

_STATUS_MAP = {
    "PENDING_NEW": OrderStatus.OPEN,
    "NEW": OrderStatus.OPEN,
    "PARTIALLY_FILLED": OrderStatus.OPEN,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "PENDING_CANCEL": OrderStatus.OPEN,
    "EXPIRED": OrderStatus.CANCELLED,
    "EXPIRED_IN_MATCH": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.REJECTED,
}


def map_order_status(raw_status: str) -> OrderStatus:
    try:
        return _STATUS_MAP[(raw_status or "").upper()]
    except KeyError:
        raise ProtocolError(f"Unknown order status '{raw_status}'") from None


def build_order_info(result: Dict[str, Any], fallback_order_id: Optional[str] = None) -> OrderInfo:
    """
    Convert an order payload (place, cancel or query response) into OrderInfo.

    Cancel responses carry the original client id in ``origClientOrderId``
    and a fresh one in ``clientOrderId``, so the original wins.
    """
    if not isinstance(result, dict):
        raise ProtocolError(f"Expected order object, got {type(result).__name__}")

    client_id = result.get("origClientOrderId") or result.get("clientOrderId") or fallback_order_id
    if not client_id:
        raise ProtocolError("Order payload has no client order id")

    try:
        side = OrderSide(str(result.get("side", "")).upper())
    except ValueError:
        raise ProtocolError(f"Unknown order side '{result.get('side')}'") from None

    price = to_decimal(result.get("price"))
    if price is not None and price == 0:
        # Market orders report price 0
        price = None

    exchange_id = result.get("orderId")
    return OrderInfo(
        order_id=str(client_id),
        symbol=str(result.get("symbol", "")),
        side=side,
        quantity=to_decimal(result.get("origQty"), Decimal("0")),
        price=price,
        status=map_order_status(result.get("status", "")),
        exchange_order_id=str(exchange_id) if exchange_id is not None else None,
        filled_quantity=to_decimal(result.get("executedQty"), Decimal("0")),
    )


def build_balance(account: Dict[str, Any], base_asset: str, quote_asset: str) -> Balance:
    """Pick the free amounts of the pair's assets; absent assets count as zero."""
    if not isinstance(account, dict) or not isinstance(account.get("balances", []), list):
        raise ProtocolError("Account payload has no balances list")

    free = {}
    for entry in account.get("balances", []):
        asset = str(entry.get("asset", "")).upper()
        free[asset] = to_decimal(entry.get("free"), Decimal("0"))

    return Balance(
        base=free.get(base_asset.upper(), Decimal("0")),
        quote=free.get(quote_asset.upper(), Decimal("0")),
    )


def parse_price(payload: Any) -> Decimal:
    price = to_decimal(payload.get("price")) if isinstance(payload, dict) else None
    if price is None:
        raise ProtocolError(f"Ticker payload has no price: {payload!r}")
    return price


def classify_error(http_status: int, payload: Any) -> TradingError:
    """
    Map an error response to the typed taxonomy.

    ``payload`` is the decoded JSON body, or None when the body did not parse.
    """
    code = None
    message = ""
    if isinstance(payload, dict):
        try:
            code = int(payload.get("code"))
        except (TypeError, ValueError):
            code = None
        message = str(payload.get("msg") or payload.get("message") or "")

    if http_status == 401 or code in AUTH_ERROR_CODES:
        return AuthenticationError(f"HTTP {http_status}: {message or 'unauthorized'}")

    if payload is None:
        return ProtocolError(f"HTTP {http_status} with unparseable body")

    if code == NO_SUCH_ORDER_CODE or (code == CANCEL_REJECTED_CODE and "unknown order" in message.lower()):
        return OrderNotFoundError(message or "Order does not exist")

    rate_limited = http_status in RATE_LIMIT_HTTP_STATUSES or code in RATE_LIMIT_CODES
    return ExchangeAPIError(
        message or f"HTTP {http_status}",
        code=code,
        http_status=http_status,
        retryable=rate_limited,
    )
