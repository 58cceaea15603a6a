"""
Trading API Routes

High-level intents forwarded to the exchange with the backend's own
credentials. Responses never contain the secret.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.base_models import OrderSide

from .auth import require_operation
from .dependencies import ServiceContainer, get_exchange, get_services

router = APIRouter()


class OrderRequest(BaseModel):
    """Body of ``POST /orders``; omit ``price`` for a market order."""

    symbol: str = Field(..., min_length=1)
    side: OrderSide
    quantity: Decimal = Field(..., gt=0)
    price: Optional[Decimal] = Field(None, gt=0)
    client_order_id: Optional[str] = Field(None, max_length=36)

    class Config:
        extra = "forbid"


@router.get("/price/{symbol}", dependencies=[Depends(require_operation("get_price"))])
async def get_price(symbol: str, exchange: ExchangeAccess = Depends(get_exchange)) -> Dict[str, Any]:
    """Latest price of ``symbol``"""
    price = await exchange.get_price(symbol)
    return {"symbol": symbol.upper(), "price": str(price)}


@router.get("/balance", dependencies=[Depends(require_operation("get_balance"))])
async def get_balance(exchange: ExchangeAccess = Depends(get_exchange)) -> Dict[str, Any]:
    """Free base/quote balance"""
    balance = await exchange.get_balance()
    return balance.to_dict()


@router.get("/credentials/validate", dependencies=[Depends(require_operation("validate_credentials"))])
async def validate_credentials(exchange: ExchangeAccess = Depends(get_exchange)) -> Dict[str, Any]:
    """Whether the exchange accepts the backend's credentials"""
    return {"valid": await exchange.validate_credentials()}


@router.post("/orders", dependencies=[Depends(require_operation("place_order"))])
async def place_order(
    order: OrderRequest,
    exchange: ExchangeAccess = Depends(get_exchange),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Place a limit (or market) order"""
    if order.client_order_id:
        async with services.order_operation(order.client_order_id):
            info = await exchange.place_order(
                order.symbol, order.side, order.quantity, order.price, client_order_id=order.client_order_id
            )
    else:
        info = await exchange.place_order(order.symbol, order.side, order.quantity, order.price)
    return info.to_dict()


@router.delete("/orders/{order_id}", dependencies=[Depends(require_operation("cancel_order"))])
async def cancel_order(
    order_id: str,
    symbol: str = Query(..., min_length=1),
    exchange: ExchangeAccess = Depends(get_exchange),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Cancel an order by client order id"""
    async with services.order_operation(order_id):
        info = await exchange.cancel_order(symbol, order_id)
    return info.to_dict()


@router.get("/orders/{order_id}", dependencies=[Depends(require_operation("get_order"))])
async def get_order(
    order_id: str,
    symbol: str = Query(..., min_length=1),
    exchange: ExchangeAccess = Depends(get_exchange),
) -> Dict[str, Any]:
    """Exchange-confirmed status of an order"""
    info = await exchange.get_order(symbol, order_id)
    return info.to_dict()
