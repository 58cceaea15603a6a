"""Pytest configuration for grid bot tests."""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from exchange_clients.base_client import ExchangeAccess  # noqa: E402
from exchange_clients.base_models import Balance, OrderInfo, OrderSide, OrderStatus, RetryPolicy  # noqa: E402
from exchange_clients.exceptions import OrderNotFoundError  # noqa: E402
from strategies.grid.config import GridConfiguration  # noqa: E402


class FakeExchange(ExchangeAccess):
    """
    In-memory ``ExchangeAccess``.

    ``failures[operation]`` holds exceptions raised, in order, by the next
    calls of that operation. ``gates[operation]`` (an ``asyncio.Event``)
    makes calls wait until the test sets it.
    """

    def __init__(self, price: Decimal = Decimal("27000"), balance: Optional[Balance] = None):
        self.price = price
        self.balance = balance or Balance(base=Decimal("1"), quote=Decimal("10000"))
        self.orders: Dict[str, OrderInfo] = {}
        self.placed: List[OrderInfo] = []
        self.cancelled: List[str] = []
        self.calls: Dict[str, int] = {}
        self.failures: Dict[str, List[Exception]] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.connected = False
        self.credentials_valid = True

    async def _enter(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        gate = self.gates.get(operation)
        if gate is not None:
            await gate.wait()
        queue = self.failures.get(operation)
        if queue:
            raise queue.pop(0)

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    def get_exchange_name(self) -> str:
        return "fake"

    async def get_price(self, symbol: str) -> Decimal:
        await self._enter("get_price")
        return self.price

    async def get_balance(self) -> Balance:
        await self._enter("get_balance")
        return self.balance

    async def validate_credentials(self) -> bool:
        await self._enter("validate_credentials")
        return self.credentials_valid

    async def place_order(self, symbol, side, quantity, price=None, client_order_id=None) -> OrderInfo:
        await self._enter("place_order")
        order_id = client_order_id or f"fake-{len(self.placed) + 1}"
        info = OrderInfo(
            order_id=order_id,
            symbol=symbol,
            side=OrderSide(side),
            quantity=quantity,
            price=price,
            status=OrderStatus.OPEN if price is not None else OrderStatus.FILLED,
            exchange_order_id=str(1000 + len(self.placed)),
            filled_quantity=Decimal("0") if price is not None else quantity,
        )
        self.orders[order_id] = info
        self.placed.append(info)
        return info

    async def cancel_order(self, symbol: str, order_id: str) -> OrderInfo:
        await self._enter("cancel_order")
        info = self.orders.get(order_id)
        if info is None or info.status != OrderStatus.OPEN:
            raise OrderNotFoundError(f"Unknown order {order_id}")
        info = OrderInfo(**{**info.__dict__, "status": OrderStatus.CANCELLED})
        self.orders[order_id] = info
        self.cancelled.append(order_id)
        return info

    async def get_order(self, symbol: str, order_id: str) -> OrderInfo:
        await self._enter("get_order")
        info = self.orders.get(order_id)
        if info is None:
            raise OrderNotFoundError(f"Unknown order {order_id}")
        return info

    def fill(self, order_id: str) -> None:
        """Simulate a full fill on the exchange side."""
        info = self.orders[order_id]
        self.orders[order_id] = OrderInfo(
            **{**info.__dict__, "status": OrderStatus.FILLED, "filled_quantity": info.quantity}
        )


@pytest.fixture
def fake_exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def grid_config() -> GridConfiguration:
    return GridConfiguration(
        upper_limit=Decimal("30000"),
        lower_limit=Decimal("25000"),
        grid_number=10,
        initial_investment=Decimal("1000"),
        stop_loss=Decimal("24000"),
        take_profit_level=Decimal("31000"),
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Three attempts without backoff sleeps."""
    return RetryPolicy(max_attempts=3, min_wait=0, max_wait=0, deadline=30)
