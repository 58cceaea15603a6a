"""
Order Ledger - lifecycle tracking for grid orders.

State machine per order::

    PENDING -> OPEN -> FILLED | CANCELLED
    PENDING -> FILLED | CANCELLED | REJECTED

Terminal states are final. Transitions are applied only from statuses the
exchange confirmed; nothing is inferred from local price movement.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Callable, Dict, List, Optional, Set, Tuple

from exchange_clients.base_client import ExchangeAccess
from exchange_clients.base_models import OrderInfo, OrderSide, OrderStatus, RetryPolicy, call_with_retry
from exchange_clients.exceptions import (
    AuthenticationError,
    OperationInProgressError,
    OrderNotFoundError,
    TradingError,
)
from helpers.unified_logger import get_strategy_logger

from .exceptions import InvalidOrderTransitionError, UnknownOrderError
from .models import Order, OrderIntent

_ALLOWED_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.OPEN, OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED}
    ),
    OrderStatus.OPEN: frozenset({OrderStatus.FILLED, OrderStatus.CANCELLED}),
}


class OrderLedger:
    """
    Owns every order record of a session.

    Records are immutable ``Order`` values; each transition stores a new value
    under the same ``order_id``. The engine keeps ids only.

    ``lock`` serializes state changes made from coroutines (reconciliation);
    the engine passes its own state lock so both share one critical section.
    Synchronous methods never acquire it; callers that hold it may call them.
    """

    def __init__(
        self,
        lock: Optional[asyncio.Lock] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._orders: Dict[str, Order] = {}
        self._in_flight: Set[str] = set()
        self._querying: Set[str] = set()
        self._clock = clock
        self.lock = lock or asyncio.Lock()
        self.logger = get_strategy_logger("grid_ledger")

    # ========================================================================
    # Recording
    # ========================================================================

    def submit(self, intent: OrderIntent) -> Order:
        """Record a new intent as PENDING."""
        if intent.order_id in self._orders:
            raise InvalidOrderTransitionError(f"Order {intent.order_id} is already recorded")
        order = Order.from_intent(intent, self._clock())
        self._orders[order.order_id] = order
        self.logger.debug(
            f"[LEDGER] {order.order_id} PENDING {order.side.value} {order.quantity} @ {order.price}"
        )
        return order

    def transition(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        exchange_order_id: Optional[str] = None,
        filled_quantity: Optional[Decimal] = None,
    ) -> Order:
        """
        Move an order to ``status``.

        A same-state confirmation of a non-terminal order only refreshes the
        exchange id and fill data.

        Raises:
            UnknownOrderError: no such order
            InvalidOrderTransitionError: leaving a terminal state (same-state
                included), or an undefined transition such as OPEN -> PENDING
        """
        current = self.get(order_id)
        if current is None:
            raise UnknownOrderError(f"Order {order_id} is not in the ledger")

        if current.is_terminal:
            raise InvalidOrderTransitionError(
                f"Order {order_id} is {current.status.value}; terminal orders cannot change "
                f"(requested {status.value})"
            )

        if status != current.status and status not in _ALLOWED_TRANSITIONS[current.status]:
            raise InvalidOrderTransitionError(
                f"Order {order_id}: transition {current.status.value} -> {status.value} is not allowed"
            )

        changes = {"status": status, "updated_at": self._clock()}
        if exchange_order_id is not None:
            changes["exchange_order_id"] = exchange_order_id
        if filled_quantity is not None:
            changes["filled_quantity"] = filled_quantity
        updated = current.evolve(**changes)
        self._orders[order_id] = updated

        if status != current.status:
            self.logger.info(
                f"[LEDGER] {order_id} {current.status.value} -> {status.value} "
                f"({updated.side.value} {updated.quantity} @ {updated.price})"
            )
        return updated

    def apply(self, order_id: str, info: OrderInfo) -> Order:
        """Apply an exchange-confirmed ``OrderInfo`` to the record ``order_id``."""
        return self.transition(
            order_id,
            info.status,
            exchange_order_id=info.exchange_order_id,
            filled_quantity=info.filled_quantity,
        )

    # ========================================================================
    # In-flight guard
    # ========================================================================

    def claim(self, order_id: str) -> None:
        """
        Take the single in-flight slot for ``order_id``.

        Raises:
            OperationInProgressError: another status-changing call is outstanding
        """
        if order_id in self._in_flight:
            raise OperationInProgressError(
                f"A status-changing operation for order {order_id} is already in progress"
            )
        self._in_flight.add(order_id)

    def release(self, order_id: str) -> None:
        self._in_flight.discard(order_id)

    @asynccontextmanager
    async def operation(self, order_id: str) -> AsyncIterator[None]:
        """
        Hold the in-flight slot for ``order_id`` for the duration of the block.

        A second entry for the same id while the first is outstanding fails
        immediately with ``OperationInProgressError``; it is never queued.
        """
        self.claim(order_id)
        try:
            yield
        finally:
            self.release(order_id)

    def is_in_flight(self, order_id: str) -> bool:
        return order_id in self._in_flight

    # ========================================================================
    # Reconciliation
    # ========================================================================

    async def reconcile(
        self,
        exchange: ExchangeAccess,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        on_error: Optional[Callable[[Order, TradingError], None]] = None,
    ) -> List[Order]:
        """
        Query every non-terminal order and apply the statuses the exchange confirms.

        Orders with an operation in flight (including placements that have not
        returned yet) are skipped this round. The status query is read-only and
        does not take the in-flight slot, so a cancel issued meanwhile proceeds.
        A PENDING order whose placement
        ended without an answer is resolved here: the exchange either reports
        it, or answers "unknown order" and it becomes REJECTED.

        Returns:
            Orders that became FILLED during this pass.

        Raises:
            AuthenticationError: credentials rejected; the pass stops
        """
        policy = retry_policy or RetryPolicy(max_attempts=1)
        newly_filled: List[Order] = []

        for order in self.active_orders():
            if self.is_in_flight(order.order_id) or order.order_id in self._querying:
                continue

            info: Optional[OrderInfo] = None
            self._querying.add(order.order_id)
            try:
                info = await call_with_retry(policy, exchange.get_order, order.symbol, order.order_id)
            except AuthenticationError:
                raise
            except OrderNotFoundError as exc:
                if order.status != OrderStatus.PENDING:
                    self.logger.warning(f"[LEDGER] Exchange no longer reports OPEN order {order.order_id}")
                    if on_error is not None:
                        on_error(order, exc)
                    continue
            except TradingError as exc:
                self.logger.warning(f"[LEDGER] Status query for {order.order_id} failed: {exc}")
                if on_error is not None:
                    on_error(order, exc)
                continue
            finally:
                self._querying.discard(order.order_id)

            async with self.lock:
                latest = self.get(order.order_id)
                if latest is None or latest.is_terminal:
                    continue
                try:
                    if info is None:
                        updated = self.transition(order.order_id, OrderStatus.REJECTED)
                    else:
                        updated = self.apply(order.order_id, info)
                except InvalidOrderTransitionError as exc:
                    self.logger.warning(f"[LEDGER] Ignoring exchange status for {order.order_id}: {exc}")
                    if on_error is not None:
                        on_error(order, exc)
                    continue
            if updated.status == OrderStatus.FILLED:
                newly_filled.append(updated)

        return newly_filled

    # ========================================================================
    # Queries
    # ========================================================================

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def all_orders(self) -> Tuple[Order, ...]:
        return tuple(self._orders.values())

    def active_orders(self) -> Tuple[Order, ...]:
        """PENDING and OPEN orders."""
        return tuple(order for order in self._orders.values() if not order.is_terminal)

    def open_orders(self) -> Tuple[Order, ...]:
        return tuple(o for o in self._orders.values() if o.status == OrderStatus.OPEN)

    def completed_orders(self) -> Tuple[Order, ...]:
        return tuple(order for order in self._orders.values() if order.is_terminal)

    def has_resting(self, side: OrderSide, price: Decimal) -> bool:
        """True if a PENDING or OPEN order of ``side`` already sits at ``price``."""
        return any(order.side == side and order.price == price for order in self.active_orders())

    def __len__(self) -> int:
        return len(self._orders)
