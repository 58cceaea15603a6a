"""
Grid Trading Data Models

Orders, intents and the read-only snapshot published to the UI side.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from exchange_clients.base_models import Balance, ErrorInfo, OrderSide, OrderStatus


class EngineStatus(Enum):
    """Engine run states."""
    IDLE = "idle"          # Configured, timers not started
    RUNNING = "running"    # Polling and placing orders
    HALTED = "halted"      # Bracket breach or fatal error; operator restart required
    STOPPED = "stopped"    # Operator stop


class HaltReason(str, Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    AUTHENTICATION_FAILED = "authentication_failed"
    OPERATOR_STOP = "operator_stop"


@dataclass(frozen=True)
class OrderIntent:
    """An order the engine wants placed because a level was crossed."""
    order_id: str
    symbol: str
    side: OrderSide
    price: Optional[Decimal]
    quantity: Decimal
    level_index: Optional[int] = None


@dataclass(frozen=True)
class Order:
    """Ledger record of one order. Replaced, never mutated, on each transition."""
    order_id: str
    symbol: str
    side: OrderSide
    price: Optional[Decimal]
    quantity: Decimal
    status: OrderStatus = OrderStatus.PENDING
    exchange_order_id: Optional[str] = None
    filled_quantity: Decimal = Decimal("0")
    level_index: Optional[int] = None
    created_at: float = 0.0
    updated_at: float = 0.0

    @classmethod
    def from_intent(cls, intent: OrderIntent, now: float) -> "Order":
        return cls(
            order_id=intent.order_id,
            symbol=intent.symbol,
            side=intent.side,
            price=intent.price,
            quantity=intent.quantity,
            level_index=intent.level_index,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_acknowledged(self) -> bool:
        """The exchange has confirmed it knows this order."""
        return self.status != OrderStatus.PENDING

    def evolve(self, **changes) -> "Order":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            'order_id': self.order_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'price': str(self.price) if self.price is not None else None,
            'quantity': str(self.quantity),
            'status': self.status.value,
            'exchange_order_id': self.exchange_order_id,
            'filled_quantity': str(self.filled_quantity),
            'level_index': self.level_index,
        }


@dataclass(frozen=True)
class HaltReport:
    """Outcome of a halt/stop: what was cancelled and what failed."""
    reason: str
    cancelled_order_ids: Tuple[str, ...] = ()
    aborted_placements: int = 0
    failures: Tuple[Tuple[str, ErrorInfo], ...] = ()
    liquidation_order_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.failures

    def merged_with(self, later: "HaltReport") -> "HaltReport":
        """Combine with a later cleanup pass; the later pass's failures are the current ones."""
        return HaltReport(
            reason=self.reason,
            cancelled_order_ids=self.cancelled_order_ids + later.cancelled_order_ids,
            aborted_placements=self.aborted_placements + later.aborted_placements,
            failures=later.failures,
            liquidation_order_id=self.liquidation_order_id or later.liquidation_order_id,
        )

    def to_dict(self) -> dict:
        return {
            'reason': self.reason,
            'cancelled_order_ids': list(self.cancelled_order_ids),
            'aborted_placements': self.aborted_placements,
            'failures': [{'order_id': oid, **err.to_dict()} for oid, err in self.failures],
            'liquidation_order_id': self.liquidation_order_id,
            'success': self.success,
        }


@dataclass(frozen=True)
class EngineSnapshot:
    """Immutable view of the engine published after every state change."""
    symbol: str
    levels: Tuple[Decimal, ...]
    status: EngineStatus
    last_price: Optional[Decimal] = None
    balance: Optional[Balance] = None
    open_orders: Tuple[Order, ...] = ()
    completed_orders: Tuple[Order, ...] = ()
    halt_reason: Optional[str] = None
    last_error: Optional[ErrorInfo] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_running(self) -> bool:
        return self.status == EngineStatus.RUNNING

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'levels': [str(level) for level in self.levels],
            'status': self.status.value,
            'last_price': str(self.last_price) if self.last_price is not None else None,
            'balance': self.balance.to_dict() if self.balance else None,
            'open_orders': [order.to_dict() for order in self.open_orders],
            'completed_orders': [order.to_dict() for order in self.completed_orders],
            'halt_reason': self.halt_reason,
            'last_error': self.last_error.to_dict() if self.last_error else None,
            'timestamp': self.timestamp.isoformat(),
        }


def orders_by_status(orders: List[Order], *statuses: OrderStatus) -> Tuple[Order, ...]:
    wanted = set(statuses)
    return tuple(order for order in orders if order.status in wanted)
