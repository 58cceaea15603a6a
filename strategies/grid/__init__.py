"""
Grid Trading Engine

A ladder of evenly spaced price levels between a lower and an upper limit:
- Upward level crossings place SELL orders, downward crossings place BUY orders
- Stop-loss / take-profit bracket halts the run and cancels resting orders
- Every order is tracked by the ledger from PENDING to a terminal state
"""

from .config import DEFAULT_GRID_SETTINGS, GridConfiguration, load_grid_configuration
from .engine import GridEngine
from .exceptions import EngineHaltedError, InvalidOrderTransitionError, UnknownOrderError
from .ledger import OrderLedger
from .levels import compute_levels, crossed_levels, grid_interval, order_quantity
from .models import EngineSnapshot, EngineStatus, HaltReason, HaltReport, Order, OrderIntent

__all__ = [
    'DEFAULT_GRID_SETTINGS',
    'GridConfiguration',
    'load_grid_configuration',
    'GridEngine',
    'OrderLedger',
    'compute_levels',
    'crossed_levels',
    'grid_interval',
    'order_quantity',
    'EngineSnapshot',
    'EngineStatus',
    'HaltReason',
    'HaltReport',
    'Order',
    'OrderIntent',
    'EngineHaltedError',
    'InvalidOrderTransitionError',
    'UnknownOrderError',
]
