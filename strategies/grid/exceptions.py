"""
Grid engine logic errors.
"""

from exchange_clients.exceptions import TradingError


class InvalidOrderTransitionError(TradingError):
    """An order status change that the lifecycle does not allow (e.g. leaving FILLED)."""

    kind = "InvalidOrderTransition"


class UnknownOrderError(TradingError):
    """The ledger has no record of the order id."""

    kind = "UnknownOrder"


class EngineHaltedError(TradingError):
    """The engine is halted or stopped and refuses new order intents."""

    kind = "EngineHalted"


__all__ = [
    "InvalidOrderTransitionError",
    "UnknownOrderError",
    "EngineHaltedError",
]
