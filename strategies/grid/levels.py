"""
Grid level computation.

Pure functions, no I/O. Levels are regenerated from the configuration on
every change instead of being patched.
"""

from decimal import Decimal
from typing import Sequence, Tuple

from exchange_clients.exceptions import InvalidConfigurationError

from .config import GridConfiguration


def _check(config: GridConfiguration) -> None:
    # Also guards instances built with model_construct(), which skips validation
    if config.grid_number < 1:
        raise InvalidConfigurationError(f"grid_number must be >= 1, got {config.grid_number}")
    if config.upper_limit <= config.lower_limit:
        raise InvalidConfigurationError(
            f"upper_limit ({config.upper_limit}) must be greater than lower_limit ({config.lower_limit})"
        )


def grid_interval(config: GridConfiguration) -> Decimal:
    """Distance between two adjacent levels."""
    _check(config)
    return (config.upper_limit - config.lower_limit) / Decimal(config.grid_number)


def compute_levels(config: GridConfiguration) -> Tuple[Decimal, ...]:
    """
    Ascending grid prices, ``grid_number + 1`` of them.

    ``level[i] = lower_limit + i * interval`` with one shared interval, so the
    rounding error is per point rather than accumulated. The last level is
    ``upper_limit`` itself.
    """
    interval = grid_interval(config)
    levels = [config.lower_limit + interval * i for i in range(config.grid_number)]
    levels.append(config.upper_limit)
    return tuple(levels)


def order_quantity(config: GridConfiguration, level_price: Decimal) -> Decimal:
    """Quantity for an order at ``level_price``: the investment split evenly across grids."""
    allocation = config.initial_investment / Decimal(config.grid_number)
    if config.quantity_denomination == "quote":
        return allocation / level_price
    return allocation


def crossed_levels(
    levels: Sequence[Decimal],
    previous_price: Decimal,
    current_price: Decimal,
) -> Tuple[Tuple[Decimal, ...], Tuple[Decimal, ...]]:
    """
    Levels crossed between two observations as ``(upward, downward)``.

    Upward: ``previous < level <= current``. Downward: ``previous > level >= current``.
    """
    if current_price > previous_price:
        return tuple(level for level in levels if previous_price < level <= current_price), ()
    if current_price < previous_price:
        return (), tuple(level for level in levels if current_price <= level < previous_price)
    return (), ()
