"""
Trading Strategies Module

- grid: grid trading engine (levels, order ledger, orchestration)
"""

from .grid import GridConfiguration, GridEngine, OrderLedger

__all__ = [
    'GridConfiguration',
    'GridEngine',
    'OrderLedger',
]
