"""
Grid Trading Configuration

Immutable pydantic model describing one grid: price range, number of grids,
capital and the stop-loss / take-profit bracket.
"""

from decimal import Decimal
from typing import Any, Dict, List, Literal, Mapping

from pydantic import BaseModel, Field, ValidationError, model_validator

from exchange_clients.exceptions import InvalidConfigurationError

DEFAULT_GRID_SETTINGS: Dict[str, Any] = {
    "upper_limit": Decimal("30000"),
    "lower_limit": Decimal("25000"),
    "grid_number": 10,
    "initial_investment": Decimal("1000"),
    "stop_loss": Decimal("24000"),
    "take_profit_level": Decimal("31000"),
}


class GridConfiguration(BaseModel):
    """Configuration for one grid trading session."""

    upper_limit: Decimal = Field(..., description="Highest grid level (price)")
    lower_limit: Decimal = Field(..., description="Lowest grid level (price)")
    grid_number: int = Field(..., description="Number of intervals; levels = grid_number + 1")
    initial_investment: Decimal = Field(..., description="Capital spread across the grid")
    stop_loss: Decimal = Field(..., description="Halt and cancel when price falls to this level")
    take_profit_level: Decimal = Field(..., description="Halt and cancel when price rises to this level")
    quantity_denomination: Literal["base", "quote"] = Field(
        "base",
        description="'base': per-level quantity is investment/grid_number; "
                    "'quote': that amount is converted at the level price",
    )

    @model_validator(mode="after")
    def validate_range(self) -> "GridConfiguration":
        """Reject invalid ranges outright; nothing is clamped."""
        if self.upper_limit <= self.lower_limit:
            raise InvalidConfigurationError(
                f"upper_limit ({self.upper_limit}) must be greater than lower_limit ({self.lower_limit})"
            )
        if self.grid_number < 1:
            raise InvalidConfigurationError(f"grid_number must be >= 1, got {self.grid_number}")
        if self.initial_investment < 0:
            raise InvalidConfigurationError(
                f"initial_investment must be >= 0, got {self.initial_investment}"
            )
        return self

    def bracket_issues(self) -> List[str]:
        """Describe a stop-loss / take-profit that does not bracket the grid range."""
        issues = []
        if self.stop_loss >= self.lower_limit:
            issues.append(
                f"stop_loss ({self.stop_loss}) is not below lower_limit ({self.lower_limit})"
            )
        if self.take_profit_level <= self.upper_limit:
            issues.append(
                f"take_profit_level ({self.take_profit_level}) is not above upper_limit ({self.upper_limit})"
            )
        return issues

    def with_updates(self, **changes: Any) -> "GridConfiguration":
        """Return a validated copy with ``changes`` applied."""
        return load_grid_configuration({**self.model_dump(), **changes})

    class Config:
        frozen = True
        extra = "forbid"


def load_grid_configuration(data: Mapping[str, Any]) -> GridConfiguration:
    """
    Build a configuration from plain data (YAML, JSON, settings UI).

    Raises:
        InvalidConfigurationError: for type errors as well as range violations
    """
    try:
        return GridConfiguration(**dict(data))
    except ValidationError as exc:
        raise InvalidConfigurationError(f"Invalid grid configuration: {exc}") from exc
