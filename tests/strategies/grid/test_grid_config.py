from decimal import Decimal

import pytest

from exchange_clients.exceptions import InvalidConfigurationError
from strategies.grid.config import DEFAULT_GRID_SETTINGS, GridConfiguration, load_grid_configuration


class TestGridConfiguration:
    def test_defaults_load(self):
        config = load_grid_configuration(DEFAULT_GRID_SETTINGS)
        assert config.grid_number == 10
        assert config.quantity_denomination == "base"
        assert config.bracket_issues() == []

    def test_strings_are_parsed_to_decimal(self):
        config = load_grid_configuration({**DEFAULT_GRID_SETTINGS, "upper_limit": "30000.5"})
        assert config.upper_limit == Decimal("30000.5")

    @pytest.mark.parametrize(
        "changes",
        [
            {"upper_limit": Decimal("25000")},
            {"lower_limit": Decimal("31000")},
            {"grid_number": 0},
            {"initial_investment": Decimal("-1")},
        ],
    )
    def test_invalid_values_are_rejected(self, changes):
        with pytest.raises(InvalidConfigurationError):
            load_grid_configuration({**DEFAULT_GRID_SETTINGS, **changes})

    def test_type_errors_are_wrapped(self):
        with pytest.raises(InvalidConfigurationError):
            load_grid_configuration({**DEFAULT_GRID_SETTINGS, "grid_number": "many"})

    def test_unknown_keys_are_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            load_grid_configuration({**DEFAULT_GRID_SETTINGS, "leverage": 5})

    def test_bracket_inside_range_is_reported_not_rejected(self):
        config = load_grid_configuration(
            {**DEFAULT_GRID_SETTINGS, "stop_loss": Decimal("26000"), "take_profit_level": Decimal("29000")}
        )
        issues = config.bracket_issues()
        assert len(issues) == 2
        assert "stop_loss" in issues[0]
        assert "take_profit_level" in issues[1]

    def test_with_updates_returns_validated_copy(self):
        config = load_grid_configuration(DEFAULT_GRID_SETTINGS)
        updated = config.with_updates(grid_number=5)

        assert updated.grid_number == 5
        assert config.grid_number == 10
        with pytest.raises(InvalidConfigurationError):
            config.with_updates(grid_number=-2)

    def test_configuration_is_immutable(self):
        config = load_grid_configuration(DEFAULT_GRID_SETTINGS)
        with pytest.raises(Exception):
            config.grid_number = 3
        assert isinstance(config, GridConfiguration)
