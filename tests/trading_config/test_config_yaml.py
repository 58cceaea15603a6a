from decimal import Decimal

import pytest

from exchange_clients.exceptions import InvalidConfigurationError
from strategies.grid.config import DEFAULT_GRID_SETTINGS, GridConfiguration
from trading_config.config_yaml import (
    create_example_config,
    load_config_from_yaml,
    load_grid_configuration_file,
    merge_configs,
    save_grid_configuration,
    validate_config_file,
)

GRID_YAML = """\
strategy: grid
version: "1.0"
config:
  upper_limit: 30000.5
  lower_limit: 25000.1
  grid_number: 10
  initial_investment: 0.1
  stop_loss: 24000
  take_profit_level: 31000
"""


class TestYamlConfig:
    def test_floats_load_as_exact_decimals(self, tmp_path):
        path = tmp_path / "grid.yml"
        path.write_text(GRID_YAML)

        config = load_grid_configuration_file(path)

        assert config.upper_limit == Decimal("30000.5")
        assert config.lower_limit == Decimal("25000.1")
        assert config.initial_investment == Decimal("0.1")
        assert config.grid_number == 10

    def test_save_then_load_preserves_values(self, tmp_path):
        original = GridConfiguration(**{**DEFAULT_GRID_SETTINGS, "initial_investment": Decimal("1234.56")})
        path = tmp_path / "saved.yml"

        save_grid_configuration(original, path)
        loaded = load_grid_configuration_file(path)

        assert loaded == original
        assert load_config_from_yaml(path)["metadata"]["version"] == "1.0"

    def test_example_config_is_valid(self, tmp_path):
        path = create_example_config(tmp_path / "configs" / "example.yml")
        assert validate_config_file(path) == (True, None)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_grid_configuration_file(tmp_path / "absent.yml")
        valid, error = validate_config_file(tmp_path / "absent.yml")
        assert not valid
        assert "not found" in error

    @pytest.mark.parametrize(
        "content",
        [
            "just a string",
            "config: {}\n",
            "strategy: grid\n",
            "strategy: funding_arb\nconfig:\n  grid_number: 3\n",
            "strategy: grid\nconfig: [unclosed\n",
            GRID_YAML.replace("grid_number: 10", "grid_number: 0"),
        ],
    )
    def test_invalid_files(self, tmp_path, content):
        path = tmp_path / "bad.yml"
        path.write_text(content)
        with pytest.raises(InvalidConfigurationError):
            load_grid_configuration_file(path)

    def test_merge_ignores_none(self):
        merged = merge_configs({"grid_number": 10, "stop_loss": 1}, {"grid_number": 5, "stop_loss": None})
        assert merged == {"grid_number": 5, "stop_loss": 1}
