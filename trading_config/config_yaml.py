"""
YAML Configuration File Support

Handles loading and saving grid configurations to/from YAML files.

File layout::

    strategy: grid
    created_at: 2024-01-01T00:00:00
    version: "1.0"
    config:
      upper_limit: 30000
      lower_limit: 25000
      grid_number: 10
      initial_investment: 1000
      stop_loss: 24000
      take_profit_level: 31000

Floats are read as ``Decimal`` from their text so ``0.1`` stays ``0.1``.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from exchange_clients.exceptions import InvalidConfigurationError
from strategies.grid.config import DEFAULT_GRID_SETTINGS, GridConfiguration, load_grid_configuration

SUPPORTED_STRATEGIES = ("grid",)


# ============================================================================
# YAML Loader / Dumper (Decimal round-trip)
# ============================================================================

class DecimalSafeLoader(yaml.SafeLoader):
    """SafeLoader that builds ``Decimal`` for float scalars."""


class DecimalSafeDumper(yaml.SafeDumper):
    """SafeDumper that writes ``Decimal`` as plain numbers."""


def decimal_representer(dumper, data):
    """Custom representer for Decimal type."""
    return dumper.represent_scalar('tag:yaml.org,2002:float', format(data, 'f'))


def decimal_constructor(loader, node):
    """Custom constructor for Decimal type."""
    value = loader.construct_scalar(node)
    return Decimal(value)


DecimalSafeDumper.add_representer(Decimal, decimal_representer)
DecimalSafeLoader.add_constructor('tag:yaml.org,2002:float', decimal_constructor)


# ============================================================================
# YAML Config Operations
# ============================================================================

def save_config_to_yaml(strategy_name: str, config: Dict[str, Any], file_path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        strategy_name: Name of the strategy
        config: Configuration dictionary
        file_path: Path to save to
    """
    full_config = {
        "strategy": strategy_name,
        "created_at": datetime.now().isoformat(),
        "version": "1.0",
        "config": config,
    }

    with open(file_path, 'w') as f:
        yaml.dump(
            full_config,
            f,
            Dumper=DecimalSafeDumper,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            indent=2,
        )


def load_config_from_yaml(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Returns:
        Dictionary with 'strategy', 'config' and 'metadata' keys

    Raises:
        FileNotFoundError: If file doesn't exist
        InvalidConfigurationError: If YAML or its structure is invalid
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            full_config = yaml.load(f, Loader=DecimalSafeLoader)
    except yaml.YAMLError as exc:
        raise InvalidConfigurationError(f"Invalid YAML in {file_path}: {exc}") from exc

    if not isinstance(full_config, dict):
        raise InvalidConfigurationError("Invalid config file: must be a YAML dictionary")

    if "strategy" not in full_config:
        raise InvalidConfigurationError("Invalid config file: missing 'strategy' field")

    if not isinstance(full_config.get("config"), dict):
        raise InvalidConfigurationError("Invalid config file: missing 'config' mapping")

    return {
        "strategy": full_config["strategy"],
        "config": full_config["config"],
        "metadata": {
            "created_at": full_config.get("created_at"),
            "version": full_config.get("version", "1.0"),
        },
    }


def load_grid_configuration_file(file_path: Union[str, Path]) -> GridConfiguration:
    """
    Load and validate a grid configuration file.

    Raises:
        FileNotFoundError: If file doesn't exist
        InvalidConfigurationError: wrong strategy, bad structure or invalid values
    """
    loaded = load_config_from_yaml(file_path)
    strategy_name = str(loaded["strategy"]).lower()
    if strategy_name not in SUPPORTED_STRATEGIES:
        raise InvalidConfigurationError(
            f"Unsupported strategy: {strategy_name}. Available: {', '.join(SUPPORTED_STRATEGIES)}"
        )
    return load_grid_configuration(loaded["config"])


def save_grid_configuration(config: GridConfiguration, file_path: Union[str, Path]) -> None:
    save_config_to_yaml("grid", config.model_dump(), Path(file_path))


def validate_config_file(file_path: Union[str, Path]) -> Tuple[bool, Optional[str]]:
    """
    Validate a config file.

    Returns:
        (is_valid, error_message)
    """
    try:
        load_grid_configuration_file(file_path)
    except (FileNotFoundError, InvalidConfigurationError) as e:
        return False, str(e)
    return True, None


def merge_configs(base_config: Dict, overrides: Dict) -> Dict:
    """
    Merge two configurations (for CLI override support).

    Only overrides that are not None replace base values.
    """
    merged = base_config.copy()

    for key, value in overrides.items():
        if value is not None:
            merged[key] = value

    return merged


def create_example_config(file_path: Union[str, Path] = Path("configs") / "example_grid.yml") -> Path:
    """Write a grid config with the default settings, as a starting template."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    save_grid_configuration(GridConfiguration(**DEFAULT_GRID_SETTINGS), file_path)
    return file_path


# ============================================================================
# Main Entry Point (for example generation)
# ============================================================================

if __name__ == "__main__":
    path = create_example_config()
    print(f"✓ Example config created: {path}")
    print(f"  python runbot.py --config {path}")
