"""
Trading Configuration Management Module

Main Components:
- settings: deployment settings from environment / .env (pydantic-settings)
- config_yaml: YAML grid configuration loading, saving and validation
"""

from .config_yaml import (
    create_example_config,
    load_config_from_yaml,
    load_grid_configuration_file,
    merge_configs,
    save_config_to_yaml,
    save_grid_configuration,
    validate_config_file,
)
from .settings import PROXY_OPERATIONS, BotSettings, ProxySettings

__all__ = [
    'BotSettings',
    'ProxySettings',
    'PROXY_OPERATIONS',
    'create_example_config',
    'load_config_from_yaml',
    'load_grid_configuration_file',
    'merge_configs',
    'save_config_to_yaml',
    'save_grid_configuration',
    'validate_config_file',
]
