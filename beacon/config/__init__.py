"""Agent configuration: YAML file merged over packaged defaults, CLI flags on top."""

from beacon.config.settings import (
    ConfigError,
    apply_cli_overrides,
    get_logging_config,
    get_server_config,
    read_config,
)

__all__ = [
    "ConfigError",
    "apply_cli_overrides",
    "get_logging_config",
    "get_server_config",
    "read_config",
]
