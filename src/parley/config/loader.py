"""Configuration loading and validation."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from parley.config.schema import ParleyConfig

DEFAULT_CONFIG_PATH = Path.home() / ".parley" / "parley.yaml"


class ConfigError(Exception):
    """Configuration loading or validation error."""


def load_config(path: Path | None = None) -> ParleyConfig:
    """Load and validate parley configuration from a YAML file.

    Args:
        path: Path to config file. If None, tries default location.
              If file doesn't exist, returns default config.

    Returns:
        Validated configuration object

    Raises:
        ConfigError: If config file exists but is invalid
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH

    # Zero-config mode: if file doesn't exist, use all defaults
    if not path.exists():
        return ParleyConfig()

    try:
        with open(path) as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            return ParleyConfig()

        return ParleyConfig(**config_data)

    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e
    except (OSError, TypeError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def save_config(config: ParleyConfig, path: str | Path | None = None) -> None:
    """Save configuration to a YAML file.

    Args:
        config: Configuration object to save
        path: Destination path. If None, uses default location.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
    elif isinstance(path, str):
        path = Path(path)

    path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump(exclude_none=True)

    with open(path, "w") as f:
        yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)
