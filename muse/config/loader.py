"""Configuration loading and saving."""

import json
from pathlib import Path

from loguru import logger

from muse.config.schema import Config


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".muse" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from a JSON file, falling back to defaults.

    Environment variables (``MUSE_*``) fill in sections the file leaves unset.

    Args:
        config_path: Optional path to the config file.

    Returns:
        Loaded configuration.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Config(**data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Save configuration to a JSON file using camelCase aliases."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    return path
