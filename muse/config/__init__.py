"""Configuration module for muse."""

from muse.config.loader import get_config_path, load_config, save_config
from muse.config.schema import Config

__all__ = ["Config", "get_config_path", "load_config", "save_config"]
