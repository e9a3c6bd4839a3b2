"""Configuration loading and schema."""

from novella.config.loader import load_config
from novella.config.schema import AppConfig, AppConfigRoot

__all__ = ["AppConfig", "AppConfigRoot", "load_config"]
