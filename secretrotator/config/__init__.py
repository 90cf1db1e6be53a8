"""Configuration management for secret-rotator."""

from .manager import ConfigManager, RotatorConfig
from .schemas import CONFIG_SCHEMA

__all__ = ["ConfigManager", "RotatorConfig", "CONFIG_SCHEMA"]
