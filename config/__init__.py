"""Configuration management module for the Ahmo Wall board core."""

from .config_manager import ConfigManager, get_config_manager

__all__ = ['ConfigManager', 'get_config_manager']
