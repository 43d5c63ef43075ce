"""Configuration manager for the Ahmo Wall board core.

This module handles loading, validating, and persisting application configuration.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field


@dataclass
class StoreConfig:
    """Document store settings."""
    db_path: str = "~/.ahmo_wall/data/store.db"
    collection_prefix: str = "ahmo-wall_"


@dataclass
class StorageConfig:
    """Object storage settings."""
    media_root: str = "~/.ahmo_wall/media"
    base_url: str = ""
    max_attachment_size: int = 52428800  # 50 MB
    delete_token_ttl: int = 600
    admin_delete: bool = True


@dataclass
class AccessConfig:
    """Access control settings."""
    allowed_emails: list = field(default_factory=list)
    hash_passwords: bool = True


@dataclass
class BoardConfig:
    """Defaults applied to new boards, sections and posts."""
    default_title: str = "Untitled board"
    default_layout: str = "shelf"
    default_section_title: str = "Uncategorized"
    default_section_color: str = "#16a34a"
    new_section_color: str = "#6b7280"
    default_post_color: str = "#ffffff"
    default_sort: str = "manual"
    guest_display_name: str = "Guest"
    anonymous_display_name: str = "Anonymous"


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    log_path: str = "~/.ahmo_wall/logs/app.log"
    max_log_size: int = 10485760  # 10 MB
    backup_count: int = 5


class ConfigManager:
    """Manages application configuration with validation and persistence."""

    DEFAULT_CONFIG_PATH = Path.home() / ".ahmo_wall" / "config" / "settings.yaml"
    BUNDLED_CONFIG_PATH = Path(__file__).parent / "settings.yaml"
    ENV_PREFIX = "AHMO_WALL_"

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Optional custom path to configuration file.
                        If None, uses default user config path.
        """
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file with fallback to defaults."""
        default_config = self._load_yaml(self.BUNDLED_CONFIG_PATH)

        if self.config_path.exists():
            user_config = self._load_yaml(self.config_path)
            self._config = self._merge_configs(default_config, user_config)
        else:
            # Use defaults and save to user config location
            self._config = default_config
            self.save_config()

        self._apply_env_overrides()
        self._validate_config()

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """Load YAML configuration file.

        Args:
            path: Path to YAML file

        Returns:
            Dictionary containing configuration
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
                return config if config else {}
        except FileNotFoundError:
            return {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {path}: {e}")

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two configuration dictionaries.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary

        Returns:
            Merged configuration dictionary
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides to configuration.

        Environment variables should be prefixed with AHMO_WALL_ and use
        double underscores for nested keys. For example:
        AHMO_WALL_STORE__DB_PATH=/tmp/store.db
        """
        for env_key, env_value in os.environ.items():
            if not env_key.startswith(self.ENV_PREFIX):
                continue

            config_key = env_key[len(self.ENV_PREFIX):].lower()
            parts = config_key.split("__")

            if len(parts) != 2:
                continue

            section, key = parts

            if section not in self._config:
                continue

            self._config[section][key] = self._convert_env_value(key, env_value)

    def _convert_env_value(self, key: str, value: str) -> Any:
        """Convert environment variable string to appropriate type.

        Args:
            key: Configuration key the value is destined for
            value: String value from environment variable

        Returns:
            Converted value (list, int, bool, or str)
        """
        # Comma-separated lists
        if key == 'allowed_emails':
            return [item.strip() for item in value.split(',') if item.strip()]

        if value.lower() in ('true', 'yes'):
            return True
        if value.lower() in ('false', 'no'):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _validate_config(self) -> None:
        """Validate configuration has all required fields and correct types."""
        required_sections = ['store', 'storage', 'access', 'board', 'logging']

        for section in required_sections:
            if section not in self._config:
                raise ValueError(f"Missing required configuration section: {section}")

        store = self._config['store']
        self._validate_field(store, 'db_path', str)
        self._validate_field(store, 'collection_prefix', str)

        storage = self._config['storage']
        self._validate_field(storage, 'media_root', str)
        self._validate_field(storage, 'base_url', str)
        self._validate_field(storage, 'max_attachment_size', int, 1, 1073741824)
        self._validate_field(storage, 'delete_token_ttl', int, 1, 86400)
        self._validate_field(storage, 'admin_delete', bool)

        access = self._config['access']
        self._validate_field(access, 'allowed_emails', list)
        self._validate_field(access, 'hash_passwords', bool)

        board = self._config['board']
        for key in ('default_title', 'default_section_title', 'default_section_color',
                    'new_section_color', 'default_post_color', 'guest_display_name',
                    'anonymous_display_name'):
            self._validate_field(board, key, str)
        self._validate_field(board, 'default_layout', str)
        if board['default_layout'] not in ('shelf', 'wall', 'grid', 'stream'):
            raise ValueError(f"Field default_layout has unknown layout {board['default_layout']!r}")
        self._validate_field(board, 'default_sort', str)

        logging = self._config['logging']
        self._validate_field(logging, 'level', str)
        self._validate_field(logging, 'log_path', str)
        self._validate_field(logging, 'max_log_size', int, 1024, 104857600)
        self._validate_field(logging, 'backup_count', int, 0, 100)

    def _validate_field(self, section: Dict[str, Any], field: str,
                        expected_type: type, min_val: Optional[int] = None,
                        max_val: Optional[int] = None) -> None:
        """Validate a configuration field.

        Args:
            section: Configuration section dictionary
            field: Field name to validate
            expected_type: Expected type of the field
            min_val: Optional minimum value for numeric fields
            max_val: Optional maximum value for numeric fields

        Raises:
            ValueError: If validation fails
        """
        if field not in section:
            raise ValueError(f"Missing required field: {field}")

        value = section[field]

        # bool is an int subclass; keep them apart
        if expected_type is int and isinstance(value, bool):
            raise ValueError(f"Field {field} must be of type int, got bool")

        if not isinstance(value, expected_type):
            raise ValueError(
                f"Field {field} must be of type {expected_type.__name__}, "
                f"got {type(value).__name__}"
            )

        if expected_type in (int, float) and min_val is not None and value < min_val:
            raise ValueError(f"Field {field} must be >= {min_val}, got {value}")

        if expected_type in (int, float) and max_val is not None and value > max_val:
            raise ValueError(f"Field {field} must be <= {max_val}, got {value}")

    def save_config(self) -> None:
        """Save current configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.dump(self._config, f, default_flow_style=False, sort_keys=False)

    def get_config(self, section: str, key: Optional[str] = None) -> Any:
        """Get configuration value.

        Args:
            section: Configuration section name
            key: Optional key within section. If None, returns entire section.

        Returns:
            Configuration value

        Raises:
            KeyError: If section or key doesn't exist
        """
        if section not in self._config:
            raise KeyError(f"Configuration section not found: {section}")

        if key is None:
            return self._config[section]

        if key not in self._config[section]:
            raise KeyError(f"Configuration key not found: {section}.{key}")

        return self._config[section][key]

    def set_config(self, section: str, key: str, value: Any) -> None:
        """Set configuration value.

        Args:
            section: Configuration section name
            key: Key within section
            value: Value to set

        Raises:
            KeyError: If section doesn't exist
        """
        if section not in self._config:
            raise KeyError(f"Configuration section not found: {section}")

        self._config[section][key] = value

    def get_store_config(self) -> StoreConfig:
        """Get document store configuration as dataclass."""
        return StoreConfig(**self._config['store'])

    def get_storage_config(self) -> StorageConfig:
        """Get object storage configuration as dataclass."""
        return StorageConfig(**self._config['storage'])

    def get_access_config(self) -> AccessConfig:
        """Get access configuration as dataclass."""
        return AccessConfig(**self._config['access'])

    def get_board_config(self) -> BoardConfig:
        """Get board defaults as dataclass."""
        return BoardConfig(**self._config['board'])

    def get_logging_config(self) -> LoggingConfig:
        """Get logging configuration as dataclass."""
        return LoggingConfig(**self._config['logging'])

    def expand_path(self, path: str) -> Path:
        """Expand user home directory and environment variables in path.

        Args:
            path: Path string potentially containing ~ or environment variables

        Returns:
            Expanded Path object
        """
        return Path(os.path.expanduser(os.path.expandvars(path)))


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[Path] = None) -> ConfigManager:
    """Get or create global configuration manager instance.

    Args:
        config_path: Optional custom path to configuration file

    Returns:
        ConfigManager instance
    """
    global _config_manager

    if _config_manager is None:
        _config_manager = ConfigManager(config_path)

    return _config_manager
