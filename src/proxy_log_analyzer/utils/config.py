import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .constants import DEFAULT_CONFIG, ENV_VARS
from .helpers import merge_dicts, parse_bool

logger = logging.getLogger(__name__)


class Config:
    """Configuration management for the proxy log analyzer"""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration.

        Args:
            config_path: Optional path to configuration file
        """
        self._config = deepcopy(DEFAULT_CONFIG)

        # Load configuration from file if provided
        if config_path:
            self.load_file(config_path)

        # Apply environment variables
        self.load_environment()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key (dot notation supported)
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

            if value is None:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value.

        Args:
            key: Configuration key (dot notation supported)
            value: Value to set
        """
        keys = key.split(".")
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def load_file(self, config_path: Union[str, Path]) -> None:
        """Load configuration from a JSON file.

        Args:
            config_path: Path to configuration file

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is invalid
        """
        path = Path(config_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                file_config = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid configuration file: {e}") from e

        self._config = merge_dicts(self._config, file_config)

    def load_environment(self) -> None:
        """Load configuration from environment variables"""
        for env_var, (config_key, type_func) in ENV_VARS.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            try:
                typed_value = parse_bool(value) if type_func is bool else type_func(value)
            except (ValueError, TypeError):
                logger.warning(f"Invalid environment variable {env_var}: {value}")
                continue
            self.set(config_key, typed_value)

    def update(self, config: Dict[str, Any]) -> None:
        """Update configuration with dictionary.

        Args:
            config: Configuration dictionary to merge
        """
        self._config = merge_dicts(self._config, config)

    def as_dict(self) -> Dict[str, Any]:
        """Get complete configuration as dictionary"""
        return deepcopy(self._config)

    def validate(self) -> bool:
        """Validate configuration.

        Returns:
            True if configuration is valid

        Raises:
            ValueError: If configuration is invalid
        """
        required_fields = [
            "database.url",
            "auth.session_secret",
            "llm.model",
            "llm.base_url",
        ]

        for field in required_fields:
            if self.get(field) is None:
                raise ValueError(f"Missing required configuration: {field}")

        numeric_fields = [
            ("server.port", 1, 65535),
            ("upload.max_bytes", 1, None),
            ("anomaly.max_logs", 1, None),
            ("anomaly.temperature", 0, 2),
            ("anomaly.max_tokens", 1, None),
            ("llm.timeout", 0, None),
        ]

        for field, min_val, max_val in numeric_fields:
            value = self.get(field)
            if value is not None:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValueError(f"Invalid type for {field}: expected number")
                if min_val is not None and value < min_val:
                    raise ValueError(f"Invalid value for {field}: must be >= {min_val}")
                if max_val is not None and value > max_val:
                    raise ValueError(f"Invalid value for {field}: must be <= {max_val}")

        for field in ["auth.enabled", "database.echo", "logging.json_format"]:
            value = self.get(field)
            if value is not None and not isinstance(value, bool):
                raise ValueError(f"Invalid type for {field}: expected boolean")

        return True

    def __getitem__(self, key: str) -> Any:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __repr__(self) -> str:
        return f"Config({self._config})"

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "Config":
        """Create configuration from dictionary.

        Environment variables are applied first, so explicit values win.

        Args:
            config: Configuration dictionary

        Returns:
            New Config instance
        """
        instance = cls()
        instance.update(config)
        return instance

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get integer configuration value"""
        value = self.get(key, default)
        if value is not None:
            try:
                return int(value)
            except (ValueError, TypeError):
                return default
        return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get float configuration value"""
        value = self.get(key, default)
        if value is not None:
            try:
                return float(value)
            except (ValueError, TypeError):
                return default
        return default

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        """Get boolean configuration value"""
        value = self.get(key)
        if value is None:
            return default
        return parse_bool(value)
