"""
load the config from config.yaml and .env
"""

import os
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_CONFIG_FILE = "config.yaml"


class Config:
    """Configuration loader that reads from config.yaml and environment variables."""

    def __init__(self, config_path: str = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to a config.yaml file. If None, looks for
                        config.yaml in the current directory and falls back to
                        an empty configuration when it is absent.
        """
        self.explicit = config_path is not None
        if config_path is None:
            config_path = Path.cwd() / DEFAULT_CONFIG_FILE

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file and override with environment variables."""
        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            if self.explicit:
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
            config = {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not isinstance(config, dict):
            raise ValueError(f"Configuration file must contain a mapping: {self.config_path}")

        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        env_mappings = {
            'ARTIFACT_DESTINATION': ('artifact', 'destination'),
            'FETCHER_USER_AGENT': ('fetcher', 'user_agent'),
            'FETCHER_TIMEOUT': ('fetcher', 'timeout'),
            'FETCHER_MAX_REDIRECTS': ('fetcher', 'max_redirects'),
            'FETCHER_MAX_RESPONSE_SIZE': ('fetcher', 'max_response_size'),
            'VALIDATION_MIN_SIZE': ('validation', 'min_size'),
            'VALIDATION_REQUIRE_SIGNATURE': ('validation', 'require_signature'),
            'VALIDATION_SHA256': ('validation', 'sha256'),
            'VALIDATION_BEST_EFFORT': ('validation', 'best_effort'),
            'LOG_LEVEL': ('logging', 'level'),
            'LOG_FORMAT': ('logging', 'format'),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                current = config
                for key in config_path[:-1]:
                    if not isinstance(current.get(key), dict):
                        current[key] = {}
                    current = current[key]

                final_key = config_path[-1]
                if final_key in ('sha256', 'destination', 'user_agent'):
                    current[final_key] = env_value
                else:
                    current[final_key] = self._convert_env_value(env_value)

        return config

    def _convert_env_value(self, value: str):
        """Convert environment variable string to appropriate Python type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def get(self, *keys, default=None):
        """Get configuration value using a key path.

        Args:
            *keys: Configuration keys (e.g., 'fetcher', 'timeout')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self._config
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    @property
    def artifact(self) -> Dict[str, Any]:
        """Get artifact destination and candidate sources."""
        return self.get('artifact', default={})

    @property
    def fetcher(self) -> Dict[str, Any]:
        """Get HTTP fetcher configuration."""
        return self.get('fetcher', default={})

    @property
    def validation(self) -> Dict[str, Any]:
        """Get validation rule configuration."""
        return self.get('validation', default={})

    @property
    def logging(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.get('logging', default={})
