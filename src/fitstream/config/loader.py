"""
Configuration Loader.

Loads and validates configuration from YAML files with environment
variable substitution.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from fitstream.config.environment import load_environment
from fitstream.config.models import FitstreamConfig

logger = logging.getLogger(__name__)

# Default configuration file locations
DEFAULT_CONFIG_PATHS = [
    "fitstream.yaml",
    "fitstream.yml",
    ".fitstream.yaml",
    ".fitstream.yml",
    "config.yaml",
]

# Environment variable for config path
CONFIG_ENV_VAR = "FITSTREAM_CONFIG"

# Environment variable overrides for configuration settings
# Maps env var name to config path (dot-separated)
ENV_VAR_OVERRIDES = {
    "FITSTREAM_MODEL": "llm.model",
    "FITSTREAM_TEMPERATURE": "llm.temperature",
    "FITSTREAM_MAX_TOKENS": "llm.max_tokens",
    "FITSTREAM_TIMEOUT": "llm.timeout",
    "FITSTREAM_HISTORY_MAX_ITEMS": "history.max_items",
    "FITSTREAM_HISTORY_DIR": "history.directory",
    "FITSTREAM_LOG_LEVEL": "logging.level",
    "FITSTREAM_DEBUG": "debug",
}

# Paths whose values must stay strings even when they look numeric/boolean
_STRING_PATHS = {"llm.model", "history.directory", "logging.level"}


class ConfigurationError(Exception):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        errors: list[dict] | None = None,
        path: Path | None = None,
    ) -> None:
        """Initialize configuration error.

        Args:
            message: Error message
            errors: List of validation errors (from Pydantic)
            path: Path to the config file that caused the error
        """
        super().__init__(message)
        self.errors = errors or []
        self.path = path

    def __str__(self) -> str:
        """Format error message with details."""
        msg = super().__str__()
        if self.path:
            msg = f"{msg} (file: {self.path})"
        if self.errors:
            error_details = []
            for err in self.errors[:5]:
                loc = ".".join(str(x) for x in err.get("loc", []))
                error_msg = err.get("msg", "Unknown error")
                error_details.append(f"  - {loc}: {error_msg}")
            if len(self.errors) > 5:
                error_details.append(f"  ... and {len(self.errors) - 5} more errors")
            msg = f"{msg}\n" + "\n".join(error_details)
        return msg


class ConfigLoader:
    """Loads configuration from YAML files.

    Supports:
    - YAML configuration files
    - Environment variable substitution (${VAR} and ${VAR:-default} syntax)
    - FITSTREAM_* environment overrides
    - Validation via Pydantic

    Usage:
        loader = ConfigLoader("fitstream.yaml")
        config = loader.load()

        # Discover from FITSTREAM_CONFIG or default locations
        config = ConfigLoader().load_from_env()
    """

    # Matches ${VAR_NAME}, ${VAR_NAME:-default} and ${VAR_NAME:default}
    ENV_PATTERN = re.compile(r"\$\{(\w+)(?::-?([^}]*))?\}")

    def __init__(
        self,
        config_path: str | Path | None = None,
        env_file: str = ".env",
    ) -> None:
        self._config_path = Path(config_path) if config_path else None
        self._env_file = env_file
        self._config: FitstreamConfig | None = None
        self._loaded_from_path: Path | None = None

    @property
    def config_path(self) -> Path | None:
        """Get config file path."""
        return self._config_path

    @property
    def loaded_from_path(self) -> Path | None:
        """Get the path the config was actually loaded from."""
        return self._loaded_from_path

    def get(self) -> FitstreamConfig:
        """Get the loaded configuration.

        Raises:
            RuntimeError: If configuration has not been loaded yet.
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() or load_from_env() first.")
        return self._config

    def load(self, path: str | Path | None = None) -> FitstreamConfig:
        """Load and validate configuration.

        Without a path, defaults are used (plus environment overrides).

        Raises:
            ConfigurationError: If config is invalid
            FileNotFoundError: If config file not found
        """
        if path is not None:
            self._config_path = Path(path)

        load_environment(self._env_file)

        if self._config_path:
            raw = self._load_yaml()
            self._loaded_from_path = self._config_path
        else:
            raw = {}
            self._loaded_from_path = None

        processed = self._substitute_env_vars(raw)
        processed = self._apply_env_overrides(processed)
        # YAML parses empty sections as None; drop them so defaults apply
        processed = self._clean_none_values(processed)

        try:
            self._config = FitstreamConfig(**processed)
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e.error_count()} errors",
                errors=e.errors(),
                path=self._loaded_from_path,
            ) from e

        logger.debug(f"Configuration loaded from {self._loaded_from_path or 'defaults'}")
        return self._config

    def load_from_env(self) -> FitstreamConfig:
        """Load configuration from FITSTREAM_CONFIG or default locations.

        Falls back to defaults when no configuration file exists.

        Raises:
            ConfigurationError: If config is invalid
            FileNotFoundError: If FITSTREAM_CONFIG names a missing file
        """
        load_environment(self._env_file)

        env_config_path = os.environ.get(CONFIG_ENV_VAR)
        if env_config_path:
            config_path = Path(env_config_path)
            if not config_path.exists():
                raise FileNotFoundError(
                    f"Config file specified by {CONFIG_ENV_VAR} not found: {env_config_path}"
                )
            self._config_path = config_path
            return self.load()

        for default_path in DEFAULT_CONFIG_PATHS:
            path = Path(default_path)
            if path.exists():
                self._config_path = path
                return self.load()

        self._config_path = None
        return self.load()

    def _load_yaml(self) -> dict[str, Any]:
        if not self._config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self._config_path}")

        try:
            with open(self._config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML: {e}", path=self._config_path) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration root must be a mapping",
                path=self._config_path,
            )
        return data

    def _substitute_env_vars(self, data: Any, parent_key: str = "") -> Any:
        """Recursively substitute ${VAR} references in config values."""
        if isinstance(data, dict):
            return {
                k: self._substitute_env_vars(v, f"{parent_key}.{k}" if parent_key else k)
                for k, v in data.items()
            }
        elif isinstance(data, list):
            return [self._substitute_env_vars(item, parent_key) for item in data]
        elif isinstance(data, str):
            return self._substitute_string(data, parent_key)
        return data

    def _clean_none_values(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: self._clean_none_values(v) for k, v in data.items() if v is not None}
        elif isinstance(data, list):
            return [self._clean_none_values(item) for item in data]
        return data

    def _substitute_string(self, value: str, path: str = "") -> Any:
        """Substitute environment variables in a string.

        A value that is exactly one reference is type-coerced; embedded
        references are substituted textually.
        """
        full_match = self.ENV_PATTERN.fullmatch(value)
        if full_match:
            var_name = full_match.group(1)
            default = full_match.group(2)

            env_value = os.environ.get(var_name)
            resolved = env_value if env_value is not None else default

            if resolved is None:
                # Left as-is; fails validation if the field needs it
                return value
            if path in _STRING_PATHS:
                return resolved
            return self._coerce_type(resolved)

        def replace(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            return match.group(0)

        return self.ENV_PATTERN.sub(replace, value)

    def _coerce_type(self, value: str) -> Any:
        """Coerce string value to bool, int, float, None or str."""
        if value == "":
            return None

        lower_value = value.lower()
        if lower_value in ("true", "yes", "on"):
            return True
        if lower_value in ("false", "no", "off"):
            return False

        try:
            if "." not in value and "e" not in lower_value:
                return int(value)
            return float(value)
        except ValueError:
            pass

        return value

    def _apply_env_overrides(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Apply FITSTREAM_* overrides; they take precedence over the file."""
        for env_var, config_path in ENV_VAR_OVERRIDES.items():
            env_value = os.environ.get(env_var)
            if env_value is None:
                continue
            if config_path in _STRING_PATHS:
                coerced_value: Any = env_value
            else:
                coerced_value = self._coerce_type(env_value)
            self._set_nested_value(config_dict, config_path, coerced_value)
        return config_dict

    def _set_nested_value(self, config_dict: dict[str, Any], path: str, value: Any) -> None:
        parts = path.split(".")
        current = config_dict
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def save(self, path: str | Path | None = None) -> None:
        """Save current configuration to a YAML file.

        Raises:
            ValueError: If no config loaded or no path specified
        """
        if self._config is None:
            raise ValueError("No configuration loaded")

        save_path = Path(path) if path else self._config_path
        if save_path is None:
            raise ValueError("No path specified for saving")

        with open(save_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                self._config.to_yaml_dict(),
                f,
                default_flow_style=False,
                sort_keys=False,
            )


# Global loader instance for caching
_global_config: FitstreamConfig | None = None


def load_config(
    config_path: str | Path | None = None,
    env_file: str = ".env",
) -> FitstreamConfig:
    """Load configuration from a specific file (or defaults when None)."""
    global _global_config

    _global_config = ConfigLoader(config_path, env_file).load()
    return _global_config


def load_config_from_env(env_file: str = ".env") -> FitstreamConfig:
    """Load configuration from FITSTREAM_CONFIG or default locations."""
    global _global_config

    _global_config = ConfigLoader(env_file=env_file).load_from_env()
    return _global_config


def get_config() -> FitstreamConfig:
    """Get the global configuration.

    Raises:
        RuntimeError: If configuration not loaded
    """
    if _global_config is None:
        raise RuntimeError(
            "Configuration not loaded. Call load_config() or load_config_from_env() first."
        )
    return _global_config


def reset_config() -> None:
    """Reset global configuration. Useful for testing."""
    global _global_config
    _global_config = None
