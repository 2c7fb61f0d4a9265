"""
Fit Analysis Pipeline - Configuration Management

This module provides configuration management including:
- YAML configuration loading and validation
- Environment variable handling
- Completion client, history and logging settings
"""

from fitstream.config.environment import (
    EnvironmentConfig,
    ensure_dotenv_loaded,
    get_api_key,
    get_model,
    load_environment,
    reset_environment,
)
from fitstream.config.loader import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATHS,
    ENV_VAR_OVERRIDES,
    ConfigLoader,
    ConfigurationError,
    get_config,
    load_config,
    load_config_from_env,
    reset_config,
)
from fitstream.config.models import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    AnalysisSettings,
    FitstreamConfig,
    HistoryBackend,
    HistoryConfig,
    LLMConfig,
    LoggingConfig,
    LogLevel,
)

__all__ = [
    # Config models
    "LLMConfig",
    "AnalysisSettings",
    "HistoryBackend",
    "HistoryConfig",
    "LogLevel",
    "LoggingConfig",
    "FitstreamConfig",
    "DEFAULT_MODEL",
    "DEFAULT_BASE_URL",
    # Loader
    "ConfigLoader",
    "ConfigurationError",
    "load_config",
    "load_config_from_env",
    "get_config",
    "reset_config",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATHS",
    "ENV_VAR_OVERRIDES",
    # Environment
    "EnvironmentConfig",
    "load_environment",
    "ensure_dotenv_loaded",
    "get_api_key",
    "get_model",
    "reset_environment",
]
