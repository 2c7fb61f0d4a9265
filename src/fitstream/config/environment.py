"""
Environment Variable Handling.

Manages environment variables and secrets using python-dotenv.

IMPORTANT: Call ensure_dotenv_loaded() early in application startup
to ensure .env variables are available for Pydantic model defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr

# Track whether dotenv has been loaded
_dotenv_loaded: bool = False


def ensure_dotenv_loaded(env_file: str = ".env") -> bool:
    """Ensure .env file is loaded into os.environ.

    Values already present in the process environment win over the file.

    Args:
        env_file: Path to .env file (relative or absolute)

    Returns:
        True if a .env file was found and loaded, False otherwise
    """
    global _dotenv_loaded

    if _dotenv_loaded:
        return True

    env_paths = [
        Path(env_file),
        Path.cwd() / env_file,
    ]

    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            _dotenv_loaded = True
            return True

    # No .env file found, that's okay - use defaults
    _dotenv_loaded = True
    return False


class EnvironmentConfig(BaseModel):
    """Secrets and model selection read from the environment.

    Attributes:
        openai_api_key: Completion service API key
        openai_model: Model override for the completion service
        openai_base_url: Base URL override for the completion service
    """

    openai_api_key: SecretStr | None = Field(
        default=None,
        description="Completion service API key",
    )
    openai_model: str | None = Field(
        default=None,
        description="Model override",
    )
    openai_base_url: str | None = Field(
        default=None,
        description="Base URL override",
    )

    @property
    def has_api_key(self) -> bool:
        """Check if an API key is configured."""
        return self.openai_api_key is not None


# Environment variable names
ENV_VARS = {
    "openai_api_key": "OPENAI_API_KEY",
    "openai_model": "OPENAI_MODEL",
    "openai_base_url": "OPENAI_BASE_URL",
}

_config: EnvironmentConfig | None = None


def load_environment(env_file: str = ".env") -> EnvironmentConfig:
    """Load environment configuration.

    Loads from .env file and caches the result.

    Args:
        env_file: Path to .env file

    Returns:
        EnvironmentConfig with loaded values
    """
    global _config

    ensure_dotenv_loaded(env_file)

    if _config is None:
        values = {}
        for config_key, env_var in ENV_VARS.items():
            value = os.environ.get(env_var)
            if value:
                values[config_key] = SecretStr(value) if "api_key" in config_key else value
        _config = EnvironmentConfig(**values)

    return _config


def get_api_key() -> str | None:
    """Get the completion service API key.

    Returns:
        API key string or None if not set
    """
    config = load_environment()
    return config.openai_api_key.get_secret_value() if config.openai_api_key else None


def get_model(default: str) -> str:
    """Get the model name from the environment with fallback."""
    return load_environment().openai_model or default


def reset_environment() -> None:
    """Reset cached environment configuration.

    Useful for testing or reloading after .env changes.
    """
    global _config, _dotenv_loaded
    _config = None
    _dotenv_loaded = False
