"""
Configuration Data Models.

Defines all configuration schemas using Pydantic for validation
and type safety.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator

from fitstream.models.base import FIT_ANALYSIS_STORAGE_KEY, MAX_HISTORY_ITEMS

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


class LLMConfig(BaseModel):
    """Configuration for one streaming completion request.

    Attributes:
        api_key: Completion service API key (falls back to environment)
        model: Model identifier
        temperature: Sampling temperature
        max_tokens: Maximum output tokens
        timeout: Wall-clock timeout for the whole request, in seconds
        response_format: Set to "json_object" for strict structured output
    """

    api_key: SecretStr | None = Field(
        default=None,
        description="API key (falls back to OPENAI_API_KEY)",
        exclude=True,
    )
    model: str = Field(
        default=DEFAULT_MODEL,
        description="Model identifier",
        examples=["gpt-4o-mini", "gpt-5-mini", "o3-mini"],
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    max_tokens: int = Field(
        default=4096,
        ge=1,
        description="Max output tokens",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Request timeout in seconds",
    )
    response_format: Literal["json_object"] | None = Field(
        default=None,
        description="Structured output mode",
    )

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Validate that the model name is not empty."""
        if not v.strip():
            raise ValueError("Model name cannot be empty")
        return v


class AnalysisSettings(BaseModel):
    """Settings for the fit analysis pipeline.

    Attributes:
        timeout_seconds: Wall-clock limit for one analysis stream
        max_input_length: Maximum job description length in characters
        min_length_warning: Below this length the input gets a warning
        max_retries: Attempts for non-streaming completions
    """

    timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_input_length: int = Field(default=5000, ge=1)
    min_length_warning: int = Field(default=50, ge=0)
    max_retries: int = Field(default=3, ge=1, le=10)


class HistoryBackend(str, Enum):
    """Storage medium for analysis history."""

    MEMORY = "memory"
    FILE = "file"


class HistoryConfig(BaseModel):
    """Configuration for the analysis history store.

    Attributes:
        max_items: Number of analyses retained
        storage_key: Key the history is stored under
        backend: Storage medium
        directory: Directory for the file backend
    """

    max_items: int = Field(default=MAX_HISTORY_ITEMS, ge=1, le=50)
    storage_key: str = Field(default=FIT_ANALYSIS_STORAGE_KEY, min_length=1)
    backend: HistoryBackend = Field(default=HistoryBackend.MEMORY)
    directory: str = Field(default=".fitstream")


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Minimum level emitted by the fitstream logger
        json_format: Emit JSON lines instead of rich console output
        file: Optional log file path
    """

    level: LogLevel = Field(default=LogLevel.INFO)
    json_format: bool = Field(default=False)
    file: str | None = Field(default=None)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class FitstreamConfig(BaseModel):
    """Root configuration for the pipeline.

    Attributes:
        llm: Completion client configuration
        analysis: Analysis pipeline settings
        history: History store configuration
        logging: Logging configuration
        debug: Enable debug mode
    """

    llm: LLMConfig = Field(default_factory=LLMConfig)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    debug: bool = Field(default=False)

    def to_yaml_dict(self) -> dict[str, Any]:
        """Convert to YAML-friendly dictionary (secrets excluded)."""
        return self.model_dump(mode="json", exclude_none=True)
