"""Pydantic models for configuration schema."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryStrategiesConfig(BaseModel):
    """Thresholds that drive strategy escalation."""

    incremental_threshold: int = Field(3, ge=1, description="Last attempt that uses targeted fixes")
    context_window_lines: int = Field(10, ge=1, le=200)
    min_code_length_for_incremental: int = Field(50, ge=0)
    same_error_threshold: int = Field(2, ge=1)


class TokenLimitsConfig(BaseModel):
    """Token budgets for prompts and completions."""

    max_context_tokens: int = Field(2000, ge=100)
    max_fix_tokens: int = Field(1500, ge=100)
    expanded_context_lines: int = Field(20, ge=1, le=400)
    full_regeneration_tokens: int = Field(8192, ge=256)

    @model_validator(mode="after")
    def check_full_budget(self) -> "TokenLimitsConfig":
        """Full regeneration must be allowed at least the incremental budget."""
        if self.full_regeneration_tokens < self.max_fix_tokens * 2:
            raise ValueError("full_regeneration_tokens must be >= 2 * max_fix_tokens")
        return self


class TimeoutsConfig(BaseModel):
    """Timeouts consumed by the build and completion collaborators."""

    bundling_timeout_ms: int = Field(30000, ge=1000)
    llm_timeout_ms: int = Field(60000, ge=1000)
    runtime_error_window_ms: int = Field(5000, ge=0)


class TemperaturesConfig(BaseModel):
    """Sampling temperature per repair strategy."""

    targeted: float = Field(0.2, ge=0.0, le=1.0)
    incremental: float = Field(0.3, ge=0.0, le=1.0)
    full_regeneration: float = Field(0.4, ge=0.0, le=1.0)


class FeaturesConfig(BaseModel):
    """Feature switches for the repair loop."""

    enable_incremental_fixes: bool = True
    enable_runtime_monitoring: bool = True
    show_error_details: bool = True
    log_retry_analytics: bool = True


def _default_error_priority() -> dict[str, int]:
    return {
        "syntax": 1,  # Blocks compilation
        "semantic": 2,
        "environment": 3,
        "capability": 4,  # Rarely fixable
        "unknown": 5,
    }


class FeedbackConfig(BaseModel):
    """Repair loop policy configuration."""

    max_retries: int = Field(5, ge=1, le=20)
    retry_strategies: RetryStrategiesConfig = RetryStrategiesConfig()
    token_limits: TokenLimitsConfig = TokenLimitsConfig()
    timeouts: TimeoutsConfig = TimeoutsConfig()
    temperatures: TemperaturesConfig = TemperaturesConfig()
    features: FeaturesConfig = FeaturesConfig()
    error_priority: dict[str, int] = Field(default_factory=_default_error_priority)
    fix_history_size: int = Field(20, ge=1, le=1000)
    similarity_threshold: float = Field(0.5, ge=0.0, le=1.0)
    disallowed_output_calls: list[str] = ["require("]

    @field_validator("error_priority")
    @classmethod
    def validate_error_priority(cls, v: dict[str, int]) -> dict[str, int]:
        """Only known categories may be prioritized."""
        from ..models.errors import ErrorCategory

        known = {category.value for category in ErrorCategory}
        for name in v:
            if name not in known:
                raise ValueError(f"Unknown error category in error_priority: {name}")
        return v


class AnthropicConfig(BaseModel):
    """Anthropic-specific configuration."""

    api_key: str
    model: str = "claude-3-5-sonnet-20241022"
    max_retries: int = Field(3, ge=1, le=10, description="Attempts for transient network errors")

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Reject obviously empty keys."""
        if not v.strip():
            raise ValueError("api_key must not be empty")
        return v


class LLMConfig(BaseModel):
    """Completion provider configuration."""

    provider: Literal["anthropic"] = "anthropic"
    anthropic: AnthropicConfig | None = None


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("/var/log/code-repair-loop/repair.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    file: FileLoggingConfig = FileLoggingConfig()


class RepairConfig(BaseSettings):
    """Root configuration for the code repair loop."""

    feedback: FeedbackConfig = FeedbackConfig()
    llm: LLMConfig = LLMConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = SettingsConfigDict(
        env_prefix="REPAIR_LOOP_",
        env_file=".env",
        env_nested_delimiter="__",
    )


DEFAULT_FEEDBACK_CONFIG = FeedbackConfig()
