"""Configuration loading and validation."""

from .loader import load_config
from .schema import (
    DEFAULT_FEEDBACK_CONFIG,
    AnthropicConfig,
    FeaturesConfig,
    FeedbackConfig,
    LLMConfig,
    LoggingConfig,
    RepairConfig,
    RetryStrategiesConfig,
    TemperaturesConfig,
    TimeoutsConfig,
    TokenLimitsConfig,
)

__all__ = [
    # Loader
    "load_config",
    # Root config
    "RepairConfig",
    # Policy
    "DEFAULT_FEEDBACK_CONFIG",
    "FeedbackConfig",
    "RetryStrategiesConfig",
    "TokenLimitsConfig",
    "TimeoutsConfig",
    "TemperaturesConfig",
    "FeaturesConfig",
    # Providers and logging
    "LLMConfig",
    "AnthropicConfig",
    "LoggingConfig",
]
