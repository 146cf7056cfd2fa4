"""Pure retry-policy decisions driven by FeedbackConfig.

Every function takes an optional config and falls back to the package
defaults, so callers without a loaded configuration get the standard policy.
"""

from __future__ import annotations

from repair_loop.config.schema import DEFAULT_FEEDBACK_CONFIG, FeedbackConfig
from repair_loop.models.errors import ErrorCategory
from repair_loop.models.fix import RetryStrategy

LOWEST_PRIORITY = 5

# Capability errors get a single extra try before the loop gives up
CAPABILITY_MAX_ATTEMPTS = 2


def get_retry_strategy(
    attempt: int,
    same_error_count: int,
    code_length: int,
    config: FeedbackConfig | None = None,
) -> RetryStrategy:
    """Choose how aggressively to repair on this attempt.

    Args:
        attempt: 1-based attempt number
        same_error_count: How many recent attempts hit an equivalent error
        code_length: Length of the current source in characters
        config: Policy configuration

    Returns:
        The strategy to use for this attempt
    """
    config = config or DEFAULT_FEEDBACK_CONFIG
    strategies = config.retry_strategies

    if not config.features.enable_incremental_fixes:
        return RetryStrategy.FULL_REGENERATION

    # Patching the same error again is not converging
    if same_error_count >= strategies.same_error_threshold:
        return RetryStrategy.FULL_REGENERATION

    if code_length < strategies.min_code_length_for_incremental:
        return RetryStrategy.FULL_REGENERATION

    if attempt <= strategies.incremental_threshold:
        return RetryStrategy.TARGETED_FIX

    if attempt <= config.max_retries - 1:
        return RetryStrategy.INCREMENTAL

    return RetryStrategy.FULL_REGENERATION


def get_context_window_size(attempt: int, config: FeedbackConfig | None = None) -> int:
    """Lines of context on each side of the error line for this attempt."""
    config = config or DEFAULT_FEEDBACK_CONFIG
    if attempt <= 2:
        return config.retry_strategies.context_window_lines
    return config.token_limits.expanded_context_lines


def should_retry(
    attempt: int,
    category: ErrorCategory,
    config: FeedbackConfig | None = None,
) -> bool:
    """Whether another attempt is allowed after `attempt` attempts."""
    config = config or DEFAULT_FEEDBACK_CONFIG
    if category == ErrorCategory.CAPABILITY:
        return attempt < CAPABILITY_MAX_ATTEMPTS
    return attempt < config.max_retries


def get_error_priority(category: ErrorCategory, config: FeedbackConfig | None = None) -> int:
    """Fix priority for a category; lower numbers are fixed first."""
    config = config or DEFAULT_FEEDBACK_CONFIG
    return config.error_priority.get(str(category), LOWEST_PRIORITY)
