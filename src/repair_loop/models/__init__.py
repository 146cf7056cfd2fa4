"""Data models and transfer objects."""

from .context import ErrorLocation, LineRange, SmartContext
from .errors import (
    AnalyzedError,
    BuildError,
    BuildResult,
    DetectedError,
    ErrorCategory,
    ErrorDetectionResult,
    ErrorStage,
    RuntimeErrorData,
)
from .fix import CompletionMessage, FixHistoryEntry, FixResult, RetryStrategy
from .session import (
    FeedbackIteration,
    FeedbackSession,
    SessionStatus,
    SessionSummary,
    TokenUsageStats,
)

__all__ = [
    # Error models
    "ErrorCategory",
    "ErrorStage",
    "AnalyzedError",
    "DetectedError",
    "ErrorDetectionResult",
    "BuildError",
    "BuildResult",
    "RuntimeErrorData",
    # Context models
    "ErrorLocation",
    "LineRange",
    "SmartContext",
    # Fix models
    "RetryStrategy",
    "FixResult",
    "FixHistoryEntry",
    "CompletionMessage",
    # Session models
    "SessionStatus",
    "FeedbackIteration",
    "FeedbackSession",
    "TokenUsageStats",
    "SessionSummary",
]
