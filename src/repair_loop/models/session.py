"""Data models for repair sessions."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from .context import SmartContext
from .errors import AnalyzedError, DetectedError, ErrorStage
from .fix import FixResult, RetryStrategy


class SessionStatus(StrEnum):
    """Lifecycle of a repair session. Only ACTIVE is non-terminal."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class FeedbackIteration:
    """Snapshot of one failed attempt inside a session."""

    iteration: int  # 1-based
    code: str
    error_log: str
    analysis: AnalyzedError
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    stage: ErrorStage | None = None
    strategy: RetryStrategy | None = None
    context: SmartContext | None = None
    estimated_tokens: int | None = None
    fix_result: FixResult | None = None
    detected_error: DetectedError | None = None  # Set when recorded from detection


@dataclass
class FeedbackSession:
    """State of one repair session, owned by a single FeedbackLoop."""

    id: str
    original_prompt: str
    max_iterations: int
    iterations: list[FeedbackIteration] = field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    total_tokens_used: int = 0
    current_code: str | None = None


@dataclass(frozen=True)
class TokenUsageStats:
    """Estimated prompt-context token usage across a session."""

    total_tokens: int
    avg_tokens_per_iteration: int
    iteration_count: int


@dataclass(frozen=True)
class SessionSummary:
    """Human-facing overview of a session."""

    status: SessionStatus
    attempts: int
    max_attempts: int
    remaining_attempts: int
    tokens_used: int
    last_error: str | None = None
    last_strategy: RetryStrategy | None = None
