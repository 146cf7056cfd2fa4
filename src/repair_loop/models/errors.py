"""Data models for detected and analyzed errors."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Error taxonomy, declared in fix-priority order."""

    SYNTAX = "syntax"
    SEMANTIC = "semantic"
    ENVIRONMENT = "environment"
    CAPABILITY = "capability"
    UNKNOWN = "unknown"


class ErrorStage(StrEnum):
    """Pipeline phase where an error originated."""

    BUILD = "build_stage"
    RUNTIME = "runtime_stage"
    OTHER = "other"


@dataclass(frozen=True)
class AnalyzedError:
    """Classification of a single raw error string."""

    original_message: str
    category: ErrorCategory
    root_cause: str
    suggestion: str
    line: int | None = None
    column: int | None = None


@dataclass(frozen=True)
class DetectedError:
    """An error normalized from any pipeline stage."""

    id: str
    stage: ErrorStage
    message: str
    analysis: AnalyzedError
    line: int | None = None
    column: int | None = None
    source_line: str | None = None  # Offending source text, if the stage reported it
    stack: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def category(self) -> ErrorCategory:
        """Category that drives retry policy."""
        return self.analysis.category


@dataclass(frozen=True)
class ErrorDetectionResult:
    """Outcome of inspecting one stage's output for errors."""

    has_errors: bool
    errors: tuple[DetectedError, ...]
    summary: str
    primary_error: DetectedError | None = None


@dataclass(frozen=True)
class BuildError:
    """A single error reported by the build collaborator."""

    message: str
    line: int | None = None
    column: int | None = None
    source: str | None = None


@dataclass(frozen=True)
class BuildResult:
    """Result handed over by the build/bundle collaborator."""

    success: bool
    code: str = ""
    errors: tuple[BuildError, ...] = ()
    warnings: tuple[str, ...] = ()
    stats: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RuntimeErrorData:
    """Structured error captured while running generated code."""

    message: str
    source: str | None = None
    line: int | None = None
    column: int | None = None
    stack: str | None = None
