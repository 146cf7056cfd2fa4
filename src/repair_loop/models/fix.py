"""Data models for fix attempts."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal


class RetryStrategy(StrEnum):
    """Repair scope, from narrowest to widest."""

    TARGETED_FIX = "targeted_fix"
    INCREMENTAL = "incremental"
    FULL_REGENERATION = "full_regeneration"


@dataclass(frozen=True)
class FixResult:
    """Outcome of a single fix attempt."""

    success: bool
    fixed_code: str
    change_description: str
    strategy: RetryStrategy
    estimated_tokens: int
    error: str | None = None


@dataclass(frozen=True)
class FixHistoryEntry:
    """One remembered error, used for same-error detection."""

    error_message: str
    error_category: str
    attempt: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class CompletionMessage:
    """A chat message sent to the completion collaborator."""

    role: Literal["system", "user", "assistant"]
    content: str
