"""Data models for code context handed to repair prompts."""

from dataclasses import dataclass


@dataclass(frozen=True)
class LineRange:
    """Inclusive, 1-based range of source lines."""

    start_line: int
    end_line: int

    @property
    def line_count(self) -> int:
        """Number of lines covered by this range."""
        return self.end_line - self.start_line + 1

    def contains(self, line: int) -> bool:
        """Check whether a 1-based line number falls inside the range."""
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True)
class ErrorLocation:
    """Where in the source an error points."""

    line: int
    column: int | None = None


@dataclass(frozen=True)
class SmartContext:
    """Minimal context needed to repair one error."""

    error_location: ErrorLocation
    surrounding_code: str  # Line-numbered window with a >>> marker on the error line
    surrounding_range: LineRange
    relevant_imports: tuple[str, ...]
    affected_function: str | None
    affected_function_name: str | None
    affected_function_range: LineRange | None
    minimal_reproduction: str
    estimated_tokens: int
