"""Classification of raw build and runtime error text.

The analyzer maps an error string to one of the closed ErrorCategory values
using an ordered rule table, attaches a canned root cause and suggestion, and
pulls out a line/column location when the text carries one. It is a pure
function of its input and never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from repair_loop.models.errors import AnalyzedError, ErrorCategory

log = structlog.get_logger()


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the classification table.

    Attributes:
        category: Category assigned when any pattern matches
        patterns: Case-insensitive regexes, tried in order
        root_cause: Fixed root-cause sentence for the category
        suggestion: Fixed remediation hint for the category
    """

    category: ErrorCategory
    patterns: tuple[re.Pattern[str], ...]
    root_cause: str
    suggestion: str

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Evaluated top to bottom; the first matching rule wins.
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        category=ErrorCategory.SYNTAX,
        patterns=_compile(
            r"SyntaxError",
            r"Unexpected token",
            r"Unexpected ['\"<>{}\[\]()]",
            r"Expected .+ but found",
            r"Parsing error",
            r"Unterminated string",
            r"Unterminated regular expression",
            r"Expression expected",
            r"Invalid or unexpected token",
            r"Unexpected end of input",
            r"Unexpected end of file",
            r"Missing closing",
            r"Unclosed",
            r"Unexpected closing",
            r"does not match opening",
            r"JSX",
        ),
        root_cause="Code structure violation or invalid syntax",
        suggestion="Check for missing brackets, semicolons, or invalid keywords.",
    ),
    ClassificationRule(
        category=ErrorCategory.SEMANTIC,
        patterns=_compile(
            r"ReferenceError",
            r"TypeError",
            r"undefined is not a",
            r"cannot read property",
            r"React",
            r"Invalid hook call",
            r"Rendered more hooks",
        ),
        root_cause="Logic error or invalid state usage",
        suggestion="Verify hook dependencies, state initialization, and prop types.",
    ),
    ClassificationRule(
        category=ErrorCategory.ENVIRONMENT,
        patterns=_compile(
            r"Module not found",
            r"Import error",
            r"is not defined",
        ),
        root_cause="Missing dependency or environment mismatch",
        suggestion="Ensure all used libraries are imported and available in the sandbox.",
    ),
)

UNKNOWN_ROOT_CAUSE = "Unclassified error"
UNKNOWN_SUGGESTION = "Review the error log manually."

# "file.tsx:12:5" style positions
COLON_LOCATION_PATTERN = re.compile(r":(\d+):(\d+)")
# "line 12", "line 12:5", "line 12, column 5"
LINE_LOCATION_PATTERN = re.compile(
    r"\bline\s+(\d+)(?:\s*[:,]\s*(?:col(?:umn)?\s*)?(\d+))?",
    re.IGNORECASE,
)


def extract_location(text: str) -> tuple[int | None, int | None]:
    """Best-effort line/column extraction from error text.

    Args:
        text: Raw error text

    Returns:
        (line, column); either may be None
    """
    match = COLON_LOCATION_PATTERN.search(text)
    if match:
        return int(match.group(1)), int(match.group(2))

    match = LINE_LOCATION_PATTERN.search(text)
    if match:
        column = int(match.group(2)) if match.group(2) else None
        return int(match.group(1)), column

    return None, None


class ErrorAnalyzer:
    """Classifies raw error text into an AnalyzedError.

    Example:
        analysis = ErrorAnalyzer.analyze("SyntaxError: Unexpected token '}'")
        assert analysis.category == ErrorCategory.SYNTAX
    """

    rules: tuple[ClassificationRule, ...] = CLASSIFICATION_RULES

    @classmethod
    def analyze(cls, error_text: str) -> AnalyzedError:
        """Classify an error string.

        Args:
            error_text: Raw error text from a build or runtime stage

        Returns:
            AnalyzedError; category is UNKNOWN when no rule matches
        """
        message = (error_text or "").strip()

        for rule in cls.rules:
            if rule.matches(message):
                line, column = extract_location(message)
                log.debug(
                    "error_classified",
                    category=rule.category.value,
                    line=line,
                    column=column,
                )
                return AnalyzedError(
                    original_message=message,
                    category=rule.category,
                    root_cause=rule.root_cause,
                    suggestion=rule.suggestion,
                    line=line,
                    column=column,
                )

        log.debug("error_unclassified", length=len(message))
        return AnalyzedError(
            original_message=message,
            category=ErrorCategory.UNKNOWN,
            root_cause=UNKNOWN_ROOT_CAUSE,
            suggestion=UNKNOWN_SUGGESTION,
        )
