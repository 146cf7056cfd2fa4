"""Bounded code context around an error for repair prompts.

Sending the whole file on every attempt wastes tokens and invites the model
to rewrite unrelated code. SmartContextExtractor cuts a line-numbered window
around the error, keeps only the imports that window uses and locates the
enclosing function. The window grows with the attempt number.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

import structlog

from repair_loop.config.schema import DEFAULT_FEEDBACK_CONFIG, FeedbackConfig
from repair_loop.core.feedback_policy import get_context_window_size
from repair_loop.models.context import ErrorLocation, LineRange, SmartContext
from repair_loop.models.errors import DetectedError

log = structlog.get_logger()

ERROR_MARKER = ">>>"
BLANK_MARKER = "   "

# Functions longer than this are not used as the minimal reproduction
MAX_REPRODUCTION_LINES = 30

CHARS_PER_TOKEN = 4

IMPORT_PATTERN = re.compile(
    r"^import\s+"
    r"(?:(?:\{[^}]*\}|\*\s+as\s+\w+|\w+)(?:\s*,\s*(?:\{[^}]*\}|\*\s+as\s+\w+|\w+))*\s+from\s+)?"
    r"['\"][^'\"]+['\"];?$",
    re.MULTILINE,
)
DEFAULT_IMPORT_PATTERN = re.compile(r"^import\s+(\w+)\s+from")
NAMED_IMPORT_PATTERN = re.compile(r"\{([^}]+)\}")
ALIAS_PATTERN = re.compile(r"(\w+)\s+as\s+(\w+)")
NAMESPACE_IMPORT_PATTERN = re.compile(r"\*\s+as\s+(\w+)")

FUNCTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    # function Name(args): Type {
    re.compile(r"function\s+(\w+)\s*\([^)]*\)\s*(?::\s*\w+(?:<[^>]+>)?\s*)?\{"),
    # const Name = async (args) => / const Name = arg =>
    re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s+)?(?:\([^)]*\)|\w+)\s*=>"),
    # const Name = function(args) {
    re.compile(r"(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s+)?function\s*\([^)]*\)\s*\{"),
)

# Exactly the "{marker} {number:>4}: " prefix written by _surrounding_code
LINE_PREFIX_PATTERN = re.compile(
    r"^(?:>>>|   ) (?: {3}\d| {2}\d{2}| \d{3}|\d{4,}): ", re.MULTILINE
)

TARGETED_ATTEMPT = 1
INCREMENTAL_ATTEMPT = 3
FULL_ATTEMPT = 5


@dataclass(frozen=True)
class FunctionBoundary:
    """A function-like declaration and the lines it spans."""

    name: str
    start_line: int
    end_line: int
    code: str

    @property
    def line_range(self) -> LineRange:
        return LineRange(start_line=self.start_line, end_line=self.end_line)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def strip_line_prefixes(text: str) -> str:
    """Remove the ``>>>  12: `` prefixes added to context windows."""
    return "\n".join(LINE_PREFIX_PATTERN.sub("", line) for line in text.split("\n"))


class SmartContextExtractor:
    """Extracts the minimum context needed to repair one error.

    Example:
        extractor = SmartContextExtractor()
        context = extractor.extract(source, detected_error, attempt_number=1)
        prompt_section = extractor.format_for_prompt(context)
    """

    def __init__(self, config: FeedbackConfig | None = None) -> None:
        self._config = config or DEFAULT_FEEDBACK_CONFIG

    def extract(
        self,
        source: str,
        error: DetectedError,
        attempt_number: int = 1,
    ) -> SmartContext:
        """Build the context for an error at a given attempt.

        Args:
            source: Full source text
            error: Error to build context for; its line defaults to 1
            attempt_number: 1-based attempt; later attempts get a wider window

        Returns:
            SmartContext bounded to the file
        """
        lines = source.split("\n")
        error_line = error.line if error.line is not None else 1
        window = get_context_window_size(attempt_number, self._config)

        surrounding_code, surrounding_range = self._surrounding_code(lines, error_line, window)
        relevant_imports = self._relevant_imports(extract_imports(source), surrounding_code)
        function = self._find_enclosing_function(lines, error_line)

        if error.source_line:
            minimal_reproduction = error.source_line
        elif function is not None and len(function.code.split("\n")) <= MAX_REPRODUCTION_LINES:
            minimal_reproduction = function.code
        else:
            minimal_reproduction = strip_line_prefixes(surrounding_code)

        tokens = estimate_tokens(
            surrounding_code + "\n".join(relevant_imports) + (function.code if function else "")
        )

        log.debug(
            "context_extracted",
            error_line=error_line,
            attempt=attempt_number,
            window=window,
            start_line=surrounding_range.start_line,
            end_line=surrounding_range.end_line,
            function=function.name if function else None,
            imports=len(relevant_imports),
            estimated_tokens=tokens,
        )

        return SmartContext(
            error_location=ErrorLocation(line=error_line, column=error.column),
            surrounding_code=surrounding_code,
            surrounding_range=surrounding_range,
            relevant_imports=tuple(relevant_imports),
            affected_function=function.code if function else None,
            affected_function_name=function.name if function else None,
            affected_function_range=function.line_range if function else None,
            minimal_reproduction=minimal_reproduction,
            estimated_tokens=tokens,
        )

    def extract_targeted_context(self, source: str, error: DetectedError) -> SmartContext:
        """Smallest window, used for targeted fixes."""
        return self.extract(source, error, TARGETED_ATTEMPT)

    def extract_incremental_context(self, source: str, error: DetectedError) -> SmartContext:
        """Medium window, used for function-level fixes."""
        return self.extract(source, error, INCREMENTAL_ATTEMPT)

    def extract_full_context(self, source: str, error: DetectedError) -> SmartContext:
        """Widest window, used to frame full regeneration prompts."""
        return self.extract(source, error, FULL_ATTEMPT)

    def format_for_prompt(self, context: SmartContext) -> str:
        """Render a context as a plain-text prompt section.

        Args:
            context: Context to render

        Returns:
            Sections for imports, error location, surrounding code and
            (when found) the enclosing function's name and line range
        """
        parts: list[str] = []

        if context.relevant_imports:
            parts.append("RELEVANT IMPORTS:")
            parts.append("\n".join(context.relevant_imports))
            parts.append("")

        location = f"ERROR LOCATION: Line {context.error_location.line}"
        if context.error_location.column:
            location += f", Column {context.error_location.column}"
        parts.append(location)
        parts.append("")

        parts.append("CODE AROUND ERROR:")
        parts.append(context.surrounding_code)
        parts.append("")

        if context.affected_function and context.affected_function_name:
            function_range = context.affected_function_range
            parts.append(f"AFFECTED FUNCTION: {context.affected_function_name}")
            if function_range is not None:
                parts.append(f"Lines {function_range.start_line}-{function_range.end_line}")

        return "\n".join(parts)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _surrounding_code(
        lines: list[str],
        error_line: int,
        window: int,
    ) -> tuple[str, LineRange]:
        # Clamp so an out-of-range line still yields a window inside the file
        index = min(max(0, error_line - 1), len(lines) - 1)
        start = max(0, index - window)
        end = min(len(lines) - 1, index + window)

        numbered = []
        for offset, text in enumerate(lines[start : end + 1]):
            number = start + offset + 1
            marker = ERROR_MARKER if number == error_line else BLANK_MARKER
            numbered.append(f"{marker} {number:>4}: {text}")

        return "\n".join(numbered), LineRange(start_line=start + 1, end_line=end + 1)

    @staticmethod
    def _relevant_imports(imports: list[str], window_text: str) -> list[str]:
        relevant = []
        for statement in imports:
            names = imported_names(statement)
            if any(re.search(rf"\b{re.escape(name)}\b", window_text) for name in names):
                relevant.append(statement)
        return relevant

    @staticmethod
    def _find_enclosing_function(lines: list[str], error_line: int) -> FunctionBoundary | None:
        for function in find_functions(lines):
            if function.start_line <= error_line <= function.end_line:
                return function
        return None


def extract_imports(source: str) -> list[str]:
    """All single-line ES module import statements in a file."""
    return [match.group(0).strip() for match in IMPORT_PATTERN.finditer(source)]


def imported_names(statement: str) -> list[str]:
    """Local names bound by an import statement (aliases win over originals)."""
    names: list[str] = []

    default = DEFAULT_IMPORT_PATTERN.match(statement)
    if default:
        names.append(default.group(1))

    named = NAMED_IMPORT_PATTERN.search(statement)
    if named:
        for part in named.group(1).split(","):
            alias = ALIAS_PATTERN.search(part)
            names.append(alias.group(2) if alias else part.strip())

    namespace = NAMESPACE_IMPORT_PATTERN.search(statement)
    if namespace:
        names.append(namespace.group(1))

    return [name for name in names if name]


def find_functions(lines: list[str]) -> list[FunctionBoundary]:
    """Function-like declarations with balanced braces, ordered by start line."""
    source = "\n".join(lines)
    functions: list[FunctionBoundary] = []

    for pattern in FUNCTION_PATTERNS:
        for match in pattern.finditer(source):
            start_line = source.count("\n", 0, match.start()) + 1
            end_line = _find_block_end(lines, start_line)
            if end_line is None:
                continue
            functions.append(
                FunctionBoundary(
                    name=match.group(1),
                    start_line=start_line,
                    end_line=end_line,
                    code="\n".join(lines[start_line - 1 : end_line]),
                )
            )

    functions.sort(key=lambda f: f.start_line)
    return functions


def _find_block_end(lines: list[str], start_line: int) -> int | None:
    """1-based line where the first brace opened at or after start_line closes."""
    depth = 0
    opened = False

    for index in range(start_line - 1, len(lines)):
        for char in lines[index]:
            if char == "{":
                depth += 1
                opened = True
            elif char == "}":
                depth -= 1

            if opened and depth == 0:
                return index + 1

    return None
