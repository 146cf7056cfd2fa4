"""Normalization of build and runtime failures into DetectedError records.

Every stage reports failures in its own shape. ErrorDetectionService turns
each of them into DetectedError values carrying an ErrorAnalyzer verdict,
orders simultaneous errors by fix priority and writes a one-line summary.
"""

from __future__ import annotations

import itertools
import re
import time
import traceback
from collections.abc import Iterable, Sequence

import structlog

from repair_loop.config.schema import DEFAULT_FEEDBACK_CONFIG, FeedbackConfig
from repair_loop.core.error_analyzer import COLON_LOCATION_PATTERN, ErrorAnalyzer
from repair_loop.core.feedback_policy import get_error_priority
from repair_loop.models.errors import (
    AnalyzedError,
    BuildError,
    BuildResult,
    DetectedError,
    ErrorCategory,
    ErrorDetectionResult,
    ErrorStage,
    RuntimeErrorData,
)
from repair_loop.utils.metrics import get_metrics

log = structlog.get_logger()

# "line 12", "line 12, col 5", "line 12 column 5"
LOG_LOCATION_PATTERN = re.compile(
    r"line\s*(\d+)(?:\s*,?\s*col(?:umn)?\s*(\d+))?",
    re.IGNORECASE,
)


class ErrorDetectionService:
    """Converts stage-specific failures into prioritized DetectedErrors.

    Error ids are unique per service instance: ``err_<epoch-ms>_<counter>``.

    Example:
        service = ErrorDetectionService()
        result = service.detect_build_errors(build_result)
        if result.has_errors:
            fix_target = result.primary_error
    """

    def __init__(self, config: FeedbackConfig | None = None) -> None:
        """Initialize the service.

        Args:
            config: Policy configuration (priorities, disallowed output calls)
        """
        self._config = config or DEFAULT_FEEDBACK_CONFIG
        self._counter = itertools.count(1)

    def _next_id(self) -> str:
        return f"err_{int(time.time() * 1000)}_{next(self._counter)}"

    def detect_build_errors(self, build_result: BuildResult) -> ErrorDetectionResult:
        """Detect errors in a build stage result.

        A successful build whose output still calls a disallowed runtime
        function (``require(`` by default) is reported as one environment
        error, since that output cannot run in the browser.

        Args:
            build_result: Result reported by the build collaborator

        Returns:
            ErrorDetectionResult, errors sorted by priority
        """
        stage = ErrorStage.BUILD

        if build_result.success:
            leftover = self._find_disallowed_call(build_result.code)
            if leftover is not None:
                error = self._disallowed_call_error(leftover, stage)
                self._record([error])
                log.warning("disallowed_call_in_output", call=leftover)
                return ErrorDetectionResult(
                    has_errors=True,
                    errors=(error,),
                    summary=f"Bundling failed: {leftover} calls found in output",
                    primary_error=error,
                )

            if not build_result.errors:
                return ErrorDetectionResult(
                    has_errors=False,
                    errors=(),
                    summary=self._summarize((), stage),
                )

        errors = [
            DetectedError(
                id=self._next_id(),
                stage=stage,
                message=raw.message,
                analysis=ErrorAnalyzer.analyze(self._format_build_error(raw)),
                line=raw.line,
                column=raw.column,
                source_line=raw.source,
            )
            for raw in build_result.errors
        ]
        return self._result(errors, stage)

    def detect_build_log_errors(self, messages: Sequence[str]) -> ErrorDetectionResult:
        """Detect errors from plain bundler log lines.

        Args:
            messages: One error message per entry

        Returns:
            ErrorDetectionResult, errors sorted by priority
        """
        stage = ErrorStage.BUILD
        errors: list[DetectedError] = []

        for message in messages:
            match = LOG_LOCATION_PATTERN.search(message)
            errors.append(
                DetectedError(
                    id=self._next_id(),
                    stage=stage,
                    message=message,
                    analysis=ErrorAnalyzer.analyze(message),
                    line=int(match.group(1)) if match else None,
                    column=int(match.group(2)) if match and match.group(2) else None,
                )
            )

        return self._result(errors, stage)

    def detect_runtime_errors(self, error_data: RuntimeErrorData) -> ErrorDetectionResult:
        """Detect an error raised while running the generated code.

        Args:
            error_data: Error reported by the runtime collaborator

        Returns:
            ErrorDetectionResult with exactly one error
        """
        analysis = ErrorAnalyzer.analyze(self._format_runtime_error(error_data))
        error = DetectedError(
            id=self._next_id(),
            stage=ErrorStage.RUNTIME,
            message=error_data.message,
            analysis=analysis,
            line=error_data.line,
            column=error_data.column,
            source_line=error_data.source,
            stack=error_data.stack,
        )
        self._record([error])

        return ErrorDetectionResult(
            has_errors=True,
            errors=(error,),
            summary=f"Runtime error: {analysis.root_cause}",
            primary_error=error,
        )

    def detect_generic_error(
        self,
        exception: BaseException,
        stage: ErrorStage = ErrorStage.OTHER,
    ) -> ErrorDetectionResult:
        """Detect an error from an arbitrary exception.

        The stack comes from a ``stack`` attribute when the exception carries
        one (errors relayed from a JavaScript runtime do), otherwise from the
        Python traceback.

        Args:
            exception: The exception to normalize
            stage: Stage the exception was raised in

        Returns:
            ErrorDetectionResult with exactly one error
        """
        message = str(exception)
        stack = getattr(exception, "stack", None)
        if not isinstance(stack, str):
            stack = "".join(traceback.format_exception(exception))

        analysis = ErrorAnalyzer.analyze(message)
        match = COLON_LOCATION_PATTERN.search(stack)

        error = DetectedError(
            id=self._next_id(),
            stage=stage,
            message=message,
            analysis=analysis,
            line=int(match.group(1)) if match else None,
            column=int(match.group(2)) if match else None,
            stack=stack,
        )
        self._record([error])

        return ErrorDetectionResult(
            has_errors=True,
            errors=(error,),
            summary=f"{stage} error: {analysis.root_cause}",
            primary_error=error,
        )

    def is_fixable_by_llm(self, error: DetectedError) -> bool:
        """Whether a model-generated repair is worth attempting for this error."""
        category = error.analysis.category

        if category in (ErrorCategory.SYNTAX, ErrorCategory.SEMANTIC):
            return True

        if category == ErrorCategory.ENVIRONMENT:
            # Wrong imports are fixable; missing sandbox features are not
            lowered = error.message.lower()
            return "import" in lowered or "module" in lowered

        if category == ErrorCategory.CAPABILITY:
            return False

        return True

    def get_error_priority(self, error: DetectedError) -> int:
        """Fix priority of an error; lower numbers are fixed first."""
        return get_error_priority(error.analysis.category, self._config)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _result(self, errors: list[DetectedError], stage: ErrorStage) -> ErrorDetectionResult:
        if not errors:
            return ErrorDetectionResult(
                has_errors=False,
                errors=(),
                summary=self._summarize((), stage),
            )

        # sorted() is stable, so equal priorities keep their reported order
        ordered = tuple(sorted(errors, key=self.get_error_priority))
        self._record(ordered)

        return ErrorDetectionResult(
            has_errors=True,
            errors=ordered,
            summary=self._summarize(ordered, stage),
            primary_error=ordered[0],
        )

    def _find_disallowed_call(self, code: str) -> str | None:
        for call in self._config.disallowed_output_calls:
            if call in code:
                return f"{call.rstrip('(')}()"
        return None

    def _disallowed_call_error(self, call: str, stage: ErrorStage) -> DetectedError:
        message = f"Browser environment does not support {call}. Use import statements instead."
        return DetectedError(
            id=self._next_id(),
            stage=stage,
            message=message,
            analysis=AnalyzedError(
                original_message=message,
                category=ErrorCategory.ENVIRONMENT,
                root_cause=f"CommonJS {call} used in browser environment",
                suggestion=f"Replace {call} with ES module import statements",
            ),
        )

    @staticmethod
    def _format_build_error(error: BuildError) -> str:
        formatted = error.message
        if error.line is not None:
            formatted += f" at line {error.line}"
            if error.column is not None:
                formatted += f":{error.column}"
        if error.source:
            formatted += f"\nSource: {error.source}"
        return formatted

    @staticmethod
    def _format_runtime_error(error: RuntimeErrorData) -> str:
        formatted = error.message
        if error.line is not None:
            formatted += f" at line {error.line}"
            if error.column is not None:
                formatted += f":{error.column}"
        if error.stack:
            formatted += f"\nStack: {error.stack}"
        return formatted

    @staticmethod
    def _summarize(errors: Sequence[DetectedError], stage: ErrorStage) -> str:
        if not errors:
            return f"{stage} successful"

        if len(errors) == 1:
            return f"{stage}: {errors[0].analysis.root_cause}"

        categories = list(dict.fromkeys(str(e.analysis.category) for e in errors))
        return f"{stage}: {len(errors)} errors ({', '.join(categories)})"

    @staticmethod
    def _record(errors: Iterable[DetectedError]) -> None:
        metrics = get_metrics()
        for error in errors:
            metrics.errors_detected.inc(
                labels={"stage": str(error.stage), "category": str(error.analysis.category)}
            )
            log.info(
                "error_detected",
                error_id=error.id,
                stage=str(error.stage),
                category=str(error.analysis.category),
                line=error.line,
            )
