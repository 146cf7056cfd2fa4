"""Session state machine for the self-correcting repair loop.

A FeedbackLoop owns one FeedbackSession: the user's original request, every
failed attempt recorded as a FeedbackIteration, the current code and the
session status. Status only moves forward, from active to resolved or
failed, and the session fails on its own once the iteration budget is used.
"""

from __future__ import annotations

import copy
import dataclasses
from typing import Any

import structlog
from pydantic import TypeAdapter

from repair_loop.config.schema import DEFAULT_FEEDBACK_CONFIG, FeedbackConfig
from repair_loop.core import prompts
from repair_loop.core.context_extractor import SmartContextExtractor
from repair_loop.core.error_analyzer import ErrorAnalyzer
from repair_loop.core.feedback_policy import get_retry_strategy
from repair_loop.core.feedback_policy import should_retry as policy_should_retry
from repair_loop.core.fix_generator import (
    IncrementalFixGenerator,
    is_similar_error,
    normalize_message,
)
from repair_loop.interfaces.completion import CompletionProvider
from repair_loop.models.context import SmartContext
from repair_loop.models.errors import (
    AnalyzedError,
    DetectedError,
    ErrorCategory,
    ErrorStage,
)
from repair_loop.models.fix import FixResult
from repair_loop.models.session import (
    FeedbackIteration,
    FeedbackSession,
    SessionStatus,
    SessionSummary,
    TokenUsageStats,
)
from repair_loop.utils.async_helpers import CancellationToken, SessionStateError
from repair_loop.utils.logging import bind_context, unbind_context
from repair_loop.utils.metrics import get_metrics
from repair_loop.utils.security import SecretRedactor

log = structlog.get_logger()

_session_adapter: TypeAdapter[FeedbackSession] = TypeAdapter(FeedbackSession)


class FeedbackLoop:
    """Drives one repair session from first failure to resolution or failure.

    Example:
        loop = FeedbackLoop("s1", "Create a counter", completion=adapter)
        loop.add_detected_error(code, result.primary_error, ErrorStage.BUILD)
        fix = await loop.attempt_fix()
        # rebuild fix.fixed_code, then either mark_resolved() or record the next error
    """

    def __init__(
        self,
        session_id: str,
        original_prompt: str,
        max_iterations: int | None = None,
        *,
        generator: IncrementalFixGenerator | None = None,
        completion: CompletionProvider | None = None,
        config: FeedbackConfig | None = None,
        extractor: SmartContextExtractor | None = None,
    ) -> None:
        """Initialize a new active session.

        Args:
            session_id: Identifier of the session
            original_prompt: The user's original request
            max_iterations: Iteration budget; defaults to config.max_retries
            generator: Fix generator to use. Passing a shared generator makes
                same-error detection span sessions.
            completion: Completion collaborator for a private generator
            config: Policy configuration
            extractor: Context extractor
        """
        self._config = config or DEFAULT_FEEDBACK_CONFIG
        self._extractor = extractor or SmartContextExtractor(self._config)
        self._redactor = SecretRedactor()

        if generator is None and completion is not None:
            generator = IncrementalFixGenerator(
                completion, config=self._config, extractor=self._extractor
            )
        self._generator = generator

        self._session = FeedbackSession(
            id=session_id,
            original_prompt=original_prompt,
            max_iterations=(
                max_iterations if max_iterations is not None else self._config.max_retries
            ),
        )

    # -------------------------------------------------------------------------
    # Construction and serialization
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: FeedbackSession,
        *,
        generator: IncrementalFixGenerator | None = None,
        completion: CompletionProvider | None = None,
        config: FeedbackConfig | None = None,
        extractor: SmartContextExtractor | None = None,
    ) -> FeedbackLoop:
        """Resume a session from a previously captured state.

        The session is deep-copied; later changes to either side do not leak.
        """
        loop = cls(
            session.id,
            session.original_prompt,
            session.max_iterations,
            generator=generator,
            completion=completion,
            config=config,
            extractor=extractor,
        )
        loop._session = copy.deepcopy(session)
        return loop

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe snapshot of the session, timestamps as ISO-8601 strings."""
        data: dict[str, Any] = _session_adapter.dump_python(self._session, mode="json")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> FeedbackLoop:
        """Restore a loop from ``to_dict()`` output.

        Raises:
            pydantic.ValidationError: If the data is not a valid session
        """
        session = _session_adapter.validate_python(data)
        loop = cls.from_session(session, **kwargs)
        log.debug("session_restored", session_id=session.id, iterations=len(session.iterations))
        return loop

    def get_session(self) -> FeedbackSession:
        return self._session

    # -------------------------------------------------------------------------
    # Recording failures
    # -------------------------------------------------------------------------

    def add_feedback(self, code: str, error_log: str) -> FeedbackIteration:
        """Record a failed attempt from raw error text.

        Args:
            code: Code that failed
            error_log: Error output of the failing stage

        Returns:
            The recorded iteration

        Raises:
            SessionStateError: If the session is no longer active
        """
        self._require_active()

        iteration = FeedbackIteration(
            iteration=len(self._session.iterations) + 1,
            code=code,
            error_log=error_log,
            analysis=ErrorAnalyzer.analyze(error_log),
        )
        self._append(iteration, code)
        return iteration

    def add_detected_error(
        self,
        code: str,
        detected_error: DetectedError,
        stage: ErrorStage,
    ) -> FeedbackIteration:
        """Record a failed attempt from a detected error.

        Extracts the smart context for the upcoming attempt and picks the
        strategy that attempt is expected to use.

        Raises:
            SessionStateError: If the session is no longer active
        """
        self._require_active()

        attempt = len(self._session.iterations) + 1
        context = self._extractor.extract(code, detected_error, attempt)
        same_error_count = self._count_same_errors(
            detected_error.message, detected_error.analysis.category
        )
        strategy = get_retry_strategy(attempt, same_error_count, len(code), self._config)

        iteration = FeedbackIteration(
            iteration=attempt,
            code=code,
            error_log=detected_error.message,
            analysis=detected_error.analysis,
            stage=stage,
            strategy=strategy,
            context=context,
            estimated_tokens=context.estimated_tokens,
            detected_error=dataclasses.replace(detected_error, stage=stage),
        )
        self._session.total_tokens_used += context.estimated_tokens
        self._append(iteration, code)
        return iteration

    # -------------------------------------------------------------------------
    # Fixing
    # -------------------------------------------------------------------------

    async def attempt_fix(self, cancel_token: CancellationToken | None = None) -> FixResult | None:
        """Generate a fix for the latest recorded error.

        Args:
            cancel_token: Cancels the attempt; the session is left untouched

        Returns:
            The FixResult, or None when there is no iteration or no code

        Raises:
            SessionStateError: If the session is no longer active
            ValueError: If the loop was built without a generator or completion
            asyncio.CancelledError: If cancel_token was cancelled
        """
        self._require_active()

        last = self.get_last_iteration()
        if last is None or not self._session.current_code:
            return None

        if self._generator is None:
            raise ValueError("FeedbackLoop has no fix generator; pass generator or completion")

        error = self._error_from_iteration(last)

        bind_context(session_id=self._session.id)
        try:
            result = await self._generator.generate_fix(
                self._session.current_code,
                error,
                last.iteration,
                original_prompt=self._session.original_prompt,
                cancel_token=cancel_token,
            )
        finally:
            unbind_context("session_id")

        self._session.iterations[-1] = dataclasses.replace(last, fix_result=result)
        self._session.total_tokens_used += result.estimated_tokens
        if result.success:
            self._session.current_code = result.fixed_code

        log.info(
            "fix_attempt_recorded",
            session_id=self._session.id,
            iteration=last.iteration,
            success=result.success,
            strategy=str(result.strategy),
            total_tokens=self._session.total_tokens_used,
        )
        return result

    def generate_correction_prompt(self) -> str:
        """Prompt asking for a fix of the latest recorded error.

        Uses the smart context when the latest iteration has one, otherwise
        the whole failing code. Empty when nothing was recorded yet.
        """
        last = self.get_last_iteration()
        if last is None:
            return ""

        if last.context is not None:
            return self.generate_incremental_fix_prompt(last.context, last.analysis)

        return prompts.build_correction_prompt(
            self._session.original_prompt,
            last.code,
            self._redactor.redact(last.error_log),
            last.analysis,
        )

    def generate_incremental_fix_prompt(
        self,
        context: SmartContext,
        analysis: AnalyzedError,
    ) -> str:
        """Context-only fix prompt for an error and its smart context."""
        return prompts.build_context_fix_prompt(
            self._session.original_prompt,
            analysis,
            self._redactor.redact(analysis.original_message),
            self._extractor.format_for_prompt(context),
            context,
        )

    # -------------------------------------------------------------------------
    # Policy queries
    # -------------------------------------------------------------------------

    def should_use_incremental_fix(self) -> bool:
        """Whether the next attempt should patch rather than regenerate."""
        if not self._config.features.enable_incremental_fixes:
            return False

        last = self.get_last_iteration()
        if last is None:
            return True

        if self.get_current_attempt() <= self._config.retry_strategies.incremental_threshold:
            return True

        same_error_count = self._count_same_errors(last.error_log, last.analysis.category)
        return same_error_count < self._config.retry_strategies.same_error_threshold

    def should_retry(self) -> bool:
        """Whether another attempt is allowed."""
        if not self.is_active():
            return False

        last = self.get_last_iteration()
        if last is None:
            return True

        return policy_should_retry(
            self.get_current_attempt(), last.analysis.category, self._config
        )

    def get_token_usage_stats(self) -> TokenUsageStats:
        """Context token usage across iterations that carried a smart context."""
        with_context = [
            iteration.estimated_tokens or 0
            for iteration in self._session.iterations
            if iteration.context is not None
        ]
        total = sum(with_context)
        return TokenUsageStats(
            total_tokens=total,
            avg_tokens_per_iteration=round(total / len(with_context)) if with_context else 0,
            iteration_count=len(self._session.iterations),
        )

    def get_current_attempt(self) -> int:
        return len(self._session.iterations)

    def get_remaining_attempts(self) -> int:
        return max(0, self._session.max_iterations - len(self._session.iterations))

    def get_last_iteration(self) -> FeedbackIteration | None:
        return self._session.iterations[-1] if self._session.iterations else None

    @property
    def current_code(self) -> str | None:
        return self._session.current_code

    @current_code.setter
    def current_code(self, code: str) -> None:
        self._session.current_code = code

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def is_active(self) -> bool:
        return self._session.status == SessionStatus.ACTIVE

    def mark_resolved(self) -> None:
        """Mark the session resolved.

        Raises:
            SessionStateError: If the session already failed
        """
        self._transition(SessionStatus.RESOLVED)

    def mark_failed(self) -> None:
        """Mark the session failed.

        Raises:
            SessionStateError: If the session is already resolved
        """
        self._transition(SessionStatus.FAILED)

    def get_summary(self) -> SessionSummary:
        last = self.get_last_iteration()
        return SessionSummary(
            status=self._session.status,
            attempts=len(self._session.iterations),
            max_attempts=self._session.max_iterations,
            remaining_attempts=self.get_remaining_attempts(),
            tokens_used=self._session.total_tokens_used,
            last_error=last.analysis.root_cause if last else None,
            last_strategy=last.strategy if last else None,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_active(self) -> None:
        if not self.is_active():
            raise SessionStateError(
                f"Session {self._session.id} is {self._session.status}; "
                "no further feedback or fixes accepted"
            )

    def _append(self, iteration: FeedbackIteration, code: str) -> None:
        self._session.iterations.append(iteration)
        self._session.current_code = code

        log.info(
            "feedback_recorded",
            session_id=self._session.id,
            iteration=iteration.iteration,
            category=str(iteration.analysis.category),
            strategy=str(iteration.strategy) if iteration.strategy else None,
            remaining=self.get_remaining_attempts(),
        )

        if len(self._session.iterations) >= self._session.max_iterations:
            self._transition(SessionStatus.FAILED)

    def _transition(self, status: SessionStatus) -> None:
        current = self._session.status
        if current == status:
            return
        if current != SessionStatus.ACTIVE:
            raise SessionStateError(
                f"Session {self._session.id} cannot move from {current} to {status}"
            )

        self._session.status = status
        metrics = get_metrics()
        if status == SessionStatus.RESOLVED:
            metrics.sessions_resolved.inc()
            metrics.iterations_to_resolve.observe(len(self._session.iterations))
        else:
            metrics.sessions_failed.inc()

        log.info(
            "session_finished",
            session_id=self._session.id,
            status=str(status),
            attempts=len(self._session.iterations),
            tokens_used=self._session.total_tokens_used,
        )

    def _count_same_errors(self, message: str, category: ErrorCategory) -> int:
        normalized = normalize_message(message)
        threshold = self._config.similarity_threshold
        return sum(
            1
            for iteration in self._session.iterations
            if normalize_message(iteration.error_log) == normalized
            or (
                iteration.analysis.category == category
                and is_similar_error(normalize_message(iteration.error_log), normalized, threshold)
            )
        )

    def _error_from_iteration(self, iteration: FeedbackIteration) -> DetectedError:
        if iteration.detected_error is not None:
            return iteration.detected_error

        # Raw feedback: only what the analyzer could read from the log
        return DetectedError(
            id=f"{self._session.id}_iter_{iteration.iteration}",
            stage=iteration.stage or ErrorStage.BUILD,
            message=iteration.error_log,
            analysis=iteration.analysis,
            line=iteration.analysis.line,
            column=iteration.analysis.column,
            timestamp=iteration.timestamp,
        )
