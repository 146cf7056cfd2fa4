"""Strategy-driven repair of a single detected error.

IncrementalFixGenerator escalates from patching the lines around an error,
to rewriting the enclosing function, to regenerating the whole file. The
choice depends on the attempt number and on whether the same error keeps
coming back, which it tracks in a bounded history.
"""

from __future__ import annotations

import math
import re
from collections import deque

import structlog

from repair_loop.config.schema import DEFAULT_FEEDBACK_CONFIG, FeedbackConfig
from repair_loop.core import prompts
from repair_loop.core.context_extractor import (
    LINE_PREFIX_PATTERN,
    SmartContextExtractor,
    estimate_tokens,
)
from repair_loop.core.feedback_policy import get_retry_strategy
from repair_loop.interfaces.completion import CompletionProvider
from repair_loop.models.context import LineRange, SmartContext
from repair_loop.models.errors import DetectedError
from repair_loop.models.fix import (
    CompletionMessage,
    FixHistoryEntry,
    FixResult,
    RetryStrategy,
)
from repair_loop.utils.async_helpers import CancellationToken, run_cancellable
from repair_loop.utils.metrics import Timer, get_metrics
from repair_loop.utils.security import SecretRedactor

log = structlog.get_logger()

CODE_FENCE_PATTERN = re.compile(r"```[\w+-]*\n?")

# Words this short carry no signal for similarity
MIN_SIGNIFICANT_WORD_LENGTH = 4


def clean_generated_code(text: str) -> str:
    """Strip markdown fences and leaked line-number prefixes from a reply."""
    text = CODE_FENCE_PATTERN.sub("", text)
    text = LINE_PREFIX_PATTERN.sub("", text)
    return text.strip()


def _significant_words(message: str) -> set[str]:
    return {word for word in message.split() if len(word) >= MIN_SIGNIFICANT_WORD_LENGTH}


def is_similar_error(first: str, second: str, threshold: float = 0.5) -> bool:
    """Jaccard similarity of significant words is above the threshold.

    Args:
        first: Normalized error message
        second: Normalized error message
        threshold: Similarity that must be exceeded

    Returns:
        True if the messages share most of their significant words
    """
    words_first = _significant_words(first)
    words_second = _significant_words(second)
    union = words_first | words_second
    if not union:
        return False
    return len(words_first & words_second) / len(union) > threshold


def normalize_message(message: str) -> str:
    return message.lower().strip()


def splice_lines(source: str, replacement: str, line_range: LineRange) -> str:
    """Replace an inclusive 1-based line range of source with replacement."""
    lines = source.split("\n")
    start = line_range.start_line - 1
    return "\n".join(lines[:start] + replacement.split("\n") + lines[line_range.end_line :])


class IncrementalFixGenerator:
    """Generates fixes with escalating scope.

    One generator normally serves one session. Sharing a generator between
    sessions makes same-error detection span those sessions.

    Example:
        generator = IncrementalFixGenerator(completion)
        result = await generator.generate_fix(code, detected_error, attempt_number=1)
        if result.success:
            code = result.fixed_code
    """

    def __init__(
        self,
        completion: CompletionProvider,
        config: FeedbackConfig | None = None,
        extractor: SmartContextExtractor | None = None,
        redactor: SecretRedactor | None = None,
    ) -> None:
        """Initialize the generator.

        Args:
            completion: Completion collaborator used for every fix
            config: Policy configuration
            extractor: Context extractor. If None, creates one from config.
            redactor: Redactor applied to error text in prompts
        """
        self._completion = completion
        self._config = config or DEFAULT_FEEDBACK_CONFIG
        self._extractor = extractor or SmartContextExtractor(self._config)
        self._redactor = redactor or SecretRedactor()
        self._history: deque[FixHistoryEntry] = deque(maxlen=self._config.fix_history_size)

    @property
    def history(self) -> tuple[FixHistoryEntry, ...]:
        """Snapshot of the recent fix history, oldest first."""
        return tuple(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def count_same_error(self, error: DetectedError) -> int:
        """How many history entries describe the same error as this one."""
        message = normalize_message(error.message)
        category = str(error.analysis.category)
        threshold = self._config.similarity_threshold

        return sum(
            1
            for entry in self._history
            if normalize_message(entry.error_message) == message
            or (
                entry.error_category == category
                and is_similar_error(normalize_message(entry.error_message), message, threshold)
            )
        )

    async def generate_fix(
        self,
        original_code: str,
        error: DetectedError,
        attempt_number: int,
        original_prompt: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> FixResult:
        """Generate a fix for one error.

        Completion failures never propagate; they come back as an
        unsuccessful FixResult carrying the unchanged code.

        Args:
            original_code: Current full source
            error: Error to fix
            attempt_number: 1-based attempt within the session
            original_prompt: The user's original request, used by full regeneration
            cancel_token: Cancels the attempt, abandoning an in-flight
                completion

        Returns:
            FixResult describing the attempt

        Raises:
            asyncio.CancelledError: If cancel_token was cancelled
        """
        self._history.append(
            FixHistoryEntry(
                error_message=error.message,
                error_category=str(error.analysis.category),
                attempt=attempt_number,
            )
        )

        same_error_count = self.count_same_error(error)
        strategy = get_retry_strategy(
            attempt_number, same_error_count, len(original_code), self._config
        )

        log.info(
            "fix_strategy_selected",
            error_id=error.id,
            attempt=attempt_number,
            strategy=str(strategy),
            same_error_count=same_error_count,
            category=str(error.analysis.category),
        )

        metrics = get_metrics()
        metrics.fix_attempts.inc(
            labels={"category": str(error.analysis.category), "strategy": str(strategy)}
        )

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            if strategy == RetryStrategy.TARGETED_FIX:
                result = await self._targeted_fix(original_code, error, cancel_token)
            elif strategy == RetryStrategy.INCREMENTAL:
                result = await self._incremental_fix(original_code, error, cancel_token)
            else:
                result = await self._full_regeneration(
                    original_code, error, original_prompt, cancel_token
                )
        except Exception as e:
            log.warning(
                "fix_generation_failed",
                error_id=error.id,
                strategy=str(strategy),
                exception_type=type(e).__name__,
                error=str(e),
            )
            metrics.fix_failures.inc(labels={"strategy": str(strategy)})
            return FixResult(
                success=False,
                fixed_code=original_code,
                change_description="Fix generation failed",
                strategy=strategy,
                estimated_tokens=0,
                error=str(e),
            )

        metrics.estimated_tokens.inc(result.estimated_tokens)
        log.info(
            "fix_generated",
            error_id=error.id,
            strategy=str(strategy),
            estimated_tokens=result.estimated_tokens,
        )
        return result

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    async def _targeted_fix(
        self,
        original_code: str,
        error: DetectedError,
        cancel_token: CancellationToken | None,
    ) -> FixResult:
        context = self._extractor.extract_targeted_context(original_code, error)
        prompt = prompts.build_targeted_fix_prompt(
            error.analysis,
            self._redactor.redact(error.analysis.original_message),
            self._extractor.format_for_prompt(context),
            context,
        )

        reply = await self._complete(
            prompts.TARGETED_FIX_SYSTEM_PROMPT,
            prompt,
            temperature=self._config.temperatures.targeted,
            max_tokens=self._config.token_limits.max_fix_tokens,
            strategy=RetryStrategy.TARGETED_FIX,
            cancel_token=cancel_token,
        )

        fixed_code = splice_lines(
            original_code, clean_generated_code(reply), context.surrounding_range
        )
        return FixResult(
            success=True,
            fixed_code=fixed_code,
            change_description=(
                f"Fixed {error.analysis.category} error at line {error.line or 'unknown'}"
            ),
            strategy=RetryStrategy.TARGETED_FIX,
            estimated_tokens=context.estimated_tokens + estimate_tokens(reply),
        )

    async def _incremental_fix(
        self,
        original_code: str,
        error: DetectedError,
        cancel_token: CancellationToken | None,
    ) -> FixResult:
        context = self._extractor.extract_incremental_context(original_code, error)
        prompt = prompts.build_incremental_fix_prompt(
            error.analysis,
            self._redactor.redact(error.analysis.original_message),
            self._extractor.format_for_prompt(context),
            context,
        )

        reply = await self._complete(
            prompts.INCREMENTAL_FIX_SYSTEM_PROMPT,
            prompt,
            temperature=self._config.temperatures.incremental,
            max_tokens=self._config.token_limits.max_fix_tokens * 2,
            strategy=RetryStrategy.INCREMENTAL,
            cancel_token=cancel_token,
        )

        target = _splice_target(context)
        fixed_code = splice_lines(original_code, clean_generated_code(reply), target)
        return FixResult(
            success=True,
            fixed_code=fixed_code,
            change_description=(
                f"Rewrote section around line {error.line or 'unknown'} "
                f"to fix {error.analysis.category} error"
            ),
            strategy=RetryStrategy.INCREMENTAL,
            estimated_tokens=context.estimated_tokens + estimate_tokens(reply),
        )

    async def _full_regeneration(
        self,
        original_code: str,
        error: DetectedError,
        original_prompt: str | None,
        cancel_token: CancellationToken | None,
    ) -> FixResult:
        context = self._extractor.extract_full_context(original_code, error)
        prompt = prompts.build_full_regeneration_prompt(
            error.analysis,
            self._redactor.redact(error.analysis.original_message),
            original_code,
            context,
            original_prompt,
        )

        reply = await self._complete(
            prompts.FULL_REGENERATION_SYSTEM_PROMPT,
            prompt,
            temperature=self._config.temperatures.full_regeneration,
            max_tokens=self._config.token_limits.full_regeneration_tokens,
            strategy=RetryStrategy.FULL_REGENERATION,
            cancel_token=cancel_token,
        )

        cleaned = clean_generated_code(reply)
        return FixResult(
            success=True,
            fixed_code=cleaned,
            change_description=(
                f"Regenerated entire component to fix {error.analysis.category} error"
            ),
            strategy=RetryStrategy.FULL_REGENERATION,
            estimated_tokens=math.ceil(len(original_code) / 4) + math.ceil(len(cleaned) / 4),
        )

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        strategy: RetryStrategy,
        cancel_token: CancellationToken | None,
    ) -> str:
        messages = [
            CompletionMessage(role="system", content=system_prompt),
            CompletionMessage(role="user", content=user_prompt),
        ]
        log.debug(
            "completion_requested",
            strategy=str(strategy),
            temperature=temperature,
            max_tokens=max_tokens,
            prompt_chars=len(user_prompt),
        )

        with Timer(get_metrics().completion_duration):
            reply = await run_cancellable(
                self._completion.complete(
                    messages, temperature=temperature, max_tokens=max_tokens
                ),
                cancel_token,
            )

        return reply


def _splice_target(context: SmartContext) -> LineRange:
    if context.affected_function_range is not None:
        return context.affected_function_range
    return context.surrounding_range
