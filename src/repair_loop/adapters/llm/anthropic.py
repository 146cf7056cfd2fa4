"""Anthropic Claude completion adapter.

This module implements the CompletionProvider protocol on top of the
Anthropic Python SDK.

- System messages are lifted into the API's ``system`` parameter
- Every call is bounded by the configured completion timeout
- Transient connection failures are retried with exponential backoff
- SDK errors are mapped onto the package exception hierarchy
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import anthropic
import structlog

from ...config.schema import AnthropicConfig
from ...models.fix import CompletionMessage
from ...utils.async_helpers import (
    CompletionError,
    RateLimitError,
    TimeoutError,
    create_retry,
    with_timeout,
)

log = structlog.get_logger()

# Maximum reply length in characters
MAX_RESPONSE_LENGTH = 200000

DEFAULT_TIMEOUT_MS = 60000


def _retry_after(error: anthropic.RateLimitError) -> int | None:
    value = error.response.headers.get("retry-after")
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


class AnthropicCompletionAdapter:
    """Anthropic adapter implementing the CompletionProvider protocol.

    Example:
        config = AnthropicConfig(api_key="sk-ant-...")
        adapter = AnthropicCompletionAdapter(config, timeout_ms=60000)

        reply = await adapter.complete(messages, temperature=0.2, max_tokens=1500)
    """

    def __init__(
        self,
        config: AnthropicConfig,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        """Initialize the Anthropic adapter.

        Args:
            config: Anthropic-specific configuration.
            timeout_ms: Upper bound for one completion, retries included.
            client: SDK client. If None, creates one without SDK-level retries.
        """
        self._config = config
        self._timeout = timeout_ms / 1000
        # Retries are handled here so they count against the timeout
        self._client = client or anthropic.AsyncAnthropic(api_key=config.api_key, max_retries=0)
        self._create = create_retry(
            (anthropic.APIConnectionError,),
            max_attempts=config.max_retries,
        )(self._create_message)

    @property
    def model_name(self) -> str:
        """Return the model identifier being used."""
        return self._config.model

    async def complete(
        self,
        messages: Sequence[CompletionMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Request a completion.

        Args:
            messages: Conversation; system messages become the system prompt.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in the reply.

        Returns:
            Concatenated text of the reply.

        Raises:
            CompletionError: If the API fails or returns no text.
            RateLimitError: If rate limit exceeded.
            TimeoutError: If the request exceeds the timeout.
        """
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        conversation = [
            {"role": m.role, "content": m.content} for m in messages if m.role != "system"
        ]
        if not conversation:
            raise CompletionError("Completion request has no user message")

        try:
            response = await with_timeout(
                self._create(
                    system=system,
                    messages=conversation,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self._timeout,
                error_message=f"Anthropic completion timed out after {self._timeout}s",
            )
        except anthropic.RateLimitError as e:
            log.warning("anthropic_rate_limit", error=str(e))
            raise RateLimitError(
                f"Anthropic rate limit exceeded: {e}", retry_after=_retry_after(e)
            ) from e
        except anthropic.APITimeoutError as e:
            log.error("anthropic_timeout", error=str(e))
            raise TimeoutError(f"Anthropic request timed out: {e}") from e
        except anthropic.APIError as e:
            log.error("anthropic_api_error", error=str(e))
            raise CompletionError(f"Anthropic API error: {e}") from e

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text

        if not text.strip():
            raise CompletionError("Anthropic returned an empty completion")
        if len(text) > MAX_RESPONSE_LENGTH:
            raise CompletionError(f"Response exceeds maximum length: {len(text)}")

        log.debug(
            "anthropic_completion_received",
            model=self._config.model,
            stop_reason=getattr(response, "stop_reason", None),
            chars=len(text),
        )
        return text

    async def _create_message(
        self,
        *,
        system: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> Any:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        return await self._client.messages.create(**kwargs)
