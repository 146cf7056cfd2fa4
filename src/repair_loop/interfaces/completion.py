"""Abstract interface for text-completion backends."""

from collections.abc import Sequence
from typing import Protocol

from ..models.fix import CompletionMessage


class CompletionProvider(Protocol):
    """Abstract interface for the completion collaborator.

    The repair loop treats completions as opaque text: it sends a system
    prompt plus one user prompt and splices whatever text comes back.
    Adapters for concrete model APIs implement this protocol.
    """

    async def complete(
        self,
        messages: Sequence[CompletionMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """
        Produce a completion for a conversation.

        Security: error text inside the messages MUST already be redacted
        with SecretRedactor.

        Args:
            messages: Conversation, usually one system and one user message
            temperature: Sampling temperature
            max_tokens: Upper bound on reply length in tokens

        Returns:
            The reply text

        Raises:
            CompletionError: If the backend fails
            RateLimitError: If rate limit exceeded
            TimeoutError: If the request exceeds the configured timeout
        """
        ...
