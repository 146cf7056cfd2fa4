"""Completion adapters for model APIs."""

from .anthropic import AnthropicCompletionAdapter

__all__ = ["AnthropicCompletionAdapter"]
