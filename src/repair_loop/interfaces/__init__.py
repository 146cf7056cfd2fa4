"""Protocol interfaces for external collaborators."""

from .completion import CompletionProvider

__all__ = ["CompletionProvider"]
