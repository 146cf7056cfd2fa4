"""Secret redaction for log output and outgoing error text.

Generated applications occasionally hard-code credentials, and build or
runtime errors echo source lines back. The redactor keeps those values out of
logs and out of the error sections of repair prompts. Source code that gets
spliced back is never redacted, since that would corrupt the program.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


class SecurityError(Exception):
    """Base exception for security-related errors."""


class RedactionError(SecurityError):
    """A redaction pattern could not be compiled or applied."""


@dataclass(frozen=True)
class SecretPattern:
    """One kind of secret and the regex that finds it."""

    kind: str
    regex: str


SECRET_PATTERNS: tuple[SecretPattern, ...] = (
    # Assignments in .env files and config objects pasted into error output
    SecretPattern(
        "assigned secret",
        r"(?i)(api[_-]?key|secret|token|password|credential)\s*[=:]\s*[\"']?[\w-]{16,}",
    ),
    SecretPattern("anthropic key", r"sk-ant-[\w-]{40,}"),
    SecretPattern("openai project key", r"sk-proj-[a-zA-Z0-9]{20,}"),
    SecretPattern("openai key", r"sk-[a-zA-Z0-9]{48}"),
    SecretPattern("stripe secret key", r"sk_live_[a-zA-Z0-9]{24,}"),
    SecretPattern("github token", r"gh[pousr]_[a-zA-Z0-9]{36}"),
    SecretPattern("slack token", r"xox[baprs]-[\w-]+"),
    SecretPattern("aws access key", r"AKIA[0-9A-Z]{16}"),
    SecretPattern("google api key", r"AIza[0-9A-Za-z\-_]{35}"),
    SecretPattern(
        "connection string",
        r"(?i)(postgres(?:ql)?|mysql|mongodb(?:\+srv)?|redis)://[^:\s]+:[^@\s]+@[^\s]+",
    ),
    SecretPattern("private key", r"-----BEGIN (?:RSA |EC |OPENSSH )?PRIVATE KEY-----"),
    SecretPattern("jwt", r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*"),
)


class SecretRedactor:
    """Replaces known secret shapes with a placeholder.

    Fails closed: a pattern that cannot be compiled or applied raises
    RedactionError rather than letting the text through unredacted.

    Example:
        redactor = SecretRedactor()
        prompt_error = redactor.redact(build_output)
    """

    def __init__(
        self,
        placeholder: str = "[REDACTED]",
        extra_patterns: tuple[SecretPattern, ...] = (),
    ) -> None:
        self.placeholder = placeholder
        self._compiled: list[tuple[SecretPattern, re.Pattern[str]]] = []

        for secret in (*SECRET_PATTERNS, *extra_patterns):
            try:
                self._compiled.append((secret, re.compile(secret.regex)))
            except re.error as e:
                raise RedactionError(f"Invalid pattern for {secret.kind}: {e}") from e

    def redact(self, text: str) -> str:
        """Return `text` with every detected secret replaced.

        Raises:
            RedactionError: If a pattern cannot be applied
        """
        if not text:
            return text

        for secret, compiled in self._compiled:
            try:
                text = compiled.sub(self.placeholder, text)
            except (re.error, TypeError) as e:
                raise RedactionError(f"Redaction failed for {secret.kind}: {e}") from e
        return text

    def find_kinds(self, text: str) -> list[str]:
        """Kinds of secret present in `text`, in pattern order."""
        if not text:
            return []
        return [secret.kind for secret, compiled in self._compiled if compiled.search(text)]

    def has_secrets(self, text: str) -> bool:
        return bool(self.find_kinds(text))
