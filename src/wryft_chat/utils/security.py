"""Secret redaction for log output.

The client carries a bearer token for every REST call and embeds it in the
Authorization header. Anything that might echo that header, or a JWT in an
error body, is scrubbed before it reaches a log sink.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, NamedTuple

import structlog

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger()

# Shorter literals would blank out ordinary chat words
MIN_LITERAL_LENGTH = 8


class RedactionError(Exception):
    """Raised when a secret pattern cannot be built."""


class SecretPattern(NamedTuple):
    name: str
    regex: re.Pattern[str]


class SecretRedactor:
    """Replace credential-shaped substrings with a placeholder.

    Construction fails closed: a pattern that does not compile raises
    :class:`RedactionError` rather than leaving a gap in coverage.

    Besides the shape-based patterns, exact values known to be secret (the
    configured API token) can be registered with :meth:`add_literal`.
    """

    DEFAULT_PATTERNS: tuple[tuple[str, str], ...] = (
        (r"(?i)bearer\s+[\w.~+/=-]+", "Bearer credential"),
        (r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*", "JWT token"),
        (
            r"(?i)(api[_-]?key|secret|token|password)\s*[=:]\s*[\"']?[\w.-]{16,}",
            "Generic secret",
        ),
    )

    def __init__(
        self,
        placeholder: str = "[REDACTED]",
        custom_patterns: Sequence[tuple[str, str]] | None = None,
    ) -> None:
        self.placeholder = placeholder
        self._secrets: list[SecretPattern] = [
            self._compile(source, name)
            for source, name in (*self.DEFAULT_PATTERNS, *(custom_patterns or ()))
        ]

    @staticmethod
    def _compile(source: str, name: str) -> SecretPattern:
        try:
            return SecretPattern(name, re.compile(source))
        except re.error as e:
            log.error("pattern_compilation_failed", pattern_name=name, error=str(e))
            raise RedactionError(f"Failed to compile secret pattern '{source}': {e}") from e

    @property
    def patterns(self) -> list[re.Pattern[str]]:
        """Compiled patterns in the order they are applied."""
        return [secret.regex for secret in self._secrets]

    def add_literal(self, value: str, name: str = "Configured secret") -> bool:
        """Redact every occurrence of ``value`` from now on.

        Returns False, and registers nothing, when ``value`` is too short to
        be told apart from ordinary text.
        """
        if len(value) < MIN_LITERAL_LENGTH:
            return False
        if any(secret.regex.pattern == re.escape(value) for secret in self._secrets):
            return True
        # Literals go first so a token is never half-consumed by a shape pattern
        self._secrets.insert(0, self._compile(re.escape(value), name))
        return True

    def redact(self, text: str) -> str:
        if not text:
            return text
        for secret in self._secrets:
            text = secret.regex.sub(self.placeholder, text)
        return text

    def contains_secret(self, text: str) -> bool:
        return any(secret.regex.search(text) for secret in self._secrets)
