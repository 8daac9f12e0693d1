"""Exception hierarchy for the jarkus data layer."""

from __future__ import annotations

EXCERPT_LIMIT = 200


def make_excerpt(text: str | None, limit: int = EXCERPT_LIMIT) -> str:
    """Return a bounded, single-string excerpt of offending payload text."""
    if not text:
        return ""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class JarkusError(Exception):
    """Base exception for all jarkus errors."""


class ParsingError(JarkusError, ValueError):
    """Raised when a dataset payload cannot be turned into a typed result.

    Carries a short excerpt of the text that failed so the log line is
    enough to diagnose a changed upstream format.
    """

    def __init__(self, message: str, excerpt: str | None = None) -> None:
        self.message = message
        self.excerpt = make_excerpt(excerpt)
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.excerpt:
            return f"{self.message}\nExcerpt: {self.excerpt!r}"
        return self.message


class ExtractionError(ParsingError):
    """Raised when a required variable header or payload is absent."""

    def __init__(self, variable: str, message: str | None = None, excerpt: str | None = None) -> None:
        self.variable = variable
        super().__init__(message or f"Variable '{variable}' not found in payload", excerpt)


class ShapeMismatchError(ParsingError):
    """Raised when no tolerated layout matches the observed value count."""

    def __init__(self, length: int, rows: int, cols: int, excerpt: str | None = None) -> None:
        self.length = length
        self.rows = rows
        self.cols = cols
        self.expected = rows * cols
        super().__init__(
            f"Cannot reshape {length} values into {rows}x{cols} (expected {self.expected})",
            excerpt,
        )


class ArrayLengthMismatchError(ParsingError):
    """Raised when parallel arrays of one dataset have unequal lengths."""

    def __init__(self, dataset: str, lengths: dict[str, int], excerpt: str | None = None) -> None:
        self.dataset = dataset
        self.lengths = dict(lengths)
        detail = ", ".join(f"{name}={size}" for name, size in self.lengths.items())
        super().__init__(f"Array length mismatch in {dataset} data: {detail}", excerpt)


class NetworkError(JarkusError):
    """Raised for non-success responses and transport failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class CacheCorruptionError(JarkusError):
    """Raised by the cache codec for malformed persisted entries."""


class CacheOverflowError(JarkusError):
    """Raised by the cache codec when an entry exceeds the size ceiling."""

    def __init__(self, key: str, size: int, limit: int) -> None:
        self.key = key
        self.size = size
        self.limit = limit
        super().__init__(f"Cache entry for '{key}' is {size} chars; limit is {limit}")
