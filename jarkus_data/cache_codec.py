"""YAML codec for persisted cache entries."""

from __future__ import annotations

import logging
from typing import Any

import yaml

from .errors import CacheCorruptionError, CacheOverflowError

logger = logging.getLogger("jarkus")

DEFAULT_MAX_ENTRY_CHARS = 5_000_000
ENTRY_VERSION = 1

try:
    _SAFE_LOADER = yaml.CSafeLoader
    _SAFE_DUMPER = yaml.CSafeDumper
except AttributeError:
    _SAFE_LOADER = yaml.SafeLoader
    _SAFE_DUMPER = yaml.SafeDumper


def _yaml_safe_load(stream) -> Any:
    """Load YAML using fastest available safe loader."""
    return yaml.load(stream, Loader=_SAFE_LOADER)


class CacheCodec:
    """Encode and decode cache documents, enforcing the size ceiling."""

    def __init__(self, max_entry_chars: int = DEFAULT_MAX_ENTRY_CHARS) -> None:
        if not isinstance(max_entry_chars, int) or max_entry_chars <= 0:
            raise ValueError("max_entry_chars must be a positive integer")
        self.max_entry_chars = max_entry_chars

    def encode(self, key: str, timestamp: int, payload_field: str, payload: Any) -> str:
        """Serialize one entry document.

        Raises:
            CacheOverflowError: If the serialized text is larger than the ceiling.
        """
        document = {
            'version': ENTRY_VERSION,
            'key': key,
            'timestamp': int(timestamp),
            payload_field: payload,
        }
        text = yaml.dump(document, Dumper=_SAFE_DUMPER, sort_keys=False, allow_unicode=True, width=1_000_000)
        if len(text) > self.max_entry_chars:
            raise CacheOverflowError(key, len(text), self.max_entry_chars)
        return text

    @staticmethod
    def decode_unkeyed(text: str) -> dict[str, Any]:
        """Parse one entry document and validate its key and timestamp fields.

        Raises:
            CacheCorruptionError: For unreadable YAML or wrong field types.
        """
        try:
            document = _yaml_safe_load(text)
        except yaml.YAMLError as exc:
            raise CacheCorruptionError(f"Unreadable cache entry: {exc}") from exc

        if not isinstance(document, dict):
            raise CacheCorruptionError("Cache entry is not a mapping")
        if not isinstance(document.get('key'), str):
            raise CacheCorruptionError(f"Cache entry has invalid key {document.get('key')!r}")

        timestamp = document.get('timestamp')
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise CacheCorruptionError(f"Cache entry has invalid timestamp {timestamp!r}")
        return document

    def decode(self, text: str, key: str, payload_field: str) -> dict[str, Any]:
        """Parse one entry document and check it belongs to ``key``.

        Raises:
            CacheCorruptionError: For unreadable YAML, a foreign key, or a missing payload.
        """
        document = self.decode_unkeyed(text)
        if document['key'] != key:
            raise CacheCorruptionError(f"Cache entry key mismatch: expected '{key}', found {document['key']!r}")
        if payload_field not in document:
            raise CacheCorruptionError(f"Cache entry for '{key}' has no '{payload_field}' field")
        return document


DEFAULT_CACHE_CODEC = CacheCodec()
