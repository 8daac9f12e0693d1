"""Size-bounded persistent cache of raw OPeNDAP responses."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from .cache_codec import DEFAULT_CACHE_CODEC, CacheCodec
from .errors import CacheCorruptionError, CacheOverflowError
from .parsers import DEFAULT_CATALOG_SIZE, drop_declared_size_artifact

logger = logging.getLogger("jarkus")

CACHE_KEY_PREFIX = 'opendap_cache::'
ID_LIST_CACHE_KEY = 'jarkus_id_list_v1'
RAW_TEXT_FIELD = 'raw_text'
IDS_FIELD = 'ids'


def cache_key_for_url(url: str) -> str:
    """Build the cache key of one resource URL."""
    return f"{CACHE_KEY_PREFIX}{url}"


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    timestamp: int
    raw_text: str


@dataclass(frozen=True)
class IdListEntry:
    key: str
    timestamp: int
    ids: list[int]


class CacheStore:
    """Read/write façade for one cache directory.

    One YAML file per key, named by the key's SHA-1. Reads never raise for
    bad persisted state: a corrupted entry is logged and reported as absent.
    """

    def __init__(self, cache_dir: Path = Path("opendap_cache"), cache_codec: CacheCodec | None = None) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_codec = DEFAULT_CACHE_CODEC if cache_codec is None else cache_codec

    def path_for_key(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode('utf-8')).hexdigest()
        return self.cache_dir / f"{digest}.yaml"

    def _write(self, key: str, payload_field: str, payload) -> bool:
        try:
            text = self.cache_codec.encode(key, now_millis(), payload_field, payload)
        except CacheOverflowError as exc:
            logger.warning(f"Skipping cache write: {exc}")
            return False

        out_file = self.path_for_key(key)
        tmp_file = out_file.with_suffix('.tmp')
        try:
            out_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(text, encoding='utf-8')
            tmp_file.replace(out_file)
        except OSError as exc:
            logger.warning(f"Skipping cache write for {key}: {exc}")
            return False
        logger.debug(f"Cached {key} ({len(text)} chars) in {out_file.name}")
        return True

    def _read(self, key: str, payload_field: str) -> dict | None:
        in_file = self.path_for_key(key)
        if not in_file.exists():
            return None
        try:
            text = in_file.read_text(encoding='utf-8')
            return self.cache_codec.decode(text, key, payload_field)
        except (CacheCorruptionError, OSError, UnicodeDecodeError) as exc:
            logger.warning(f"Ignoring unreadable cache entry {in_file.name}: {exc}")
            return None

    def put(self, key: str, raw_text: str) -> bool:
        """
        Persist raw response text under ``key``.

        Returns:
            True when written; False when the entry exceeds the size ceiling
            or the cache directory cannot be written. Any previous entry is
            then left untouched.
        """
        return self._write(key, RAW_TEXT_FIELD, raw_text)

    def get(self, key: str) -> CacheEntry | None:
        """Return the stored entry, or None when absent or corrupted."""
        document = self._read(key, RAW_TEXT_FIELD)
        if document is None:
            return None
        raw_text = document[RAW_TEXT_FIELD]
        if not isinstance(raw_text, str):
            logger.warning(f"Ignoring cache entry for {key}: raw_text is not text")
            return None
        return CacheEntry(key=key, timestamp=document['timestamp'], raw_text=raw_text)

    def invalidate(self, key: str) -> None:
        """Remove the entry for ``key`` if present."""
        try:
            self.path_for_key(key).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(f"Could not remove cache entry for {key}: {exc}")

    def put_id_list(self, ids: list[int], key: str = ID_LIST_CACHE_KEY) -> bool:
        """Persist a parsed catalog identifier list."""
        return self._write(key, IDS_FIELD, [int(value) for value in ids])

    def get_id_list(
        self,
        key: str = ID_LIST_CACHE_KEY,
        declared_size: int | None = DEFAULT_CATALOG_SIZE,
    ) -> IdListEntry | None:
        """
        Return a stored catalog list, or None when absent, empty or corrupted.

        A leading element equal to ``declared_size`` is dropped; older catalog
        parses stored the size from the header line as the first id.
        """
        document = self._read(key, IDS_FIELD)
        if document is None:
            return None
        ids = document[IDS_FIELD]
        if not isinstance(ids, list) or not all(isinstance(value, int) and not isinstance(value, bool) for value in ids):
            logger.warning(f"Ignoring cache entry for {key}: ids is not an integer list")
            return None
        ids = drop_declared_size_artifact(ids, declared_size)
        if not ids:
            return None
        return IdListEntry(key=key, timestamp=document['timestamp'], ids=ids)

    def entries(self) -> list[tuple[str, int, int]]:
        """Summarize readable entries as (key, timestamp, payload size)."""
        summary: list[tuple[str, int, int]] = []
        if not self.cache_dir.is_dir():
            return summary
        for yaml_file in sorted(self.cache_dir.glob('*.yaml')):
            try:
                text = yaml_file.read_text(encoding='utf-8')
                document = self.cache_codec.decode_unkeyed(text)
            except (CacheCorruptionError, OSError, UnicodeDecodeError) as exc:
                logger.warning(f"Skipping cache summary entry for {yaml_file.name}: {exc}")
                continue
            summary.append((document['key'], document['timestamp'], len(text)))
        return summary
