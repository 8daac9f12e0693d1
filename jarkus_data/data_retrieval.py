"""Cache-first fetch coordination for OPeNDAP resources.

Preferred API is class-based (`FetchCoordinator`). All work runs on one
asyncio event loop; the only suspension points are network reads, so parsed
results are always applied whole.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

import httpx

from jarkus_core.progress import ProgressManager, get_progress_manager

from .cache_store import CacheStore, cache_key_for_url, now_millis
from .errors import JarkusError, NetworkError, ParsingError
from .parsers import DEFAULT_CATALOG_SIZE, IdCatalog, parse_id_catalog

logger = logging.getLogger("jarkus")

CATALOG_SLOT = 'catalog'
DATA_FAILURE_MESSAGE = "Failed to fetch OpenDAP data"
CATALOG_FAILURE_MESSAGE = "Failed to load transect catalog"
NO_CACHE_MESSAGE = "No cached data for this URL."
CACHE_LOAD_FAILURE_MESSAGE = "Failed to load from cache."

ParseFn = Callable[[str], Any]
PersistFn = Callable[[str, str, Any], bool]


@dataclass
class SlotState:
    """Visible state of one logical resource slot."""

    loading: bool = False
    ready: bool = False
    error: str | None = None
    value: Any = None
    url: str | None = None
    fetched_at: int | None = None
    from_cache: bool = False
    cache_warning: bool = False


def _error_message(exc: BaseException) -> str:
    return getattr(exc, 'message', None) or str(exc)


class FetchCoordinator:
    """Mediate between the persistent cache and the network for every slot.

    - Cached resources are served immediately and refreshed in the background.
    - Each slot has at most one foreground request; starting another cancels
      the previous one, whose result is then never applied.
    - Foreground failures are recorded on the slot; background failures are
      logged and dropped.

    One coordinator (and its ``CacheStore``) is created per session and lives
    until ``aclose()``.
    """

    def __init__(
        self,
        cache_store: CacheStore,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        progress_manager: ProgressManager | None = None,
    ) -> None:
        self.cache_store = cache_store
        self.timeout = timeout
        self.progress_mgr = get_progress_manager() if progress_manager is None else progress_manager
        self._client = client
        self._owns_client = client is None
        self._slots: dict[str, SlotState] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._background: dict[str, asyncio.Task] = {}

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    def state(self, slot: str) -> SlotState:
        """Return the (mutable) visible state of ``slot``."""
        return self._slots.setdefault(slot, SlotState())

    async def fetch_text(self, url: str, failure_message: str = DATA_FAILURE_MESSAGE) -> str:
        """
        GET ``url`` and return the decoded body.

        Raises:
            NetworkError: On transport errors and non-success status codes.
        """
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as exc:
            raise NetworkError(f"{failure_message} ({exc.__class__.__name__}: {exc})") from exc
        if not response.is_success:
            raise NetworkError(f"{failure_message} ({response.status_code})", status_code=response.status_code)
        return response.text

    def _persist_raw(self, url: str, raw_text: str, value: Any) -> bool:
        return self.cache_store.put(cache_key_for_url(url), raw_text)

    def _persist_catalog(self, url: str, raw_text: str, value: IdCatalog) -> bool:
        return self.cache_store.put_id_list(list(value.ids))

    def _publish(
        self,
        slot: str,
        url: str,
        value: Any,
        fetched_at: int,
        *,
        from_cache: bool,
        cache_warning: bool = False,
    ) -> None:
        state = self.state(slot)
        state.loading = False
        state.ready = True
        state.error = None
        state.value = value
        state.url = url
        state.fetched_at = fetched_at
        state.from_cache = from_cache
        state.cache_warning = cache_warning

    def _fail(self, slot: str, url: str, message: str) -> None:
        state = self.state(slot)
        state.loading = False
        state.ready = False
        state.value = None
        state.url = url
        state.error = message
        logger.error(f"{slot}: {message}")
        self.progress_mgr.notify_fetch_failed(slot, url, message)

    def cancel(self, slot: str) -> bool:
        """Cancel the foreground request of ``slot``; its result is discarded."""
        task = self._inflight.pop(slot, None)
        if task is None:
            return False
        task.cancel()
        self.state(slot).loading = False
        logger.debug(f"Cancelled in-flight request for {slot}")
        return True

    async def _fetch_and_parse(self, url: str, parse: ParseFn, failure_message: str) -> tuple[str, Any]:
        raw_text = await self.fetch_text(url, failure_message)
        return raw_text, parse(raw_text)

    async def _foreground(
        self,
        slot: str,
        url: str,
        parse: ParseFn,
        persist: PersistFn | None = None,
        failure_message: str = DATA_FAILURE_MESSAGE,
    ) -> Any:
        persist = self._persist_raw if persist is None else persist
        self.cancel(slot)

        state = self.state(slot)
        state.loading = True
        state.error = None
        state.url = url
        self.progress_mgr.notify_fetch_start(slot, url)

        task = asyncio.create_task(self._fetch_and_parse(url, parse, failure_message))
        self._inflight[slot] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            if self._inflight.get(slot) is task:
                del self._inflight[slot]
                state.loading = False
            raise

        if self._inflight.get(slot) is not task or task.cancelled():
            logger.debug(f"Discarding superseded {slot} request for {url}")
            return None
        del self._inflight[slot]

        exc = task.exception()
        if exc is not None:
            if not isinstance(exc, JarkusError):
                state.loading = False
                raise exc
            self._fail(slot, url, _error_message(exc))
            return None

        raw_text, value = task.result()
        stored = persist(url, raw_text, value)
        if not stored:
            logger.warning(f"{slot}: response for {url} was not cached")
        self._publish(slot, url, value, now_millis(), from_cache=False, cache_warning=not stored)
        self.progress_mgr.notify_fetch_complete(slot, url, len(raw_text))
        return value

    async def _background_refresh(self, url: str, parse: ParseFn, persist: PersistFn, failure_message: str) -> None:
        try:
            raw_text, value = await self._fetch_and_parse(url, parse, failure_message)
        except (NetworkError, ParsingError) as exc:
            logger.debug(f"Background refresh of {url} failed; keeping cached copy: {exc}")
            self.progress_mgr.notify_background_refresh(url, False)
            return
        except Exception as exc:
            logger.warning(f"Background refresh of {url} raised {exc.__class__.__name__}: {exc}")
            self.progress_mgr.notify_background_refresh(url, False)
            return

        updated = persist(url, raw_text, value)
        logger.debug(f"Background refresh of {url} finished (cached={updated})")
        self.progress_mgr.notify_background_refresh(url, updated)

    def _schedule_refresh(
        self,
        url: str,
        parse: ParseFn,
        persist: PersistFn | None = None,
        failure_message: str = DATA_FAILURE_MESSAGE,
    ) -> asyncio.Task | None:
        pending = self._background.get(url)
        if pending is not None and not pending.done():
            return pending

        persist = self._persist_raw if persist is None else persist
        task = asyncio.create_task(self._background_refresh(url, parse, persist, failure_message))
        self._background[url] = task

        def _forget(done: asyncio.Task) -> None:
            if self._background.get(url) is done:
                del self._background[url]

        task.add_done_callback(_forget)
        return task

    async def load(self, slot: str, url: str, parse: ParseFn) -> Any:
        """
        Resolve ``url`` into ``slot``, cache first.

        Args:
            slot: Logical resource slot (for example ``'profile'``).
            url: Resource URL; also the cache identity.
            parse: Synchronous parser applied to the raw response text.

        Returns:
            The parsed value, or None when the request failed or was superseded.
        """
        key = cache_key_for_url(url)
        entry = self.cache_store.get(key)
        if entry is not None:
            try:
                value = parse(entry.raw_text)
            except ParsingError as exc:
                logger.warning(f"Cached response for {url} no longer parses; refetching: {exc}")
                self.cache_store.invalidate(key)
            else:
                self.cancel(slot)
                self._publish(slot, url, value, entry.timestamp, from_cache=True)
                self.progress_mgr.notify_cache_hit(slot, url, entry.timestamp)
                self._schedule_refresh(url, parse)
                return value

        return await self._foreground(slot, url, parse)

    async def refresh(self, slot: str, url: str, parse: ParseFn) -> Any:
        """Fetch ``url`` from the network regardless of the cache (explicit retry)."""
        return await self._foreground(slot, url, parse)

    def load_cached(self, slot: str, url: str, parse: ParseFn) -> Any:
        """Serve ``slot`` from the cache only; never touches the network."""
        self.cancel(slot)
        entry = self.cache_store.get(cache_key_for_url(url))
        if entry is None:
            self._fail(slot, url, NO_CACHE_MESSAGE)
            return None
        try:
            value = parse(entry.raw_text)
        except ParsingError as exc:
            logger.debug(f"Cached response for {url} failed to parse: {exc}")
            self._fail(slot, url, CACHE_LOAD_FAILURE_MESSAGE)
            return None
        self._publish(slot, url, value, entry.timestamp, from_cache=True)
        self.progress_mgr.notify_cache_hit(slot, url, entry.timestamp)
        return value

    def clear_cache(self, url: str) -> None:
        self.cache_store.invalidate(cache_key_for_url(url))

    async def load_catalog(self, url: str, declared_size: int = DEFAULT_CATALOG_SIZE) -> IdCatalog | None:
        """
        Resolve the transect identifier catalog.

        An already-loaded catalog is returned as is; otherwise the persisted id
        list is used (with a background refresh), then the network.
        """
        state = self.state(CATALOG_SLOT)
        if state.ready and isinstance(state.value, IdCatalog) and len(state.value) > 0:
            return state.value

        parse = partial(parse_id_catalog, declared_size=declared_size)
        entry = self.cache_store.get_id_list(declared_size=declared_size)
        if entry is not None:
            catalog = IdCatalog(ids=tuple(entry.ids))
            self._publish(CATALOG_SLOT, url, catalog, entry.timestamp, from_cache=True)
            self.progress_mgr.notify_cache_hit(CATALOG_SLOT, url, entry.timestamp)
            self._schedule_refresh(url, parse, self._persist_catalog, CATALOG_FAILURE_MESSAGE)
            return catalog

        return await self._foreground(
            CATALOG_SLOT,
            url,
            parse,
            persist=self._persist_catalog,
            failure_message=CATALOG_FAILURE_MESSAGE,
        )

    async def refresh_catalog(self, url: str, declared_size: int = DEFAULT_CATALOG_SIZE) -> IdCatalog | None:
        """Download the catalog again, replacing any loaded or persisted copy."""
        return await self._foreground(
            CATALOG_SLOT,
            url,
            partial(parse_id_catalog, declared_size=declared_size),
            persist=self._persist_catalog,
            failure_message=CATALOG_FAILURE_MESSAGE,
        )

    def load_cached_catalog(self, url: str, declared_size: int = DEFAULT_CATALOG_SIZE) -> IdCatalog | None:
        """Serve the catalog from the persisted id list only."""
        self.cancel(CATALOG_SLOT)
        entry = self.cache_store.get_id_list(declared_size=declared_size)
        if entry is None:
            self._fail(CATALOG_SLOT, url, NO_CACHE_MESSAGE)
            return None
        catalog = IdCatalog(ids=tuple(entry.ids))
        self._publish(CATALOG_SLOT, url, catalog, entry.timestamp, from_cache=True)
        self.progress_mgr.notify_cache_hit(CATALOG_SLOT, url, entry.timestamp)
        return catalog

    async def drain(self) -> None:
        """Wait for all scheduled background refreshes to finish."""
        while self._background:
            await asyncio.gather(*list(self._background.values()), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding work and close the HTTP client if owned."""
        for slot in list(self._inflight):
            self.cancel(slot)
        for task in list(self._background.values()):
            task.cancel()
        if self._background:
            await asyncio.gather(*list(self._background.values()), return_exceptions=True)
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
