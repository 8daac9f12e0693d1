import asyncio
from functools import partial
from pathlib import Path

import httpx

from jarkus_core.progress import ProgressManager
from jarkus_data.cache_codec import CacheCodec
from jarkus_data.cache_store import CacheStore, cache_key_for_url
from jarkus_data.data_retrieval import (
    CACHE_LOAD_FAILURE_MESSAGE,
    CATALOG_SLOT,
    NO_CACHE_MESSAGE,
    FetchCoordinator,
)
from jarkus_data.parsers import parse_id_catalog

BASE = "https://opendap.example.org/transect.nc.ascii"
CATALOG_URL = f"{BASE}?id[0:1:2]"
FIRST_URL = f"{BASE}?first"
SECOND_URL = f"{BASE}?second"

parse_ids = partial(parse_id_catalog, declared_size=None)


def id_text(*ids):
    return "-----\nid[{}]\n{}\n".format(len(ids), ", ".join(str(value) for value in ids))


class RecordingHandler:
    def __init__(self):
        self.events = []

    def on_fetch_start(self, slot, url):
        self.events.append(('start', slot))

    def on_fetch_complete(self, slot, url, num_chars):
        self.events.append(('complete', slot))

    def on_fetch_failed(self, slot, url, message):
        self.events.append(('failed', slot, message))

    def on_cache_hit(self, slot, url, timestamp):
        self.events.append(('cache_hit', slot))

    def on_background_refresh(self, url, updated):
        self.events.append(('background', updated))


def run_with_client(handler, scenario):
    """Run ``scenario(client)`` against a mocked transport."""
    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await scenario(client)
    return asyncio.run(runner())


def make_coordinator(store, client, progress=None):
    manager = ProgressManager()
    if progress is not None:
        manager.register_handler(progress)
    return FetchCoordinator(store, client=client, progress_manager=manager)


def test_foreground_fetch_publishes_and_caches(tmp_path):
    store = CacheStore(tmp_path)
    progress = RecordingHandler()

    def handler(request):
        return httpx.Response(200, text=id_text(1, 2, 3))

    async def scenario(client):
        coordinator = make_coordinator(store, client, progress)
        value = await coordinator.load('ids', FIRST_URL, parse_ids)
        return value, coordinator.state('ids')

    value, state = run_with_client(handler, scenario)
    assert value.ids == (1, 2, 3)
    assert state.ready and not state.loading and not state.from_cache
    assert state.error is None
    assert store.get(cache_key_for_url(FIRST_URL)).raw_text == id_text(1, 2, 3)
    assert progress.events == [('start', 'ids'), ('complete', 'ids')]


def test_cached_value_is_served_then_refreshed_in_background(tmp_path):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(FIRST_URL), id_text(1, 2))
    calls = []
    progress = RecordingHandler()

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200, text=id_text(1, 2, 3))

    async def scenario(client):
        coordinator = make_coordinator(store, client, progress)
        value = await coordinator.load('ids', FIRST_URL, parse_ids)
        calls_before_drain = len(calls)
        await coordinator.drain()
        return value, coordinator.state('ids'), calls_before_drain

    value, state, calls_before_drain = run_with_client(handler, scenario)
    assert value.ids == (1, 2)
    assert state.from_cache is True
    assert calls_before_drain == 0
    assert len(calls) == 1
    # refresh updates the cache only, not the already-published value
    assert state.value.ids == (1, 2)
    assert store.get(cache_key_for_url(FIRST_URL)).raw_text == id_text(1, 2, 3)
    assert progress.events == [('cache_hit', 'ids'), ('background', True)]


def test_background_refresh_failure_keeps_cache_and_state(tmp_path):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(FIRST_URL), id_text(4, 5))

    def handler(request):
        return httpx.Response(500, text="server error")

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        value = await coordinator.load('ids', FIRST_URL, parse_ids)
        await coordinator.drain()
        return value, coordinator.state('ids')

    value, state = run_with_client(handler, scenario)
    assert value.ids == (4, 5)
    assert state.error is None
    assert store.get(cache_key_for_url(FIRST_URL)).raw_text == id_text(4, 5)


def test_foreground_http_failure_sets_error(tmp_path):
    store = CacheStore(tmp_path)
    progress = RecordingHandler()

    def handler(request):
        return httpx.Response(503)

    async def scenario(client):
        coordinator = make_coordinator(store, client, progress)
        value = await coordinator.load('ids', FIRST_URL, parse_ids)
        return value, coordinator.state('ids')

    value, state = run_with_client(handler, scenario)
    assert value is None
    assert state.error == "Failed to fetch OpenDAP data (503)"
    assert not state.ready and not state.loading
    assert store.get(cache_key_for_url(FIRST_URL)) is None
    assert progress.events[-1] == ('failed', 'ids', "Failed to fetch OpenDAP data (503)")


def test_transport_error_becomes_network_failure(tmp_path):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario(client):
        coordinator = make_coordinator(CacheStore(tmp_path), client)
        await coordinator.load('ids', FIRST_URL, parse_ids)
        return coordinator.state('ids')

    state = run_with_client(handler, scenario)
    assert state.error.startswith("Failed to fetch OpenDAP data (ConnectError")


def test_parse_failure_is_recorded_and_not_cached(tmp_path):
    store = CacheStore(tmp_path)

    def handler(request):
        return httpx.Response(200, text="-----\nno identifiers here\n")

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        value = await coordinator.load('ids', FIRST_URL, parse_ids)
        return value, coordinator.state('ids')

    value, state = run_with_client(handler, scenario)
    assert value is None
    assert state.error == "Could not parse transect catalog"
    assert store.get(cache_key_for_url(FIRST_URL)) is None


def test_oversized_response_is_returned_with_cache_warning(tmp_path):
    store = CacheStore(tmp_path, CacheCodec(max_entry_chars=120))
    ids = list(range(100, 160))

    def handler(request):
        return httpx.Response(200, text=id_text(*ids))

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        value = await coordinator.load('ids', FIRST_URL, parse_ids)
        return value, coordinator.state('ids')

    value, state = run_with_client(handler, scenario)
    assert list(value.ids) == ids
    assert state.ready
    assert state.cache_warning is True
    assert store.get(cache_key_for_url(FIRST_URL)) is None


def test_second_foreground_fetch_supersedes_first(tmp_path):
    store = CacheStore(tmp_path)

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        first = asyncio.create_task(coordinator.refresh('ids', FIRST_URL, parse_ids))
        await first_started.wait()
        second_value = await coordinator.refresh('ids', SECOND_URL, parse_ids)
        release_first.set()
        first_value = await first
        return first_value, second_value, coordinator.state('ids')

    first_started = None
    release_first = None

    async def handler(request):
        if 'first' in str(request.url):
            first_started.set()
            await release_first.wait()
            return httpx.Response(200, text=id_text(1, 1, 1))
        return httpx.Response(200, text=id_text(2, 2, 2))

    async def runner():
        nonlocal first_started, release_first
        first_started = asyncio.Event()
        release_first = asyncio.Event()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await scenario(client)

    first_value, second_value, state = asyncio.run(runner())
    assert first_value is None
    assert second_value.ids == (2, 2, 2)
    assert state.value.ids == (2, 2, 2)
    assert state.url == SECOND_URL
    assert store.get(cache_key_for_url(FIRST_URL)) is None
    assert store.get(cache_key_for_url(SECOND_URL)) is not None


def test_load_cached_without_entry(tmp_path):
    coordinator = FetchCoordinator(CacheStore(tmp_path), progress_manager=ProgressManager())
    assert coordinator.load_cached('ids', FIRST_URL, parse_ids) is None
    assert coordinator.state('ids').error == NO_CACHE_MESSAGE


def test_load_cached_with_unparseable_entry(tmp_path):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(FIRST_URL), "garbage")
    coordinator = FetchCoordinator(store, progress_manager=ProgressManager())
    assert coordinator.load_cached('ids', FIRST_URL, parse_ids) is None
    assert coordinator.state('ids').error == CACHE_LOAD_FAILURE_MESSAGE


def test_load_cached_hit(tmp_path):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(FIRST_URL), id_text(9))
    coordinator = FetchCoordinator(store, progress_manager=ProgressManager())
    assert coordinator.load_cached('ids', FIRST_URL, parse_ids).ids == (9,)
    assert coordinator.state('ids').from_cache


def test_unparseable_cache_entry_is_refetched(tmp_path):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(FIRST_URL), "garbage")

    def handler(request):
        return httpx.Response(200, text=id_text(3, 4))

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        return await coordinator.load('ids', FIRST_URL, parse_ids)

    value = run_with_client(handler, scenario)
    assert value.ids == (3, 4)
    assert store.get(cache_key_for_url(FIRST_URL)).raw_text == id_text(3, 4)


def test_clear_cache(tmp_path):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(FIRST_URL), id_text(1))
    FetchCoordinator(store, progress_manager=ProgressManager()).clear_cache(FIRST_URL)
    assert store.get(cache_key_for_url(FIRST_URL)) is None


def test_catalog_fetch_persists_id_list(tmp_path):
    store = CacheStore(tmp_path)
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200, text=id_text(2000100, 2000120, 2000140))

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        first = await coordinator.load_catalog(CATALOG_URL, declared_size=3)
        again = await coordinator.load_catalog(CATALOG_URL, declared_size=3)
        return first, again, coordinator.state(CATALOG_SLOT)

    first, again, state = run_with_client(handler, scenario)
    assert first.ids == (2000100, 2000120, 2000140)
    assert again is first
    assert len(calls) == 1
    assert state.ready
    assert store.get_id_list(declared_size=3).ids == [2000100, 2000120, 2000140]


def test_catalog_served_from_persisted_id_list(tmp_path):
    store = CacheStore(tmp_path)
    store.put_id_list([7003800, 7003900])
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200, text=id_text(7003800, 7003900, 7004000))

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        catalog = await coordinator.load_catalog(CATALOG_URL, declared_size=3)
        calls_before_drain = len(calls)
        await coordinator.drain()
        return catalog, calls_before_drain

    catalog, calls_before_drain = run_with_client(handler, scenario)
    assert catalog.ids == (7003800, 7003900)
    assert calls_before_drain == 0
    assert store.get_id_list(declared_size=3).ids == [7003800, 7003900, 7004000]


def test_catalog_failure_message(tmp_path):
    def handler(request):
        return httpx.Response(404)

    async def scenario(client):
        coordinator = make_coordinator(CacheStore(tmp_path), client)
        catalog = await coordinator.load_catalog(CATALOG_URL, declared_size=3)
        return catalog, coordinator.state(CATALOG_SLOT)

    catalog, state = run_with_client(handler, scenario)
    assert catalog is None
    assert state.error == "Failed to load transect catalog (404)"


def test_refresh_catalog_ignores_persisted_list(tmp_path):
    store = CacheStore(tmp_path)
    store.put_id_list([1, 2])

    def handler(request):
        return httpx.Response(200, text=id_text(5, 6, 7))

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        return await coordinator.refresh_catalog(CATALOG_URL, declared_size=3)

    catalog = run_with_client(handler, scenario)
    assert catalog.ids == (5, 6, 7)
    assert store.get_id_list(declared_size=3).ids == [5, 6, 7]


def test_unwritable_cache_still_publishes_fetched_value(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    store = CacheStore(blocker / "cache")

    def handler(request):
        return httpx.Response(200, text=id_text(1, 2, 3))

    async def scenario(client):
        coordinator = make_coordinator(store, client)
        value = await coordinator.refresh('ids', FIRST_URL, parse_ids)
        return value, coordinator.state('ids')

    value, state = run_with_client(handler, scenario)
    assert value.ids == (1, 2, 3)
    assert state.ready and not state.loading
    assert state.value.ids == (1, 2, 3)
    assert state.cache_warning is True


def test_background_refresh_survives_failed_cache_write(tmp_path, monkeypatch):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(FIRST_URL), id_text(1, 2))
    progress = RecordingHandler()

    def refuse_write(self, target):
        raise PermissionError("read-only cache")

    def handler(request):
        return httpx.Response(200, text=id_text(1, 2, 3))

    async def scenario(client):
        coordinator = make_coordinator(store, client, progress)
        value = await coordinator.load('ids', FIRST_URL, parse_ids)
        monkeypatch.setattr(Path, 'replace', refuse_write)
        await coordinator.drain()
        return value, coordinator.state('ids')

    value, state = run_with_client(handler, scenario)
    monkeypatch.undo()
    assert value.ids == (1, 2)
    assert state.error is None
    assert store.get(cache_key_for_url(FIRST_URL)).raw_text == id_text(1, 2)
    assert progress.events == [('cache_hit', 'ids'), ('background', False)]


def test_cache_hit_supersedes_inflight_request(tmp_path):
    store = CacheStore(tmp_path)
    store.put(cache_key_for_url(SECOND_URL), id_text(8, 9))
    first_started = None
    release_first = None

    async def handler(request):
        if 'first' in str(request.url):
            first_started.set()
            await release_first.wait()
            return httpx.Response(200, text=id_text(1, 1, 1))
        return httpx.Response(200, text=id_text(8, 9))

    async def runner():
        nonlocal first_started, release_first
        first_started = asyncio.Event()
        release_first = asyncio.Event()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            coordinator = make_coordinator(store, client)
            slow = asyncio.create_task(coordinator.refresh('ids', FIRST_URL, parse_ids))
            await first_started.wait()
            cached_value = await coordinator.load('ids', SECOND_URL, parse_ids)
            release_first.set()
            slow_value = await slow
            await coordinator.drain()
            return slow_value, cached_value, coordinator.state('ids')

    slow_value, cached_value, state = asyncio.run(runner())
    assert slow_value is None
    assert cached_value.ids == (8, 9)
    assert state.value.ids == (8, 9)
    assert state.url == SECOND_URL
    assert state.from_cache and not state.loading
    assert store.get(cache_key_for_url(FIRST_URL)) is None


def test_load_cached_catalog_supersedes_inflight_refresh(tmp_path):
    store = CacheStore(tmp_path)
    store.put_id_list([7003800, 7003900])
    refresh_started = None
    release_refresh = None

    async def handler(request):
        refresh_started.set()
        await release_refresh.wait()
        return httpx.Response(200, text=id_text(1, 2, 3))

    async def runner():
        nonlocal refresh_started, release_refresh
        refresh_started = asyncio.Event()
        release_refresh = asyncio.Event()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            coordinator = make_coordinator(store, client)
            slow = asyncio.create_task(coordinator.refresh_catalog(CATALOG_URL, declared_size=3))
            await refresh_started.wait()
            cached = coordinator.load_cached_catalog(CATALOG_URL, declared_size=3)
            release_refresh.set()
            refreshed = await slow
            return cached, refreshed, coordinator.state(CATALOG_SLOT)

    cached, refreshed, state = asyncio.run(runner())
    assert refreshed is None
    assert cached.ids == (7003800, 7003900)
    assert state.value.ids == (7003800, 7003900)
    assert state.url == CATALOG_URL
    assert store.get_id_list(declared_size=3).ids == [7003800, 7003900]


def test_load_cached_catalog_without_entry(tmp_path):
    coordinator = FetchCoordinator(CacheStore(tmp_path), progress_manager=ProgressManager())
    assert coordinator.load_cached_catalog(CATALOG_URL, declared_size=3) is None
    state = coordinator.state(CATALOG_SLOT)
    assert state.error == NO_CACHE_MESSAGE
    assert state.url == CATALOG_URL


def test_aclose_closes_owned_client(tmp_path):
    async def scenario():
        coordinator = FetchCoordinator(CacheStore(tmp_path), progress_manager=ProgressManager())
        client = coordinator.client
        await coordinator.aclose()
        return client

    client = asyncio.run(scenario())
    assert client.is_closed
