"""Tests for progress reporting system."""

from progress import (
    ConsoleProgressHandler,
    ProgressManager,
    format_timestamp,
    get_progress_manager,
)


def test_progress_manager_register_handler():
    """Test registering a handler."""
    manager = ProgressManager()
    handler = ConsoleProgressHandler()

    manager.register_handler(handler)

    assert len(manager.handlers) == 1
    assert manager.handlers[0] is handler


def test_get_progress_manager_is_core_singleton():
    from jarkus_core.progress import get_progress_manager as core_get_progress_manager

    assert get_progress_manager() is core_get_progress_manager()


def test_console_handler_fetch_lifecycle(capsys):
    manager = ProgressManager()
    manager.register_handler(ConsoleProgressHandler())

    manager.notify_fetch_start('profile', 'https://example.org/transect.nc.ascii?time')
    manager.notify_fetch_complete('profile', 'https://example.org/transect.nc.ascii?time', 12345)

    out = capsys.readouterr().out
    assert "downloading https://example.org/transect.nc.ascii?time" in out
    assert "done (12,345 chars)" in out


def test_console_handler_truncates_long_urls(capsys):
    handler = ConsoleProgressHandler(max_url_width=20)
    handler.on_fetch_start('catalog', 'https://example.org/' + 'x' * 100)

    out = capsys.readouterr().out
    assert 'x' * 30 not in out
    assert '...' in out


def test_console_handler_failure_and_cache_hit(capsys):
    handler = ConsoleProgressHandler()
    handler.on_fetch_failed('catalog', 'https://example.org', 'Failed to load transect catalog (404)')
    handler.on_cache_hit('profile', 'https://example.org', 0)
    handler.on_background_refresh('https://example.org', True)

    out = capsys.readouterr().out
    assert "failed: Failed to load transect catalog (404)" in out
    assert "from cache (1970-01-01 00:00 UTC)" in out


def test_format_timestamp():
    assert format_timestamp(86_400_000) == "1970-01-02 00:00 UTC"
