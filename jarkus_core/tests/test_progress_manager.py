from jarkus_core.progress import ProgressManager, get_progress_manager


class MinimalHandler:
    """Handler without the optional cache/background callbacks."""

    def __init__(self):
        self.calls = []

    def on_fetch_start(self, slot, url):
        self.calls.append(('start', slot, url))

    def on_fetch_complete(self, slot, url, num_chars):
        self.calls.append(('complete', slot, num_chars))

    def on_fetch_failed(self, slot, url, message):
        self.calls.append(('failed', slot, message))


def test_notify_fetch_events_in_order():
    manager = ProgressManager()
    handler = MinimalHandler()
    manager.register_handler(handler)

    manager.notify_fetch_start('profile', 'http://x')
    manager.notify_fetch_complete('profile', 'http://x', 42)
    manager.notify_fetch_failed('catalog', 'http://y', 'boom')

    assert handler.calls == [
        ('start', 'profile', 'http://x'),
        ('complete', 'profile', 42),
        ('failed', 'catalog', 'boom'),
    ]


def test_optional_callbacks_are_skipped():
    manager = ProgressManager()
    handler = MinimalHandler()
    manager.register_handler(handler)

    manager.notify_cache_hit('profile', 'http://x', 1)
    manager.notify_background_refresh('http://x', True)

    assert handler.calls == []


def test_clear_handlers():
    manager = ProgressManager()
    manager.register_handler(MinimalHandler())
    manager.clear_handlers()
    assert manager.handlers == []


def test_global_manager_is_shared():
    assert get_progress_manager() is get_progress_manager()
