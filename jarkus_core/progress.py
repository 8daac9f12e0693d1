"""Core progress primitives shared across layers."""

from __future__ import annotations

from typing import Protocol


class ProgressHandler(Protocol):
    """Protocol for fetch progress event handlers."""

    def on_fetch_start(self, slot: str, url: str) -> None:
        """Called when a foreground network fetch starts."""
        ...

    def on_fetch_complete(self, slot: str, url: str, num_chars: int) -> None:
        """Called when a foreground fetch has been parsed and applied."""
        ...

    def on_fetch_failed(self, slot: str, url: str, message: str) -> None:
        """Called when a foreground fetch or its parse fails."""
        ...

    def on_cache_hit(self, slot: str, url: str, timestamp: int) -> None:
        """Called when a slot is served from the persistent cache."""
        ...

    def on_background_refresh(self, url: str, updated: bool) -> None:
        """Called when a background cache refresh finishes."""
        ...


class ProgressManager:
    """Manages progress event handlers and dispatches events."""

    def __init__(self) -> None:
        """Initialize the progress manager."""
        self.handlers: list[ProgressHandler] = []

    def register_handler(self, handler: ProgressHandler) -> None:
        """Register a progress handler."""
        self.handlers.append(handler)

    def clear_handlers(self) -> None:
        """Remove all registered handlers."""
        self.handlers.clear()

    def notify_fetch_start(self, slot: str, url: str) -> None:
        """Notify all handlers that a foreground fetch started."""
        for handler in self.handlers:
            handler.on_fetch_start(slot, url)

    def notify_fetch_complete(self, slot: str, url: str, num_chars: int) -> None:
        """Notify all handlers that a foreground fetch completed."""
        for handler in self.handlers:
            handler.on_fetch_complete(slot, url, num_chars)

    def notify_fetch_failed(self, slot: str, url: str, message: str) -> None:
        """Notify all handlers that a foreground fetch failed."""
        for handler in self.handlers:
            handler.on_fetch_failed(slot, url, message)

    def notify_cache_hit(self, slot: str, url: str, timestamp: int) -> None:
        """Notify handlers about a cache hit (if supported)."""
        for handler in self.handlers:
            cache_hit = getattr(handler, "on_cache_hit", None)
            if callable(cache_hit):
                cache_hit(slot, url, timestamp)

    def notify_background_refresh(self, url: str, updated: bool) -> None:
        """Notify handlers that a background refresh finished (if supported)."""
        for handler in self.handlers:
            background_refresh = getattr(handler, "on_background_refresh", None)
            if callable(background_refresh):
                background_refresh(url, updated)


_progress_manager = ProgressManager()


def get_progress_manager() -> ProgressManager:
    """Get the global progress manager instance."""
    return _progress_manager
