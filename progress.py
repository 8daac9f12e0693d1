"""
Progress reporting system for jarkus.

Provides a callback-based progress reporting mechanism with pluggable handlers.
"""

from __future__ import annotations

from datetime import datetime, timezone

from jarkus_core.progress import ProgressHandler, ProgressManager, get_progress_manager

__all__ = ["ProgressHandler", "ProgressManager", "get_progress_manager", "ConsoleProgressHandler", "format_timestamp"]


def format_timestamp(timestamp_ms: int) -> str:
    stamp = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return stamp.strftime('%Y-%m-%d %H:%M UTC')


class ConsoleProgressHandler:
    """Console-based progress handler with one status line per fetch."""

    def __init__(self, max_url_width: int = 60) -> None:
        self.max_url_width = max_url_width

    def _short_url(self, url: str) -> str:
        if len(url) <= self.max_url_width:
            return url
        return url[:self.max_url_width - 3] + '...'

    def on_fetch_start(self, slot: str, url: str) -> None:
        """Show which resource is being downloaded."""
        print(f"\r  {slot:<16} downloading {self._short_url(url)}", end='', flush=True)

    def on_fetch_complete(self, slot: str, url: str, num_chars: int) -> None:
        """Finish the status line with the response size."""
        print(f"\r  {slot:<16} done ({num_chars:,} chars){' ' * 40}", flush=True)

    def on_fetch_failed(self, slot: str, url: str, message: str) -> None:
        """Finish the status line with the failure message."""
        print(f"\r  {slot:<16} failed: {message}{' ' * 20}", flush=True)

    def on_cache_hit(self, slot: str, url: str, timestamp: int) -> None:
        """Report a cache-served slot and its age."""
        print(f"  {slot:<16} from cache ({format_timestamp(timestamp)})", flush=True)

    def on_background_refresh(self, url: str, updated: bool) -> None:
        """Background refreshes are silent on the console."""
