"""Core shared helpers for jarkus packages."""

from .config import (
    CoreConfigService,
    load_cache_settings,
    load_dataset_settings,
    load_fetch_settings,
    load_parsing_settings,
    load_runtime_paths,
)
from .progress import ProgressHandler, ProgressManager, get_progress_manager

__all__ = [
    "CoreConfigService",
    "get_progress_manager",
    "load_cache_settings",
    "load_dataset_settings",
    "load_fetch_settings",
    "load_parsing_settings",
    "load_runtime_paths",
    "ProgressHandler",
    "ProgressManager",
]
