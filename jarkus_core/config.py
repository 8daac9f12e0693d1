"""Configuration helpers shared across CLI and data layers."""

from __future__ import annotations

import logging
from copy import deepcopy
from pathlib import Path

import yaml

from .constants import (
    DEFAULT_CACHE_SETTINGS,
    DEFAULT_DATASETS,
    DEFAULT_FETCH_SETTINGS,
    DEFAULT_PARSING_SETTINGS,
    DEFAULT_RUNTIME_PATHS,
    VALID_DATASETS,
)

logger = logging.getLogger("jarkus")


def _load_section(config_file: Path, section: str) -> dict:
    """Read one top-level mapping section; a missing file or section is empty."""
    if not Path(config_file).exists():
        logger.debug(f"Config file {config_file} not found; using defaults for {section}")
        return {}
    with open(config_file, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Invalid config document in {config_file}; expected mapping.")

    value = config.get(section, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Invalid {section} section in {config_file}; expected mapping.")
    return value


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class CoreConfigService:
    """Stateful access wrapper for core config helpers."""

    def __init__(self, config_file: Path = Path("config.yaml")) -> None:
        self.config_file = config_file

    def load_runtime_paths(self) -> dict[str, str]:
        return load_runtime_paths(self.config_file)

    def load_fetch_settings(self) -> dict[str, object]:
        return load_fetch_settings(self.config_file)

    def load_cache_settings(self) -> dict[str, int]:
        return load_cache_settings(self.config_file)

    def load_parsing_settings(self) -> dict[str, object]:
        return load_parsing_settings(self.config_file)

    def load_dataset_settings(self) -> dict[str, dict]:
        return load_dataset_settings(self.config_file)


def load_runtime_paths(config_file: Path = Path("config.yaml")) -> dict[str, str]:
    """Load runtime path defaults from config YAML.

    Paths are read from top-level ``runtime_paths`` and merged with minimal
    defaults when keys are missing.
    """
    paths = DEFAULT_RUNTIME_PATHS.copy()
    runtime_paths = _load_section(config_file, 'runtime_paths')

    for key in DEFAULT_RUNTIME_PATHS:
        if key in runtime_paths:
            value = runtime_paths[key]
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"runtime_paths.{key} must be a non-empty string")
            paths[key] = value.strip()

    return paths


def load_fetch_settings(config_file: Path = Path("config.yaml")) -> dict[str, object]:
    """Load network settings from the top-level ``fetch`` section."""
    settings = DEFAULT_FETCH_SETTINGS.copy()
    fetch = _load_section(config_file, 'fetch')

    if 'timeout_seconds' in fetch:
        timeout = fetch['timeout_seconds']
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("fetch.timeout_seconds must be a positive number")
        settings['timeout_seconds'] = float(timeout)

    if 'catalog_endpoint' in fetch:
        endpoint = fetch['catalog_endpoint']
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise ValueError("fetch.catalog_endpoint must be a non-empty string")
        settings['catalog_endpoint'] = endpoint.strip()

    if 'catalog_size' in fetch:
        if not _is_positive_int(fetch['catalog_size']):
            raise ValueError("fetch.catalog_size must be a positive integer")
        settings['catalog_size'] = fetch['catalog_size']

    return settings


def load_cache_settings(config_file: Path = Path("config.yaml")) -> dict[str, int]:
    """Load cache limits from the top-level ``cache`` section."""
    settings = DEFAULT_CACHE_SETTINGS.copy()
    cache = _load_section(config_file, 'cache')

    if 'max_entry_chars' in cache:
        if not _is_positive_int(cache['max_entry_chars']):
            raise ValueError("cache.max_entry_chars must be a positive integer")
        settings['max_entry_chars'] = cache['max_entry_chars']

    return settings


def load_parsing_settings(config_file: Path = Path("config.yaml")) -> dict[str, object]:
    """Load parser options from the top-level ``parsing`` section.

    ``time_units`` stays None unless configured; the time labeller then
    falls back to its year-range heuristic.
    """
    settings = DEFAULT_PARSING_SETTINGS.copy()
    parsing = _load_section(config_file, 'parsing')

    if 'sentinel' in parsing:
        sentinel = parsing['sentinel']
        if sentinel is not None and (isinstance(sentinel, bool) or not isinstance(sentinel, (int, float))):
            raise ValueError("parsing.sentinel must be a number or null")
        settings['sentinel'] = sentinel

    if 'time_units' in parsing:
        units = parsing['time_units']
        if units is not None and (not isinstance(units, str) or ' since ' not in units):
            raise ValueError("parsing.time_units must look like '<unit> since <date>' or be null")
        settings['time_units'] = units

    return settings


def _validate_dataset(name: str, settings: dict) -> None:
    endpoint = settings.get('endpoint')
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise ValueError(f"datasets.{name}.endpoint must be a non-empty string")

    variables = settings.get('variables')
    if not (
        isinstance(variables, dict)
        and variables
        and all(isinstance(key, str) and key for key in variables.keys())
        and all(isinstance(value, str) and value for value in variables.values())
    ):
        raise ValueError(f"datasets.{name}.variables must be a non-empty mapping of strings")

    for size_key in ('time_size', 'cross_shore_size'):
        if size_key in settings and settings[size_key] is not None and not _is_positive_int(settings[size_key]):
            raise ValueError(f"datasets.{name}.{size_key} must be a positive integer")

    value_variables = settings.get('value_variables')
    if value_variables is not None:
        if not (
            isinstance(value_variables, list)
            and 1 <= len(value_variables) <= 2
            and all(isinstance(item, str) and item for item in value_variables)
        ):
            raise ValueError(f"datasets.{name}.value_variables must list one or two variable names")


def load_dataset_settings(config_file: Path = Path("config.yaml")) -> dict[str, dict]:
    """Load per-dataset request settings, merged over built-in defaults.

    Configured keys replace default keys one level deep; a configured
    ``variables`` mapping replaces the default mapping as a whole.
    """
    datasets = deepcopy(DEFAULT_DATASETS)
    configured = _load_section(config_file, 'datasets')

    for name, overrides in configured.items():
        if name not in VALID_DATASETS or name == 'catalog':
            allowed = ', '.join(key for key in VALID_DATASETS if key != 'catalog')
            raise ValueError(f"Unknown dataset '{name}' in datasets section. Allowed: {allowed}")
        if not isinstance(overrides, dict):
            raise ValueError(f"Invalid datasets.{name} section in {config_file}; expected mapping.")
        datasets[name].update(deepcopy(overrides))

    for name, settings in datasets.items():
        _validate_dataset(name, settings)

    return datasets
