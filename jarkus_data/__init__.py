"""Data-layer package for jarkus (OPeNDAP parsing, cache and fetch pipeline)."""

from .cache_store import CacheEntry, CacheStore, cache_key_for_url
from .data_retrieval import FetchCoordinator, SlotState
from .errors import (
    ArrayLengthMismatchError,
    CacheCorruptionError,
    CacheOverflowError,
    ExtractionError,
    JarkusError,
    NetworkError,
    ParsingError,
    ShapeMismatchError,
)
from .parsers import (
    AreaTable,
    IdCatalog,
    ProfileResult,
    ReferencePoints,
    SeriesResult,
    get_dataset_parser,
    parse_areas,
    parse_coastline,
    parse_id_catalog,
    parse_profile,
    parse_reference_points,
    parse_series,
    parse_water_levels,
)
from .resources import DatasetRequest, build_dataset_url, build_slice, catalog_url

__all__ = [
    "AreaTable",
    "ArrayLengthMismatchError",
    "build_dataset_url",
    "build_slice",
    "CacheCorruptionError",
    "CacheEntry",
    "CacheOverflowError",
    "CacheStore",
    "cache_key_for_url",
    "catalog_url",
    "DatasetRequest",
    "ExtractionError",
    "FetchCoordinator",
    "get_dataset_parser",
    "IdCatalog",
    "JarkusError",
    "NetworkError",
    "parse_areas",
    "parse_coastline",
    "parse_id_catalog",
    "parse_profile",
    "parse_reference_points",
    "parse_series",
    "parse_water_levels",
    "ParsingError",
    "ProfileResult",
    "ReferencePoints",
    "SeriesResult",
    "ShapeMismatchError",
    "SlotState",
]
