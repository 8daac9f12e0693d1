"""Per-dataset parsers for JARKUS OPeNDAP ASCII responses.

Each parser is a pure function of the raw response text and fails on its own
with a ``ParsingError`` subclass; one broken dataset never blocks another.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import xarray as xr

from .errors import ArrayLengthMismatchError, ExtractionError
from .payload import (
    MISSING,
    data_section,
    extract_variable_block,
    normalize_text,
    read_numeric_variable,
    require_variable_block,
    strip_index_annotations,
    tokenize_numbers,
    tokenize_strings,
)
from .shape import DEFAULT_SENTINEL, replace_sentinel_values, resolve_matrix
from .time_axis import label_time_axis

logger = logging.getLogger("jarkus")

DEFAULT_CATALOG_SIZE = 2465
CATALOG_VARIABLE = 'id'
WATER_LEVEL_VARIABLES = ('mean_high_water', 'mean_low_water')
COASTLINE_VARIABLES = ('momentary_coastline',)

_INTEGER_RE = re.compile(r"-?\d+")


def _as_float_array(values: Sequence[float | None]) -> np.ndarray:
    return np.array([np.nan if value is MISSING else value for value in values], dtype=np.float64)


@dataclass(frozen=True)
class ProfileResult:
    """Cross-shore altitude profile of one transect over the survey years."""

    cross_shore: list[float | None]
    years: list[str]
    altitude: list[list[float | None]]

    def to_numpy(self) -> np.ndarray:
        """Altitude matrix as float64 with NaN for missing values."""
        return np.array([_as_float_array(row) for row in self.altitude], dtype=np.float64).reshape(
            len(self.years), len(self.cross_shore)
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Altitude table indexed by year label with one column per cross-shore distance."""
        return pd.DataFrame(
            self.to_numpy(),
            index=pd.Index(self.years, name='year'),
            columns=pd.Index(_as_float_array(self.cross_shore), name='cross_shore'),
        )

    def to_xarray(self) -> xr.DataArray:
        """Altitude as a labelled ``(time, cross_shore)`` array."""
        return xr.DataArray(
            self.to_numpy(),
            dims=('time', 'cross_shore'),
            coords={
                'time': list(self.years),
                'cross_shore': _as_float_array(self.cross_shore),
            },
            name='altitude',
        )


@dataclass(frozen=True)
class IdCatalog:
    """Ordered transect identifiers, addressable by catalog position."""

    ids: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.ids)

    def __getitem__(self, position: int) -> int:
        return self.ids[position]

    def __iter__(self):
        return iter(self.ids)

    def index_of(self, transect_id: int) -> int:
        """Return the catalog position of an exact identifier."""
        try:
            return self.ids.index(int(transect_id))
        except ValueError as exc:
            raise KeyError(f"Transect id {transect_id} is not in the catalog") from exc


@dataclass(frozen=True)
class AreaTable:
    """Parallel area codes and names, one entry per transect."""

    codes: list[int | None]
    names: list[str]

    def lookup(self, code: int) -> str | None:
        """Return the first area name recorded for ``code``."""
        for candidate, name in zip(self.codes, self.names):
            if candidate == code:
                return name
        return None


@dataclass(frozen=True)
class ReferencePoints:
    """Reference-point coordinates: projected (x, y) and geographic (lat, lon)."""

    x: list[float | None]
    y: list[float | None]
    lat: list[float | None]
    lon: list[float | None]

    def __len__(self) -> int:
        return len(self.x)


@dataclass(frozen=True)
class SeriesRecord:
    label: str
    values: tuple[float | None, ...]


@dataclass(frozen=True)
class SeriesResult:
    """Time-labelled records of one or two value arrays."""

    variables: tuple[str, ...]
    records: list[SeriesRecord] = field(default_factory=list)

    @property
    def labels(self) -> list[str]:
        return [record.label for record in self.records]

    def column(self, variable: str) -> list[float | None]:
        """Return the values of one variable in record order."""
        idx = self.variables.index(variable)
        return [record.values[idx] for record in self.records]

    def to_dataframe(self) -> pd.DataFrame:
        data = {'label': self.labels}
        for variable in self.variables:
            data[variable] = _as_float_array(self.column(variable))
        return pd.DataFrame(data)


def _require_numeric(raw_text: str, name: str, strip_indices: bool = True) -> list[float | None]:
    block = require_variable_block(raw_text, name)
    body = strip_index_annotations(block.body) if strip_indices else block.body
    values = tokenize_numbers(body)
    if not values:
        raise ExtractionError(name, excerpt=block.body)
    return values


def parse_profile(
    raw_text: str,
    sentinel: float | None = DEFAULT_SENTINEL,
    time_units: str | None = None,
) -> ProfileResult:
    """
    Parse cross-shore axis, time axis and altitude cross-sections.

    Args:
        raw_text: OPeNDAP ASCII response holding ``cross_shore``, ``time`` and ``altitude``.
        sentinel: No-data value in the altitude payload.
        time_units: Optional CF units for the time axis.

    Returns:
        ProfileResult with one altitude row per year.

    Raises:
        ExtractionError: If an axis is empty or the altitude block is absent.
        ShapeMismatchError: If the altitude count fits no tolerated layout.
    """
    cross_shore = _require_numeric(raw_text, 'cross_shore')
    time_values = _require_numeric(raw_text, 'time')

    altitude_block = require_variable_block(raw_text, 'altitude')
    flat = tokenize_numbers(strip_index_annotations(altitude_block.body))
    altitude = resolve_matrix(
        flat,
        rows=len(time_values),
        cols=len(cross_shore),
        declared_dims=altitude_block.dimensions,
        sentinel=sentinel,
        excerpt=altitude_block.body,
    )
    years = label_time_axis(time_values, units=time_units)
    logger.debug(f"Parsed profile: {len(years)} years x {len(cross_shore)} cross-shore points")
    return ProfileResult(cross_shore=cross_shore, years=years, altitude=altitude)


def _finite_integers(values: Sequence[float | None]) -> list[int]:
    return [int(value) for value in values if value is not MISSING and math.isfinite(value)]


def _catalog_structured(raw_text: str, variable: str) -> tuple[list[int], str]:
    block = extract_variable_block(raw_text, variable)
    if block is None:
        return [], data_section(raw_text)
    body = strip_index_annotations(block.body)
    return _finite_integers(tokenize_numbers(body)), block.body


def _catalog_raw_scan(raw_text: str, variable: str) -> tuple[list[int], str]:
    text = normalize_text(raw_text)
    anchor = text.find(f"{variable}[")
    start = 0 if anchor == -1 else text.find("\n", anchor) + 1
    tail = text[start:]
    return [int(token) for token in _INTEGER_RE.findall(tail)], tail


CATALOG_STRATEGIES: tuple[tuple[str, Callable[[str, str], tuple[list[int], str]]], ...] = (
    ('structured', _catalog_structured),
    ('raw_scan', _catalog_raw_scan),
)


def drop_declared_size_artifact(ids: list[int], declared_size: int | None) -> list[int]:
    """Drop a leading element equal to the declared catalog size."""
    if declared_size is not None and ids and ids[0] == declared_size:
        logger.debug(f"Dropping leading catalog size artifact {declared_size}")
        return ids[1:]
    return ids


def parse_id_catalog(
    raw_text: str,
    declared_size: int | None = DEFAULT_CATALOG_SIZE,
    variable: str = CATALOG_VARIABLE,
) -> IdCatalog:
    """
    Parse the ordered transect identifier catalog.

    Strategies run in order (structured payload, then raw scan after the first
    ``id[`` occurrence); the first non-empty result wins.

    Raises:
        ExtractionError: If no strategy yields any identifier.
    """
    context = raw_text
    for name, strategy in CATALOG_STRATEGIES:
        ids, context = strategy(raw_text, variable)
        ids = drop_declared_size_artifact(ids, declared_size)
        if ids:
            logger.debug(f"Parsed {len(ids)} catalog ids via {name}")
            return IdCatalog(ids=tuple(ids))
        logger.debug(f"Catalog strategy {name} found no ids")

    raise ExtractionError(variable, "Could not parse transect catalog", excerpt=context)


def parse_areas(raw_text: str) -> AreaTable:
    """Parse parallel ``areacode`` numbers and quoted ``areaname`` strings."""
    codes = [
        MISSING if value is MISSING else int(value)
        for value in read_numeric_variable(raw_text, 'areacode')[0]
    ]
    name_block = extract_variable_block(raw_text, 'areaname')
    names = tokenize_strings(name_block.body) if name_block is not None else []

    if not codes:
        raise ExtractionError('areacode', excerpt=data_section(raw_text))
    if not names:
        raise ExtractionError('areaname', excerpt=data_section(raw_text))
    if len(codes) != len(names):
        raise ArrayLengthMismatchError(
            'area',
            {'areacode': len(codes), 'areaname': len(names)},
            excerpt=name_block.body,
        )
    return AreaTable(codes=codes, names=names)


def parse_reference_points(
    raw_text: str,
    sentinel: float | None = DEFAULT_SENTINEL,
) -> ReferencePoints:
    """Parse ``rsp_x``, ``rsp_y``, ``rsp_lat`` and ``rsp_lon`` arrays."""
    arrays = {
        name: replace_sentinel_values(_require_numeric(raw_text, name), sentinel)
        for name in ('rsp_x', 'rsp_y', 'rsp_lat', 'rsp_lon')
    }
    lengths = {name: len(values) for name, values in arrays.items()}
    if len(set(lengths.values())) != 1:
        raise ArrayLengthMismatchError('reference point', lengths, excerpt=data_section(raw_text))
    return ReferencePoints(
        x=arrays['rsp_x'],
        y=arrays['rsp_y'],
        lat=arrays['rsp_lat'],
        lon=arrays['rsp_lon'],
    )


def parse_series(
    raw_text: str,
    time_variable: str = 'time',
    value_variables: Sequence[str] = WATER_LEVEL_VARIABLES,
    sentinel: float | None = DEFAULT_SENTINEL,
    time_units: str | None = None,
    label_format: str = 'year',
    dataset: str = 'series',
) -> SeriesResult:
    """
    Parse a time axis with one or two value arrays into labelled records.

    Missing markers are preserved and the sentinel is mapped to MISSING.

    Raises:
        ValueError: If not one or two value variables are requested.
        ExtractionError: If the time axis or a value array is absent.
        ArrayLengthMismatchError: If the arrays are not all the same length.
    """
    value_variables = tuple(value_variables)
    if len(value_variables) not in (1, 2):
        raise ValueError(f"{dataset} parsing needs one or two value variables, got {len(value_variables)}")

    time_values = _require_numeric(raw_text, time_variable)
    columns = [
        replace_sentinel_values(_require_numeric(raw_text, name), sentinel)
        for name in value_variables
    ]

    lengths = {time_variable: len(time_values)}
    lengths.update({name: len(values) for name, values in zip(value_variables, columns)})
    if len(set(lengths.values())) != 1:
        raise ArrayLengthMismatchError(dataset, lengths, excerpt=data_section(raw_text))

    labels = label_time_axis(time_values, units=time_units, fmt=label_format)
    records = [
        SeriesRecord(label=label, values=tuple(column[idx] for column in columns))
        for idx, label in enumerate(labels)
    ]
    return SeriesResult(variables=value_variables, records=records)


def parse_water_levels(
    raw_text: str,
    value_variables: Sequence[str] = WATER_LEVEL_VARIABLES,
    **options,
) -> SeriesResult:
    """Parse mean high/low water levels per survey year."""
    return parse_series(raw_text, value_variables=value_variables, dataset='water level', **options)


def parse_coastline(
    raw_text: str,
    value_variables: Sequence[str] = COASTLINE_VARIABLES,
    **options,
) -> SeriesResult:
    """Parse coastline position history."""
    return parse_series(raw_text, value_variables=value_variables, dataset='coastline', **options)


DATASET_PARSERS: dict[str, Callable[..., object]] = {
    'profile': parse_profile,
    'catalog': parse_id_catalog,
    'areas': parse_areas,
    'reference_points': parse_reference_points,
    'water_level': parse_water_levels,
    'coastline': parse_coastline,
}


def get_dataset_parser(dataset: str) -> Callable[..., object]:
    """Resolve the parser function for a dataset name."""
    try:
        return DATASET_PARSERS[dataset]
    except KeyError as exc:
        allowed = ', '.join(sorted(DATASET_PARSERS.keys()))
        raise ValueError(f"Unsupported dataset '{dataset}'. Allowed: {allowed}") from exc
