"""Display labels for raw time axes."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

import pandas as pd

from .payload import MISSING

logger = logging.getLogger("jarkus")

YEAR_RANGE = (1800, 2200)
DEFAULT_EPOCH = pd.Timestamp("1970-01-01T00:00:00Z")
VALID_LABEL_FORMATS = ("year", "date")

_UNITS_RE = re.compile(
    r"^\s*(?P<unit>days?|hours?|minutes?|seconds?)\s+since\s+(?P<origin>.+?)\s*$",
    re.IGNORECASE,
)
_UNIT_ALIASES = {
    'day': 'D',
    'hour': 'h',
    'minute': 'min',
    'second': 's',
}


def parse_time_units(units: str) -> tuple[str, pd.Timestamp]:
    """Parse a CF-style ``'<unit> since <origin>'`` string.

    Returns:
        Tuple of (pandas timedelta unit, UTC origin timestamp).

    Raises:
        ValueError: If the string is not a recognised units descriptor.
    """
    match = _UNITS_RE.match(units or "")
    if match is None:
        raise ValueError(f"Unsupported time units '{units}'")
    unit = _UNIT_ALIASES[match.group('unit').lower().rstrip('s')]
    origin = pd.Timestamp(match.group('origin'))
    if origin.tzinfo is None:
        origin = origin.tz_localize('UTC')
    else:
        origin = origin.tz_convert('UTC')
    return unit, origin


def looks_like_years(values: Sequence[float | None]) -> bool:
    """Return True when every present value falls in a plausible year range."""
    present = [value for value in values if value is not MISSING]
    if not present:
        return False
    low, high = YEAR_RANGE
    return all(low <= value <= high for value in present)


def _format_timestamp(stamp: pd.Timestamp, fmt: str) -> str:
    if fmt == 'date':
        return stamp.date().isoformat()
    return str(stamp.year)


def label_time_axis(
    values: Sequence[float | None],
    units: str | None = None,
    fmt: str = 'year',
) -> list[str]:
    """
    Convert a raw time axis into display labels of equal length.

    Args:
        values: Raw time values; MISSING entries label as ``""``.
        units: Optional CF units descriptor (for example ``'days since 1970-01-01'``).
            When given it is used instead of the year-range heuristic.
        fmt: ``'year'`` for calendar years, ``'date'`` for ISO dates. An axis
            already holding years is always labelled by year.

    Returns:
        One label per input value.
    """
    if fmt not in VALID_LABEL_FORMATS:
        raise ValueError(f"Unsupported label format '{fmt}'. Allowed: {', '.join(VALID_LABEL_FORMATS)}")

    if units is not None:
        unit, origin = parse_time_units(units)
    elif looks_like_years(values):
        return ["" if value is MISSING else str(int(round(value))) for value in values]
    else:
        unit, origin = 'D', DEFAULT_EPOCH

    labels: list[str] = []
    for value in values:
        if value is MISSING:
            labels.append("")
            continue
        stamp = origin + pd.to_timedelta(value, unit=unit)
        labels.append(_format_timestamp(stamp, fmt))
    return labels
