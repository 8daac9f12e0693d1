"""Flattened exports of parsed profiles and series."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from .parsers import ProfileResult, SeriesResult

logger = logging.getLogger("jarkus")

YEAR_HEADER = 'year'


def profile_to_rows(profile: ProfileResult) -> list[list[object]]:
    """Build the row-labelled matrix: axis labels first, then one row per year."""
    rows: list[list[object]] = [[YEAR_HEADER, *profile.cross_shore]]
    for label, values in zip(profile.years, profile.altitude):
        rows.append([label, *values])
    return rows


def rows_to_profile(rows: list[list[object]]) -> ProfileResult:
    """Rebuild a profile from ``profile_to_rows`` output."""
    if not rows:
        raise ValueError("Cannot rebuild a profile from an empty row matrix")
    header, *body = rows
    cross_shore = list(header[1:])
    for row in body:
        if len(row) != len(header):
            raise ValueError(f"Row '{row[0]}' has {len(row) - 1} values; expected {len(cross_shore)}")
    return ProfileResult(
        cross_shore=cross_shore,
        years=[str(row[0]) for row in body],
        altitude=[list(row[1:]) for row in body],
    )


def profile_to_frame(profile: ProfileResult) -> pd.DataFrame:
    """Profile as a DataFrame with a ``year`` column and one column per cross-shore distance."""
    frame = profile.to_dataframe().reset_index()
    frame.columns = [YEAR_HEADER, *[str(value) for value in profile.cross_shore]]
    return frame


def series_to_frame(series: SeriesResult) -> pd.DataFrame:
    return series.to_dataframe()


def write_frame_csv(frame: pd.DataFrame, out_file: Path) -> Path:
    """Write a frame as CSV; missing values become empty cells."""
    out_file.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(out_file, index=False, na_rep='')
    logger.info(f"Saved export to {out_file}")
    return out_file


def write_profile_csv(profile: ProfileResult, out_file: Path) -> Path:
    return write_frame_csv(profile_to_frame(profile), out_file)
