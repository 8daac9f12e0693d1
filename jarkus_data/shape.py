"""Reshape flat numeric streams into row/column matrices."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .errors import ShapeMismatchError
from .payload import MISSING

logger = logging.getLogger("jarkus")

DEFAULT_SENTINEL = -9999


def _squeeze(dims: Sequence[int] | None) -> tuple[int, ...] | None:
    if dims is None:
        return None
    return tuple(size for size in dims if size != 1)


def _fill_row_major(flat: Sequence[float | None], rows: int, cols: int) -> list[list[float | None]]:
    return [list(flat[row * cols:row * cols + cols]) for row in range(rows)]


def _fill_transposed(flat: Sequence[float | None], rows: int, cols: int) -> list[list[float | None]]:
    return [[flat[col * rows + row] for col in range(cols)] for row in range(rows)]


def _matches_row_major(length: int, rows: int, cols: int, dims: Sequence[int] | None) -> bool:
    return length == rows * cols and (dims is None or tuple(dims) == (rows, cols))


def _matches_transposed(length: int, rows: int, cols: int, dims: Sequence[int] | None) -> bool:
    return length == cols * rows and rows != cols and _squeeze(dims) == (cols, rows)


def _matches_singleton_axis(length: int, rows: int, cols: int, dims: Sequence[int] | None) -> bool:
    return length == rows * 1 * cols


@dataclass(frozen=True)
class ShapeStrategy:
    """One tolerated layout: a predicate on sizes and a fill function."""

    name: str
    matches: Callable[[int, int, int, Sequence[int] | None], bool]
    fill: Callable[[Sequence[float | None], int, int], list[list[float | None]]]


SHAPE_STRATEGIES: tuple[ShapeStrategy, ...] = (
    ShapeStrategy("row_major", _matches_row_major, _fill_row_major),
    ShapeStrategy("transposed", _matches_transposed, _fill_transposed),
    ShapeStrategy("singleton_axis", _matches_singleton_axis, _fill_row_major),
)


def replace_sentinel(
    matrix: list[list[float | None]],
    sentinel: float | None = DEFAULT_SENTINEL,
) -> list[list[float | None]]:
    """Map sentinel values to MISSING in place and return the matrix."""
    if sentinel is None:
        return matrix
    for row in matrix:
        for idx, value in enumerate(row):
            if value is not MISSING and value == sentinel:
                row[idx] = MISSING
    return matrix


def replace_sentinel_values(
    values: Sequence[float | None],
    sentinel: float | None = DEFAULT_SENTINEL,
) -> list[float | None]:
    """Return a copy of a flat series with sentinel values mapped to MISSING."""
    if sentinel is None:
        return list(values)
    return [MISSING if value is not MISSING and value == sentinel else value for value in values]


def resolve_matrix(
    flat: Sequence[float | None],
    rows: int,
    cols: int,
    declared_dims: Sequence[int] | None = None,
    sentinel: float | None = DEFAULT_SENTINEL,
    excerpt: str | None = None,
) -> list[list[float | None]]:
    """Reshape ``flat`` into ``rows`` x ``cols`` using the first matching strategy.

    Args:
        flat: Values in source reading order.
        rows: Row-axis size (time).
        cols: Column-axis size (cross-shore).
        declared_dims: Dimension sizes from the variable header, when known.
        sentinel: Value mapped to MISSING after reshaping; None disables it.
        excerpt: Source text quoted in the error on failure.

    Raises:
        ShapeMismatchError: If no strategy accepts the observed length.
    """
    length = len(flat)
    for strategy in SHAPE_STRATEGIES:
        if not strategy.matches(length, rows, cols, declared_dims):
            continue
        if strategy.name == "transposed":
            logger.info(f"Reshaping {length} values with transposed layout {cols}x{rows}")
        else:
            logger.debug(f"Reshaping {length} values into {rows}x{cols} via {strategy.name}")
        return replace_sentinel(strategy.fill(flat, rows, cols), sentinel)

    raise ShapeMismatchError(length, rows, cols, excerpt)
