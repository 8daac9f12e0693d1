"""Locate and tokenize variable payload blocks in OPeNDAP ASCII responses.

An ASCII response looks like::

    Dataset {
        Int32 id[alongshore = 2465];
    } opendap/rijkswaterstaat/jarkus/profiles/transect.nc;
    ---------------------------------------------
    id[2465]
    2000100, 2000120, 2000140, ...

Everything before the dashed delimiter is the structural preamble and is
never searched for data.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .errors import ExtractionError

logger = logging.getLogger("jarkus")

MISSING = None

_DELIMITER_RE = re.compile(r"^-{5,}[ \t]*$", re.MULTILINE)
_DIMENSION = r"\[\s*(?:\d+\s*:\s*\d+\s*:\s*\d+|\d+|[A-Za-z_][\w.]*\s*=\s*\d+)\s*\]"
_NAMESPACE = r"(?:[A-Za-z_][\w-]*\.)*"
_GENERIC_HEADER_RE = re.compile(
    r"^[ \t]*[A-Za-z_][\w-]*(?:\.[A-Za-z_][\w-]*)*(?:\[[^\]\n]*\])+[ \t]*$",
    re.MULTILINE,
)
_DIMENSION_RE = re.compile(r"\[([^\]\n]*)\]")
_RANGE_RE = re.compile(r"^\s*(\d+)\s*:\s*(\d+)\s*:\s*(\d+)\s*$")
_NAMED_SIZE_RE = re.compile(r"^\s*[A-Za-z_][\w.]*\s*=\s*(\d+)\s*$")
_INDEX_ANNOTATION_RE = re.compile(r"^[ \t]*(?:\[\s*\d+\s*\]){1,4}[ \t]*,", re.MULTILINE)
_TOKEN_RE = re.compile(
    r"(?P<nan>(?<![A-Za-z0-9_])nan(?![A-Za-z0-9_]))"
    r"|(?P<num>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)",
    re.IGNORECASE,
)
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')


@dataclass(frozen=True)
class VariableBlock:
    """One variable's header dimensions and payload text."""

    name: str
    dimensions: tuple[int, ...]
    body: str


def normalize_text(raw_text: str) -> str:
    """Normalize line endings so every pattern can anchor on ``\\n``."""
    return raw_text.replace("\r\n", "\n").replace("\r", "\n")


def data_section(raw_text: str) -> str:
    """Return the text after the first dashed delimiter line.

    Without a delimiter the whole document is returned.
    """
    text = normalize_text(raw_text)
    match = _DELIMITER_RE.search(text)
    if match is None:
        logger.debug("No delimiter line found; searching whole document")
        return text
    return text[match.end():]


def _header_pattern(name: str) -> re.Pattern[str]:
    return re.compile(
        rf"^[ \t]*{_NAMESPACE}{re.escape(name)}(?P<dims>(?:{_DIMENSION})+)[ \t]*$",
        re.MULTILINE,
    )


def parse_dimensions(descriptor: str) -> tuple[int, ...]:
    """Parse bracket groups like ``[time = 3][0:1:4][2]`` into sizes."""
    sizes: list[int] = []
    for group in _DIMENSION_RE.findall(descriptor):
        range_match = _RANGE_RE.match(group)
        if range_match:
            start, stride, stop = (int(part) for part in range_match.groups())
            stride = stride or 1
            sizes.append(max(0, (stop - start) // stride + 1))
            continue
        named_match = _NAMED_SIZE_RE.match(group)
        if named_match:
            sizes.append(int(named_match.group(1)))
            continue
        sizes.append(int(group.strip()))
    return tuple(sizes)


def extract_variable_block(raw_text: str, name: str) -> VariableBlock | None:
    """Find the header line of ``name`` and return its block, or None."""
    section = data_section(raw_text)
    header = _header_pattern(name).search(section)
    if header is None:
        return None

    body_start = header.end()
    next_header = _GENERIC_HEADER_RE.search(section, body_start)
    body_end = next_header.start() if next_header else len(section)
    return VariableBlock(
        name=name,
        dimensions=parse_dimensions(header.group("dims")),
        body=section[body_start:body_end].strip("\n"),
    )


def require_variable_block(raw_text: str, name: str) -> VariableBlock:
    """Like ``extract_variable_block`` but raises ExtractionError when absent."""
    block = extract_variable_block(raw_text, name)
    if block is None:
        raise ExtractionError(name, excerpt=data_section(raw_text))
    return block


def extract_payload(raw_text: str, name: str) -> str:
    """Return the payload text of ``name``, or an empty string when absent."""
    block = extract_variable_block(raw_text, name)
    return "" if block is None else block.body


def strip_index_annotations(text: str) -> str:
    """Drop leading ``[i][j],`` row annotations of multi-dimensional payloads."""
    return _INDEX_ANNOTATION_RE.sub("", text)


def tokenize_numbers(text: str) -> list[float | None]:
    """Return numeric tokens in reading order; ``NaN`` becomes MISSING."""
    values: list[float | None] = []
    for match in _TOKEN_RE.finditer(text):
        if match.group("nan") is not None:
            values.append(MISSING)
        else:
            values.append(float(match.group("num")))
    return values


def tokenize_strings(text: str) -> list[str]:
    """Return the trimmed contents of every double-quoted string."""
    return [
        value.replace('\\"', '"').replace("\\\\", "\\").strip()
        for value in _QUOTED_RE.findall(text)
    ]


def read_numeric_variable(raw_text: str, name: str, strip_indices: bool = True) -> tuple[list[float | None], VariableBlock | None]:
    """Extract and tokenize one variable, returning its values and block."""
    block = extract_variable_block(raw_text, name)
    if block is None:
        return [], None
    body = strip_index_annotations(block.body) if strip_indices else block.body
    return tokenize_numbers(body), block
