import pytest

from jarkus_data.errors import ExtractionError
from jarkus_data.payload import (
    MISSING,
    data_section,
    extract_payload,
    extract_variable_block,
    parse_dimensions,
    read_numeric_variable,
    require_variable_block,
    strip_index_annotations,
    tokenize_numbers,
    tokenize_strings,
)


PREAMBLE = (
    "Dataset {\n"
    "    Int32 id[alongshore = 4];\n"
    "    Float64 cross_shore[cross_shore = 3];\n"
    "} opendap/rijkswaterstaat/jarkus/profiles/transect.nc;\n"
    "---------------------------------------------\n"
)


def test_data_section_skips_preamble():
    raw = PREAMBLE + "id[4]\n1, 2, 3, 4\n"
    section = data_section(raw)
    assert "Dataset" not in section
    assert section.startswith("id[4]")


def test_data_section_without_delimiter_returns_whole_text():
    raw = "id[2]\n5, 6\n"
    assert data_section(raw) == raw


def test_data_section_normalizes_crlf():
    raw = "-----\r\nid[2]\r\n5, 6\r\n"
    assert "\r" not in data_section(raw)


@pytest.mark.parametrize("descriptor, expected", [
    ("[3]", (3,)),
    ("[2][1][3]", (2, 1, 3)),
    ("[0:1:59]", (60,)),
    ("[0:2:10]", (6,)),
    ("[time = 2][alongshore = 1]", (2, 1)),
])
def test_parse_dimensions(descriptor, expected):
    assert parse_dimensions(descriptor) == expected


def test_extract_variable_block_reads_until_next_header():
    raw = PREAMBLE + "cross_shore[3]\n10, 20, 30\n\ntime[2]\n2010, 2011\n"
    block = extract_variable_block(raw, "cross_shore")
    assert block is not None
    assert block.dimensions == (3,)
    assert block.body.strip() == "10, 20, 30"


def test_extract_variable_block_ignores_preamble_declarations():
    raw = PREAMBLE + "time[2]\n2010, 2011\n"
    assert extract_variable_block(raw, "cross_shore") is None
    assert extract_payload(raw, "cross_shore") == ""


def test_extract_variable_block_accepts_namespaced_header():
    raw = PREAMBLE + "altitude.altitude[time = 2][alongshore = 1][cross_shore = 3]\n[0][0], 1, 2, 3\n[1][0], 4, 5, 6\n"
    block = extract_variable_block(raw, "altitude")
    assert block is not None
    assert block.dimensions == (2, 1, 3)


def test_extract_variable_block_does_not_match_name_prefix():
    raw = PREAMBLE + "time_bounds[2]\n1, 2\n"
    assert extract_variable_block(raw, "time") is None


def test_header_name_is_matched_literally():
    raw = PREAMBLE + "rspXx[1]\n99\nrsp.x[1]\n12.5\n"
    values, _ = read_numeric_variable(raw, "rsp.x")
    assert values == [12.5]


def test_strip_index_annotations():
    text = "[0][0], 1.5, 2.5\n[1][0], -9999, 5.5\n"
    assert tokenize_numbers(strip_index_annotations(text)) == [1.5, 2.5, -9999.0, 5.5]


def test_tokenize_numbers_maps_nan_to_missing():
    assert tokenize_numbers("1.0, NaN, nan, -2e3, .5") == [1.0, MISSING, MISSING, -2000.0, 0.5]


def test_tokenize_numbers_ignores_nan_inside_words():
    assert tokenize_numbers("banana 3") == [3.0]


def test_tokenize_strings_unescapes_and_trims():
    assert tokenize_strings('"Schiermonnikoog ", "Holland \\"Noord\\""') == ["Schiermonnikoog", 'Holland "Noord"']


def test_read_numeric_variable_missing_variable():
    values, block = read_numeric_variable(PREAMBLE, "altitude")
    assert values == []
    assert block is None


def test_require_variable_block_returns_block():
    raw = PREAMBLE + "cross_shore[3]\n10, 20, 30\n"
    block = require_variable_block(raw, 'cross_shore')
    assert block.dimensions == (3,)
    assert block.body == "10, 20, 30"


def test_require_variable_block_missing_header():
    raw = PREAMBLE + "id[4]\n1, 2, 3, 4\n"
    with pytest.raises(ExtractionError) as exc_info:
        require_variable_block(raw, 'cross_shore')
    assert exc_info.value.variable == 'cross_shore'
    # only the data section is quoted, never the preamble
    assert "Dataset" not in exc_info.value.excerpt
