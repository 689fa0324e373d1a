"""Tests for the screenshot filename grammar."""

from __future__ import annotations

import pytest

from chartdex.index.grammar import (
    ParsedName,
    format_filename,
    has_image_extension,
    make_date_key,
    match_filename,
    normalize_date,
    parse,
    split_date_key,
)
from chartdex.index.timeframes import Timeframe


@pytest.mark.parametrize("timeframe", list(Timeframe))
@pytest.mark.parametrize("sequence", [1, 2, 17])
def test_format_then_parse_returns_original_triple(timeframe: Timeframe, sequence: int) -> None:
    filename = format_filename("2024-01-15", sequence, timeframe)

    assert parse(filename) == ParsedName("2024-01-15", sequence, timeframe)


def test_format_filename_writes_dotted_date_and_explicit_sequence() -> None:
    assert format_filename("2024-01-15", 1, Timeframe.M15) == "2024.01.15-1_15m.png"


def test_parse_defaults_sequence_to_one() -> None:
    parsed = parse("2024.01.15_1min.JPG")

    assert parsed is not None
    assert parsed.date == "2024-01-15"
    assert parsed.sequence == 1
    assert parsed.timeframe is Timeframe.M1
    assert parsed.date_key == "2024-01-15-1"


def test_parse_reads_explicit_sequence() -> None:
    parsed = parse("2024.01.15-12_4h.webp")

    assert parsed == ParsedName("2024-01-15", 12, Timeframe.H4)
    assert parsed.date_key == "2024-01-15-12"


@pytest.mark.parametrize(
    "filename",
    [
        "2024.01.15_2min.png",
        "notanimage.txt",
        "2024-01-15_1m.png",
        "2024.01.15_1m.bmp",
        "2024.01.15-0_1m.png",
        "2024.01.15.png",
        "2024.01.15_.png",
        "2024.01.15_1m_copy.png",
        "2024.01.15_ 1m.png",
        "2024.01.16_4h .png",
    ],
)
def test_parse_filters_unrecognized_names(filename: str) -> None:
    assert parse(filename) is None


def test_parse_filters_disabled_timeframes() -> None:
    assert parse("2024.01.15_4h.png", enabled=[Timeframe.M1]) is None
    assert parse("2024.01.15_1m.png", enabled=[Timeframe.M1]) is not None


def test_match_filename_keeps_unknown_tokens() -> None:
    raw = match_filename("2024.01.15-3_2min.PNG")

    assert raw is not None
    assert raw.date == "2024-01-15"
    assert raw.sequence == 3
    assert raw.token == "2min"
    assert raw.extension == "png"


def test_date_key_helpers() -> None:
    assert make_date_key("2024-01-15", 2) == "2024-01-15-2"
    assert split_date_key("2024-01-15-2") == ("2024-01-15", 2)

    for invalid in ("2024-01-15", "2024-01-15-0", "BTC-2024-01-15-1", "2024.01.15-1"):
        with pytest.raises(ValueError):
            split_date_key(invalid)


def test_normalize_date_accepts_both_separators() -> None:
    assert normalize_date("2024-03-09") == "2024-03-09"
    assert normalize_date("2024.03.09") == "2024-03-09"

    with pytest.raises(ValueError):
        normalize_date("2024-02-30")
    with pytest.raises(ValueError):
        normalize_date("yesterday")


def test_has_image_extension_is_case_insensitive() -> None:
    assert has_image_extension("chart.JPEG")
    assert has_image_extension("chart.gif")
    assert not has_image_extension("chart.txt")
    assert not has_image_extension("png")
