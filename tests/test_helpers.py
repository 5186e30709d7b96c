import pytest

from utils.helpers import (
    PLACEHOLDER_TITLE, format_duration, normalize_title, parse_time_to_seconds, resolve_seek_target
)


@pytest.mark.parametrize(
    "value,expected",
    [("90", 90), ("1:30", 90), ("01:02:03", 3723), (" 0:05 ", 5), ("0", 0)],
)
def test_parse_time_to_seconds(value, expected) -> None:
    assert parse_time_to_seconds(value) == expected


@pytest.mark.parametrize("value", ["", "abc", "1:2:3:4", "-5", "1:-3", None])
def test_parse_time_rejects_malformed_input(value) -> None:
    assert parse_time_to_seconds(value) is None


def test_format_duration() -> None:
    assert format_duration(0) == "0:00"
    assert format_duration(65) == "1:05"
    assert format_duration(3723) == "1:02:03"
    assert format_duration(None) == "Unknown"


def test_resolve_seek_target_relative_and_absolute() -> None:
    assert resolve_seek_target("+30", 100) == 130
    assert resolve_seek_target("-30", 100) == 70
    assert resolve_seek_target("-1:00", 20) == 0
    assert resolve_seek_target("2:00", 100) == 120
    assert resolve_seek_target("+x", 100) is None


def test_normalize_title_repairs_mis_decoded_accents() -> None:
    assert normalize_title("CanciÃ³n de AÃ±o") == "Canción de Año"
    assert normalize_title("  plain  ") == "plain"
    assert normalize_title(None) == PLACEHOLDER_TITLE
    assert normalize_title("") == PLACEHOLDER_TITLE
