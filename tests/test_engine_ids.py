"""Stored engine-id normalisation."""
import pytest

from app.services.selector import parse_engine_ids


@pytest.mark.parametrize(
    "raw, expected",
    [
        ([1, 6, 10], [1, 6, 10]),
        (("1", 2), [1, 2]),
        ("[1, 6, 10]", [1, 6, 10]),
        ('["3", "4"]', [3, 4]),
        ("8,3,5", [8, 3, 5]),
        (" 8 , 3 ", [8, 3]),
        ("5", [5]),
        (5, [5]),
        ("{8,3}", [8, 3]),
        ("[1, 2", [1, 2]),
        ("", []),
        ("[]", []),
        ("none", []),
        (None, []),
        (True, []),
    ],
)
def test_parse_engine_ids(raw, expected):
    assert parse_engine_ids(raw) == expected


def test_non_numeric_entries_are_dropped():
    assert parse_engine_ids([1, "x", None, 2.0]) == [1, 2]
