# tests/test_frame_rate.py
from fractions import Fraction

import pytest

from sourceprint.utils.frame_rate import (
    are_frame_rates_compatible,
    frame_rate_description,
    identify_professional_rate,
    is_drop_frame_rate,
    normalize_frame_rate,
    parse_frame_rate,
)


@pytest.mark.parametrize("raw, expected", [
    ("24000/1001", Fraction(24000, 1001)),
    ("25/1", Fraction(25)),
    ("29.97", Fraction(2997, 100)),
    (25, Fraction(25)),
    (Fraction(60000, 1001), Fraction(60000, 1001)),
])
def test_parse_frame_rate(raw, expected):
    assert parse_frame_rate(raw) == expected


@pytest.mark.parametrize("raw", [None, "0/0", "N/A", "", "abc", "25/0", 0, Fraction(0)])
def test_unknown_rates_stay_unknown(raw):
    assert parse_frame_rate(raw) is None


def test_identify_and_normalize():
    assert identify_professional_rate("24000/1001") == "23.976"
    assert identify_professional_rate(23.976) == "23.976"
    assert identify_professional_rate("25000/1001") == "24.98"
    assert identify_professional_rate("18/1") is None
    assert normalize_frame_rate("2997/100") == Fraction(30000, 1001)
    assert normalize_frame_rate("18/1") == Fraction(18)


def test_drop_frame_rates():
    assert is_drop_frame_rate(Fraction(30000, 1001))
    assert is_drop_frame_rate("60000/1001")
    assert is_drop_frame_rate("120000/1001")
    assert not is_drop_frame_rate(Fraction(24000, 1001))
    assert not is_drop_frame_rate(25)
    assert not is_drop_frame_rate(None)


def test_compatibility():
    assert are_frame_rates_compatible("24000/1001", 23.976)
    assert are_frame_rates_compatible(Fraction(25), "25/1")
    assert not are_frame_rates_compatible(Fraction(24000, 1001), 24)
    assert not are_frame_rates_compatible(Fraction(30000, 1001), 30)
    assert not are_frame_rates_compatible(None, 25)


def test_description():
    assert frame_rate_description("30000/1001") == "29.97 fps (DF capable)"
    assert frame_rate_description(25) == "25 fps"
    assert frame_rate_description("18/1") == "18.000 fps (18, non-standard)"
    assert frame_rate_description(None) == "Unknown"
