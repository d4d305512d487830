from decimal import Decimal

import pytest

from core.units import format_units, parse_int, to_base_units, to_fiat


@pytest.mark.parametrize("value,expected", [
    ("0.01", 10**16),
    ("0.5", 5 * 10**17),
    (0.1, 10**17),
    (Decimal("0.8"), 8 * 10**17),
    ("1", 10**18),
    (" 2.25 ", 2250000000000000000),
    ("0x2386f26fc10000", 10**16),
    (12345, 12345),
    ("1.0000000000000000019", 10**18 + 1),
    ("123456789.123456789123456789", 123456789123456789123456789),
])
def test_to_base_units(value, expected):
    assert to_base_units(value) == expected


@pytest.mark.parametrize("value", [None, "", "abc", "-1", -3, "NaN", "inf", float("nan"), True, "0x", "1e"])
def test_to_base_units_garbage_is_zero(value):
    assert to_base_units(value) == 0


def test_to_base_units_truncates_instead_of_rounding():
    assert to_base_units("0.0000000000000000019") == 1
    assert to_base_units("0.9999", decimals=2) == 99


@pytest.mark.parametrize("value,expected", [
    ("0x5208", 21000),
    ("21000", 21000),
    (21000, 21000),
    ("0X0", 0),
    (None, None),
    ("", None),
    ("zz", None),
    (True, None),
])
def test_parse_int(value, expected):
    assert parse_int(value) == expected


def test_format_units():
    assert format_units(10**16) == "0.010000"
    assert format_units(0) == "0.000000"
    assert format_units(1) == "0.000000"
    assert format_units(1_999_999_999_999_999) == "0.001999"
    assert format_units(12345 * 10**18) == "12345.000000"
    assert format_units(10**10, places=8) == "0.00000001"


def test_to_fiat():
    assert to_fiat(10**18, 3200) == Decimal("3200.00")
    assert to_fiat(10**16, 2800.5) == Decimal("28.00")
    assert to_fiat(5 * 10**17, "bad") == Decimal("0.00")
    assert to_fiat(5 * 10**17, -1) == Decimal("0.00")
