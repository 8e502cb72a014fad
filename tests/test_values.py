"""Tests for the value rules shared by both tracks."""

import math

import pytest

from lox.values import divide, format_number, is_falsey, stringify, values_equal


@pytest.mark.parametrize(
    "value,expected",
    [
        (1.0, "1"),
        (-3.0, "-3"),
        (0.0, "0"),
        (-0.0, "-0"),
        (2.5, "2.5"),
        (0.1, "0.1"),
        (1e16, "10000000000000000"),
        (1e21, "1000000000000000000000"),
        (1e-7, "0.0000001"),
        (1.5e-10, "0.00000000015"),
        (123456.789, "123456.789"),
        (math.inf, "inf"),
        (-math.inf, "-inf"),
        (math.nan, "NaN"),
    ],
)
def test_format_number(value, expected):
    assert format_number(value) == expected


def test_falsey():
    assert is_falsey(None)
    assert is_falsey(False)
    assert not is_falsey(0.0)
    assert not is_falsey("")
    assert not is_falsey(True)


def test_equality_does_not_coerce():
    assert values_equal(None, None)
    assert not values_equal(None, False)
    assert not values_equal(1.0, True)
    assert not values_equal(0.0, False)
    assert not values_equal("1", 1.0)
    assert values_equal("a", "a")
    assert values_equal(2.0, 2.0)


def test_nan_is_not_equal_to_itself():
    assert not values_equal(math.nan, math.nan)


def test_objects_compare_by_identity():
    a = object()
    assert values_equal(a, a)
    assert not values_equal(a, object())


def test_division_by_zero():
    assert divide(1.0, 0.0) == math.inf
    assert divide(-1.0, 0.0) == -math.inf
    assert divide(1.0, -0.0) == -math.inf
    assert math.isnan(divide(0.0, 0.0))
    assert divide(6.0, 3.0) == 2.0


def test_stringify():
    assert stringify(None) == "nil"
    assert stringify(True) == "true"
    assert stringify(False) == "false"
    assert stringify(7.0) == "7"
    assert stringify("text") == "text"
