import math

import pytest

from engines.math_equivalence import (
    algebraically_equivalent,
    check_equivalence,
    detect_misconceptions,
    normalize_expression,
    parse_number,
    safe_evaluate,
    unique_misconceptions,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("42", 42.0),
        ("0,5", 0.5),
        ("-3.25", -3.25),
        ("3/4", 0.75),
        ("2²", 4.0),
        ("√(16)", 4.0),
        ("2*sqrt(2)", 2 * math.sqrt(2)),
        ("π", math.pi),
        ("12 cm", 12.0),
        ("2,5 m", 2.5),
        ("12 cm²", 12.0),
        (7, 7.0),
    ],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", [None, "", "abc", True, "1/0", "__import__('os')", float("nan")])
def test_parse_number_rejects_non_numbers(raw):
    assert parse_number(raw) is None


def test_safe_evaluate_refuses_attribute_access():
    with pytest.raises(ValueError):
        safe_evaluate("(1).__class__")


def test_safe_evaluate_limits_exponent():
    with pytest.raises(ValueError):
        safe_evaluate("2**100000")


def test_normalize_expression_maps_symbols():
    assert normalize_expression(" 2x × 3 ") == "2*x*3"
    assert normalize_expression("+5") == "5"


def test_exact_match():
    result = check_equivalence("X + 1", "x+1")

    assert result.is_equivalent
    assert result.method == "exact"


def test_numeric_tolerance_is_inclusive():
    result = check_equivalence("2.01", "2", tolerance=0.01)

    assert result.is_equivalent
    assert result.method == "numeric"


def test_numeric_miss_can_be_close():
    result = check_equivalence("2.5", "2", tolerance=0.01)

    assert not result.is_equivalent
    assert result.is_close


def test_algebraic_equivalence():
    assert algebraically_equivalent("x+1", "1+x")
    assert algebraically_equivalent("2x+3x", "5x")
    assert not algebraically_equivalent("x^2+1", "x+1")
    result = check_equivalence("3+2x", "2x+3")
    assert result.is_equivalent
    assert result.method == "algebraic"


def test_sign_error_detected():
    ids = [item["id"] for item in detect_misconceptions("-4", "4")]

    assert "sign_error" in ids


def test_decimal_error_detected():
    ids = [item["id"] for item in detect_misconceptions("25", "2,5")]

    assert "decimal_error" in ids


def test_fraction_flip_detected():
    ids = [item["id"] for item in detect_misconceptions("4", "0.25")]

    assert "fraction_flip" in ids


def test_no_misconceptions_for_text_answers():
    assert detect_misconceptions("keine Ahnung", "4") == []


def test_unique_misconceptions_keeps_first_occurrence():
    items = [
        {"id": "sign_error", "name": "a"},
        {"id": "sign_error", "name": "b"},
        {"id": "power_error", "name": "c"},
    ]

    assert [item["name"] for item in unique_misconceptions(items)] == ["a", "c"]


def test_bare_number_matches_answer_with_unit():
    result = check_equivalence("12", "12 cm")

    assert result.is_equivalent
    assert result.method == "numeric"
    assert result.expected_value == 12.0


def test_different_units_are_not_compared_numerically():
    assert not check_equivalence("12 m", "12 cm").is_equivalent
    assert not check_equivalence("2x", "2y").is_equivalent
