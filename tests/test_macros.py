"""Tests for integer macro evaluation."""

import pytest

from mbedtls_bindgen.macros import (
    evaluate, evaluate_definition, is_function_like, parse_char_literal, parse_int_literal,
)


@pytest.mark.parametrize("token, value", [
    ("0", 0),
    ("42", 42),
    ("0x7080", 0x7080),
    ("0X7fffffffU", 0x7fffffff),
    ("010", 8),
    ("0b101", 5),
    ("100ULL", 100),
    ("12L", 12),
])
def test_int_literals(token, value):
    assert parse_int_literal(token) == value


@pytest.mark.parametrize("token", ["1.5", "0x", "abc", "09", '"str"'])
def test_not_int_literals(token):
    assert parse_int_literal(token) is None


def test_char_literals():
    assert parse_char_literal("'a'") == ord("a")
    assert parse_char_literal("'\\n'") == 10
    assert parse_char_literal("'\\x41'") == 0x41
    assert parse_char_literal("'\\0'") == 0


@pytest.mark.parametrize("tokens, value", [
    (["(", "-", "0x7080", ")"], -0x7080),
    (["1", "+", "2", "*", "3"], 7),
    (["(", "1", "+", "2", ")", "*", "3"], 9),
    (["1", "<<", "4", "|", "1"], 17),
    (["-", "7", "/", "2"], -3),
    (["-", "7", "%", "2"], -1),
    (["~", "0"], -1),
    (["!", "5"], 0),
    (["1", "?", "2", ":", "3"], 2),
    (["0", "||", "3"], 1),
    (["2", ">=", "3"], 0),
])
def test_evaluate(tokens, value):
    assert evaluate(tokens) == value


def test_evaluate_references_known_macros():
    known = {"MBEDTLS_SSL_MAX_CONTENT_LEN": 16384}
    assert evaluate(["MBEDTLS_SSL_MAX_CONTENT_LEN", "+", "1"], known) == 16385


@pytest.mark.parametrize("tokens", [
    ["UNKNOWN"],
    ['"a string"'],
    ["1.5"],
    ["1", "+"],
    ["(", "1"],
    ["1", "/", "0"],
    [],
])
def test_evaluate_rejects(tokens):
    assert evaluate(tokens) is None


def test_function_like_by_columns():
    """A parenthesis touching the name opens a parameter list."""
    assert is_function_like(["MAX", "(", "a", ")", "a"], [9, 12, 13, 14, 16])
    assert not is_function_like(["NEG", "(", "-", "1", ")"], [9, 13, 14, 15, 16])


def test_function_like_without_columns():
    assert is_function_like(["MAX", "(", "a", ",", "b", ")", "a"])
    assert not is_function_like(["X", "(", "1", "+", "2", ")"])
    assert not is_function_like(["X", "(", "A", ")"])


def test_evaluate_definition():
    assert evaluate_definition(["MBEDTLS_ERR_X", "-", "0x0010"]) == -16
    assert evaluate_definition(["MBEDTLS_GUARD_H"]) is None
    assert evaluate_definition(["F", "(", "x", ")", "x"], columns=[9, 10, 11, 12, 14]) is None
