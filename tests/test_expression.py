"""Tests for expression module."""
import math

import pytest

from idlecore.expression import Expression, ExpressionError, parse_expression


def _eval(text: str, **variables: float) -> float:
    return parse_expression(text).evaluate(variables)


def test_precedence():
    assert _eval("1 + 2 * 3") == 7
    assert _eval("(1 + 2) * 3") == 9
    assert _eval("10 - 4 - 3") == 3
    assert _eval("8 / 4 / 2") == 1


def test_power_is_right_associative():
    assert _eval("2 ^ 3 ^ 2") == 512


def test_unary_minus_binds_looser_than_power():
    assert _eval("-2 ^ 2") == -4
    assert _eval("(-2) ^ 2") == 4


def test_variables():
    expr = Expression.parse("owned * (1 + (owned - 1) * 0.01)")
    assert expr.variables == frozenset({"owned"})
    assert expr.evaluate({"owned": 11}) == pytest.approx(12.1)


def test_missing_variable_is_zero():
    assert _eval("missing + 1") == 1


def test_constants():
    assert _eval("pi") == pytest.approx(math.pi)
    assert _eval("e") == pytest.approx(math.e)


def test_functions():
    assert _eval("max(1, owned, 3)", owned=5) == 5
    assert _eval("min(4, 2)") == 2
    assert _eval("floor(2.7)") == 2
    assert _eval("ceil(2.1)") == 3
    assert _eval("sqrt(16)") == 4
    assert _eval("log(8, 2)") == pytest.approx(3.0)
    assert _eval("pow(2, 10)") == 1024


def test_scientific_literals():
    assert _eval("1.5e3") == 1500
    assert _eval(".5 * 4") == 2


def test_unknown_function_rejected():
    with pytest.raises(ExpressionError, match="Unknown function"):
        parse_expression("foo(1)")


def test_wrong_argument_count_rejected():
    with pytest.raises(ExpressionError, match="Wrong number of arguments"):
        parse_expression("pow(2)")


@pytest.mark.parametrize(
    "text",
    ["", "   ", "1 +", "(1 + 2", "1 2", "import os", "__import__('os')", "a.b", "1; 2"],
)
def test_malformed_expressions_rejected(text):
    with pytest.raises(ExpressionError):
        parse_expression(text)


def test_division_by_zero_raises_expression_error():
    expr = parse_expression("1 / owned")
    with pytest.raises(ExpressionError):
        expr.evaluate({"owned": 0})


def test_domain_error_raises_expression_error():
    with pytest.raises(ExpressionError):
        _eval("sqrt(-1)")


def test_expression_error_is_value_error():
    assert issubclass(ExpressionError, ValueError)
