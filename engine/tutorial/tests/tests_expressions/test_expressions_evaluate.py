"""
Tutorial Engine -- Expression Evaluator Tests

evaluate(expr, state) is a pure function over the flat state namespace.
It never raises: every failure comes back as an EvaluationError.

Covers:
  - Arithmetic, precedence, comparison, logic, ternary
  - Math functions and constants (bare and Math.<name>)
  - Unknown identifiers, syntax errors, type errors, division by zero
  - Purity: state is never written, results depend only on inputs
  - Parse cache
"""

import math

import pytest

from engine.tutorial.expressions import (
    EvaluationError,
    compile_expression,
    evaluate,
    is_error,
    truthy,
)


class TestArithmetic:
    @pytest.mark.parametrize(
        "expr, expected",
        [
            ("a + b", 5),
            ("a * b + 1", 7),
            ("a + b * 2", 8),
            ("(a + b) * 2", 10),
            ("b - a", 1),
            ("b / a", 1.5),
            ("7 % 3", 1),
            ("-7 % 3", -1),
            ("2 ** 3 ** 2", 512),
            ("-2 ** 2", -4),
            ("-a", -2),
            ("+a", 2),
        ],
    )
    def test_values(self, expr, expected):
        assert evaluate(expr, {"a": 2, "b": 3}) == expected

    def test_float_literals(self):
        assert evaluate("0.5 * 4", {}) == 2.0
        assert evaluate(".25 + 1e1", {}) == 10.25

    def test_compute_with_updated_state(self):
        assert evaluate("a + b", {"a": 2, "b": 3}) == 5
        assert evaluate("a + b", {"a": 2, "b": 10}) == 12


class TestComparisonAndLogic:
    @pytest.mark.parametrize(
        "expr, expected",
        [
            ("x > 3", True),
            ("x < 3", False),
            ("x >= 5", True),
            ("x <= 4", False),
            ("x == 5", True),
            ("x === 5", True),
            ("x != 5", False),
            ("x > 3 && x < 10", True),
            ("x > 3 and x > 10", False),
            ("x > 10 || x == 5", True),
            ("x > 10 or false", False),
            ("!flag", False),
            ("not flag", False),
            ("flag ? 1 : 2", 1),
            ("x > 10 ? 'big' : 'small'", "small"),
        ],
    )
    def test_values(self, expr, expected):
        assert evaluate(expr, {"x": 5, "flag": True}) == expected

    def test_short_circuit_skips_unknown_name(self):
        assert evaluate("false && missing", {}) is False
        assert evaluate("true || missing", {}) is True

    def test_true_is_not_one(self):
        assert evaluate("flag == 1", {"flag": True}) is False

    def test_string_comparison(self):
        assert evaluate("mode == 'fast'", {"mode": "fast"}) is True
        assert evaluate("'a' < 'b'", {}) is True

    def test_nested_ternary(self):
        expr = "x > 10 ? 'high' : x > 3 ? 'mid' : 'low'"
        assert evaluate(expr, {"x": 5}) == "mid"
        assert evaluate(expr, {"x": 1}) == "low"


class TestStrings:
    def test_concatenation(self):
        assert evaluate("'n = ' + n", {"n": 4}) == "n = 4"

    def test_concatenation_of_integral_float(self):
        assert evaluate("'rate: ' + r", {"r": 2.0}) == "rate: 2"

    def test_escaped_quote(self):
        assert evaluate(r"'it\'s'", {}) == "it's"


class TestMathFunctions:
    @pytest.mark.parametrize(
        "expr, expected",
        [
            ("abs(-3)", 3),
            ("min(4, 2, 8)", 2),
            ("max(4, 2, 8)", 8),
            ("round(2.5)", 3),
            ("round(-2.5)", -2),
            ("floor(2.7)", 2),
            ("ceil(2.1)", 3),
            ("sqrt(16)", 4.0),
            ("pow(2, 10)", 1024.0),
            ("Math.max(1, 9)", 9),
            ("Math.floor(x / 2)", 2),
        ],
    )
    def test_values(self, expr, expected):
        assert evaluate(expr, {"x": 5}) == expected

    def test_constants(self):
        assert evaluate("Math.PI", {}) == pytest.approx(math.pi)
        assert evaluate("Math.E", {}) == pytest.approx(math.e)

    def test_trig(self):
        assert evaluate("sin(0) + cos(0)", {}) == pytest.approx(1.0)
        assert evaluate("hypot(3, 4)", {}) == pytest.approx(5.0)


class TestFailures:
    def test_unknown_identifier(self):
        result = evaluate("a + missing", {"a": 1})
        assert is_error(result)
        assert result.kind == "name"
        assert "missing" in result.message

    def test_syntax_error(self):
        result = evaluate("a +", {"a": 1})
        assert is_error(result)
        assert result.kind == "syntax"

    @pytest.mark.parametrize("expr", ["", "   ", "(a", "a b", "a ? 1", "@", "a..b"])
    def test_malformed(self, expr):
        assert is_error(evaluate(expr, {"a": 1}))

    def test_non_string_expression(self):
        result = evaluate(None, {})
        assert isinstance(result, EvaluationError)

    def test_division_by_zero(self):
        result = evaluate("a / b", {"a": 1, "b": 0})
        assert is_error(result)
        assert result.kind == "math"

    def test_modulo_by_zero(self):
        assert is_error(evaluate("5 % 0", {}))

    def test_type_error(self):
        result = evaluate("a - 'x'", {"a": 1})
        assert is_error(result)
        assert result.kind == "type"

    def test_math_domain_error(self):
        assert is_error(evaluate("sqrt(-1)", {}))

    def test_unknown_function(self):
        assert is_error(evaluate("eval(1)", {}))

    def test_member_access_rejected(self):
        assert is_error(evaluate("a.__class__", {"a": 1}))

    def test_huge_exponent_rejected(self):
        assert is_error(evaluate("10 ** 100000", {}))

    def test_chained_powers_rejected_before_computing(self):
        result = evaluate("((9 ** 1024) ** 1024) ** 1024 > 0", {})
        assert is_error(result)
        assert result.kind == "math"
        assert result.message == "Result too large"

    def test_huge_product_rejected(self):
        big = 2**4000
        result = evaluate("a * a", {"a": big})
        assert is_error(result)
        assert result.kind == "math"

    def test_large_but_bounded_integers_allowed(self):
        assert evaluate("2 ** 1024", {}) == 2**1024
        assert evaluate("a * 3", {"a": 2**100}) == 3 * 2**100

    def test_deep_nesting_rejected(self):
        expr = "(" * 200 + "1" + ")" * 200
        assert is_error(evaluate(expr, {}))

    def test_error_carries_expression(self):
        result = evaluate("nope", {})
        assert result.expression == "nope"
        assert str(result) == result.message


class TestPurity:
    def test_state_not_mutated(self):
        state = {"a": 1, "b": 2}
        evaluate("a + b", state)
        evaluate("missing", state)
        assert state == {"a": 1, "b": 2}

    def test_same_inputs_same_output(self):
        state = {"x": 3}
        results = {evaluate("x * 2 + 1", state) for _ in range(50)}
        assert results == {7}

    def test_parse_is_cached(self):
        assert compile_expression("q + 1") is compile_expression("q + 1")

    def test_free_names(self):
        assert compile_expression("a + Math.max(b, 2)").names == frozenset({"a", "b"})


class TestTruthiness:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, False),
            (0.0, False),
            (float("nan"), False),
            ("", False),
            (None, False),
            (False, False),
            (1, True),
            ("0", True),
            (True, True),
        ],
    )
    def test_truthy(self, value, expected):
        assert truthy(value) is expected
