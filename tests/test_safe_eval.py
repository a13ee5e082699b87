import math
import pytest

from fcalc.safe_eval import (
    LIBRARY, EvaluationError, ExpressionSyntaxError, ExpressionTypeError, UnknownIdentifier,
    evaluate, parse,
)

def test_arithmetic_with_scope():
    assert evaluate("a + b * 2", {"a": 3, "b": 4}) == 11

def test_library_function():
    assert evaluate("sqrt(x)", {"x": 16}) == 4

def test_unknown_identifier():
    with pytest.raises(UnknownIdentifier) as exc:
        evaluate("unknownVar + 1", {})
    assert exc.value.name == "unknownVar"
    assert isinstance(exc.value, EvaluationError)

def test_division_by_zero_is_non_finite_value():
    assert evaluate("1/0", {}) == math.inf
    assert evaluate("-1/0", {}) == -math.inf
    assert math.isnan(evaluate("0/0", {}))
    assert math.isnan(evaluate("5 % 0", {}))

def test_precedence_and_associativity():
    assert evaluate("2 + 3 * 4 - 6 / 2") == 11
    assert evaluate("(2 + 3) * 4") == 20
    assert evaluate("2 ** 3 ** 2") == 512
    assert evaluate("2 ^ 10") == 1024
    assert evaluate("-2 ** 2") == -4
    assert evaluate("2 ** -1") == 0.5
    assert evaluate("10 - 4 - 3") == 3
    assert evaluate("7 % 3") == 1
    assert evaluate("-7 % 3") == -1

def test_constants_and_math_functions():
    assert evaluate("PI") == math.pi
    assert evaluate("E") == math.e
    assert evaluate("max(1, 5, 3) + min(4, 2)") == 7
    assert evaluate("round(2.5) + round(-2.5)") == 1
    assert evaluate("floor(2.7) + ceil(2.1) + trunc(-2.7)") == 3
    assert evaluate("pow(2, 8)") == 256
    assert evaluate("abs(-3) * sign(-9)") == -3
    assert evaluate("hypot(3, 4)") == 5
    assert evaluate("log(E)") == 1
    assert evaluate("log10(1000)") == pytest.approx(3)
    assert evaluate("cbrt(-27)") == pytest.approx(-3)
    assert evaluate("atan2(1, 1)") == pytest.approx(math.pi / 4)

def test_math_domain_errors_become_nan_or_infinity():
    assert math.isnan(evaluate("sqrt(-1)"))
    assert evaluate("log(0)") == -math.inf
    assert math.isnan(evaluate("log(-1)"))
    assert evaluate("exp(1000)") == math.inf
    assert evaluate("10 ** 400") == math.inf

def test_parsing_helpers():
    assert evaluate("parseFloat('3.5kg')") == 3.5
    assert evaluate("parseInt('42.9')") == 42
    assert evaluate("parseInt('ff', 16)") == 255
    assert math.isnan(evaluate("parseFloat('abc')"))
    assert evaluate("isNaN(parseFloat('abc'))") is True
    assert evaluate("isFinite(1/0)") is False
    assert evaluate("isFinite(t)", {"t": "12"}) is True
    assert evaluate("Number('  7 ')") == 7

def test_comparison_logical_and_conditional():
    scope = {"x": 5, "flag": True, "name": "bob"}
    assert evaluate("x > 3 && flag", scope) is True
    assert evaluate("x < 3 || !flag", scope) is False
    assert evaluate("x >= 5 and not (x != 5)", scope) is True
    assert evaluate("x === 5 ? 'five' : 'other'", scope) == "five"
    assert evaluate("name == 'bob'", scope) is True
    assert evaluate("x == '5'", scope) is False
    assert evaluate("0 || 'fallback'") == "fallback"

def test_text_concatenation():
    assert evaluate("'Total: ' + x", {"x": 11.0}) == "Total: 11"
    assert evaluate('"a\\"b" + 1') == 'a"b1'

def test_booleans_count_as_numbers():
    assert evaluate("flag * 10", {"flag": True}) == 10

def test_type_errors():
    with pytest.raises(ExpressionTypeError):
        evaluate("name * 2", {"name": "bob"})
    with pytest.raises(ExpressionTypeError):
        evaluate("-name", {"name": "bob"})
    with pytest.raises(ExpressionTypeError):
        evaluate("name < 3", {"name": "bob"})
    with pytest.raises(ExpressionTypeError):
        evaluate("sqrt('16')")
    with pytest.raises(ExpressionTypeError):
        evaluate("atan2(1)")

def test_scope_shadows_library_names():
    assert evaluate("PI * 2", {"PI": 3}) == 6
    with pytest.raises(ExpressionTypeError):
        evaluate("max(1, 2)", {"max": 10})

def test_function_must_be_called():
    with pytest.raises(ExpressionTypeError):
        evaluate("sqrt + 1")

@pytest.mark.parametrize("expr", [
    "", "   ", "1 +", "(1 + 2", "1 + 2)", "a b", "2x", "x = 1", "a.b", "a[0]",
    "__import__('os')", "f(1)(2)", "(1)(2)", "1 ? 2", "'open", "x; y",
])
def test_syntax_errors(expr):
    with pytest.raises(EvaluationError):
        evaluate(expr, {"a": 1, "b": 2, "x": 3, "y": 4})

def test_syntax_error_reports_position():
    with pytest.raises(ExpressionSyntaxError) as exc:
        evaluate("1 + $")
    assert exc.value.pos == 4

def test_no_access_to_python_builtins():
    for name in ("open", "eval", "exec", "__import__", "globals"):
        with pytest.raises(UnknownIdentifier):
            evaluate(f"{name}('x')")

def test_library_is_read_only():
    with pytest.raises(TypeError):
        LIBRARY["sqrt"] = None

def test_deep_nesting_is_an_evaluation_error():
    with pytest.raises(EvaluationError):
        evaluate("(" * 5000 + "1" + ")" * 5000)

def test_parse_is_reused_for_same_text():
    assert parse("a + 1") is parse("a + 1")

def test_round_matches_half_up_without_drift():
    assert evaluate("round(0.49999999999999994)") == 0
    assert evaluate("round(0.5)") == 1
    assert evaluate("round(-0.5)") == 0
    assert evaluate("round(-1.5)") == -1
    assert evaluate("round(4503599627370495.5)") == 4503599627370496
