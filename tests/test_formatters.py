import math

from fcalc.formatters import export_summary, format_value, render_formula_text
from fcalc.types import FormulaResult, Variable

def test_format_value_matches_display_conventions():
    assert format_value(11.0) == "11"
    assert format_value(1.5) == "1.5"
    assert format_value(-0.0) == "0"
    assert format_value(0.1 + 0.2) == "0.30000000000000004"
    assert format_value(math.inf) == "Infinity"
    assert format_value(-math.inf) == "-Infinity"
    assert format_value(math.nan) == "NaN"
    assert format_value(1e21) == "1e+21"
    assert format_value(1e-7) == "1e-7"
    assert format_value(True) == "true"
    assert format_value("text") == "text"
    assert format_value(None) == ""

def test_render_substitutes_whole_words_only():
    vs = [Variable(name="r", label="Radius"), Variable(name="rate", label="Rate")]
    assert render_formula_text("rate * r + r2", vs) == "Rate × Radius + r2"

def test_render_keeps_labels_verbatim():
    # labels with regex/replacement specials and operator chars are inserted as-is
    vs = [Variable(name="x", label=r"Speed (m/s) \1 $"), Variable(name="y", label="")]
    assert render_formula_text("x / y", vs) == r"Speed (m/s) \1 $ ÷ y"

def test_render_label_containing_another_name_is_not_reprocessed():
    vs = [Variable(name="a", label="b"), Variable(name="b", label="Bee")]
    assert render_formula_text("a + b", vs) == "b + Bee"

def test_render_operators_and_pi():
    assert render_formula_text("2 * PI * r ** 2 / PIE", []) == "2 × π × r ^ 2 ÷ PIE"

def test_export_summary():
    results = {"A": FormulaResult.success(2.0), "B": FormulaResult.failure("x"), "C": FormulaResult.success("hi")}
    assert export_summary("Calc", results) == "**Calc**:\n- **A**: 2\n- **C**: hi"
    assert export_summary("Calc", {}) is None

def test_format_value_large_integers_use_shortest_digits():
    assert format_value(1.2345678901234568e20) == "123456789012345680000"
    assert format_value(-1.2345678901234568e20) == "-123456789012345680000"
    assert format_value(2.0 ** 53) == "9007199254740992"
    assert format_value(1e16) == "10000000000000000"
