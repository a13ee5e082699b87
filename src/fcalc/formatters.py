from __future__ import annotations
import math
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from .types import FormulaResult, Variable

# Identifier not glued to a preceding word char/digit, or an operator we prettify.
_DISPLAY_TOKEN = re.compile(r"(?<![A-Za-z0-9_])[A-Za-z_][A-Za-z0-9_]*|\*\*|\*|/")
_OPERATOR_GLYPHS = {"**": "^", "*": "×", "/": "÷"}

def format_value(v: Any) -> str:
    """Display text for a value: 11.0 -> '11', inf -> 'Infinity', True -> 'true'."""
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        try:
            x = float(v)
        except OverflowError:
            x = math.inf if v > 0 else -math.inf
        if math.isnan(x):
            return "NaN"
        if math.isinf(x):
            return "Infinity" if x > 0 else "-Infinity"
        if x.is_integer() and abs(x) < 1e21:
            s = repr(x)
            # shortest digits, zero-padded: 1.2345678901234568e+20 -> 123456789012345680000
            return format(Decimal(s), "f") if "e" in s else str(int(x))
        # 1e-07 -> 1e-7, as JavaScript prints it
        return re.sub(r"e([+-])0*(\d)", r"e\1\2", repr(x))
    return str(v)

def render_formula_text(expression: str, variables: Iterable[Variable]) -> str:
    """
    Human-readable version of a formula: variable names become labels,
    `*` `/` `PI` become × ÷ π. Single pass over the expression text, so labels
    are inserted verbatim and never re-processed.
    """
    labels = {v.name: v.display_label for v in variables}

    def repl(m: re.Match) -> str:
        tok = m.group()
        if tok in _OPERATOR_GLYPHS:
            return _OPERATOR_GLYPHS[tok]
        if tok in labels:
            return labels[tok]
        return "π" if tok == "PI" else tok

    return _DISPLAY_TOKEN.sub(repl, expression)

def export_summary(calculator_name: str, results: Dict[str, FormulaResult]) -> str | None:
    # Markdown summary of successful slots; None when nothing was computed yet.
    if not results:
        return None
    lines: List[str] = [f"**{calculator_name}**:"]
    for name, res in results.items():
        if res.ok:
            lines.append(f"- **{name}**: {format_value(res.value)}")
    return "\n".join(lines)
