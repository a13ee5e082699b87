# -----------------------------------------------------------------------------
# Calculator session: reactive computation controller
# Responsibilities:
#   • Hold live inputs for one displayed calculator (seeded from the binding
#     resolver once, at construction)
#   • Recompute pass: coerce inputs in declaration order, short-circuit on the
#     first invalid input, else evaluate every formula independently
#   • Keep the last ResultSet for display and copy/export actions
#   • Auto (on every input edit, if enabled), manual and reset triggers
# Nothing here raises into the host: input and evaluation failures become
# per-slot error results.
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Tuple

from .bindings import resolve_initial_values
from .definition import DefinitionLookup, InvalidInput, resolve_block
from .formatters import export_summary, format_value, render_formula_text
from .safe_eval import NUMBER_PATTERN, EvaluationError, evaluate
from .tracer import Tracer
from .types import CalculatorDefinition, FormulaResult, Variable

logger = logging.getLogger(__name__)

INPUT_ERROR_PREFIX = "Error: "
CALCULATION_ERROR_PREFIX = "Calculation error: "

_FALSE_TEXT = {"", "false", "0"}
_NUMBER_TEXT = re.compile(rf"[+-]?{NUMBER_PATTERN}")

def coerce_input(variable: Variable, raw: Any) -> Any:
    """
    Convert a raw input representation to the variable's declared type.
    Only numbers can fail (InvalidInput); text and boolean always coerce.
    """
    if variable.type == "number":
        if isinstance(raw, bool):
            return float(raw)
        if isinstance(raw, str):
            raw = raw.strip()
            # plain decimal text only: no "1_000", no non-ASCII digits
            if not _NUMBER_TEXT.fullmatch(raw):
                raise InvalidInput(variable.display_label)
        try:
            value = float(raw)
        except (TypeError, ValueError, OverflowError):
            raise InvalidInput(variable.display_label) from None
        if not math.isfinite(value):
            raise InvalidInput(variable.display_label)
        return value
    if variable.type == "boolean":
        if isinstance(raw, str):
            return raw.strip().lower() not in _FALSE_TEXT
        return bool(raw)
    return raw if isinstance(raw, str) else format_value(raw)

class CalculatorSession:
    def __init__(self, definition: CalculatorDefinition,
                 external_source: Mapping[str, Any] | None = None):
        # External reads happen here only; recompute never touches I/O.
        self.definition = definition
        self.initial_values: Dict[str, Any] = resolve_initial_values(definition.variables, external_source)
        self.inputs: Dict[str, Any] = dict(self.initial_values)
        self.results: Dict[str, FormulaResult] = {}
        self.tracer = Tracer()
        self.is_reference = False
        if definition.auto_calculate:
            self.recompute()

    @classmethod
    def from_block(cls, text: str, store: DefinitionLookup,
                   external_source: Mapping[str, Any] | None = None) -> "CalculatorSession":
        """Build a session for an embedded block (stored id or inline JSON)."""
        definition, is_reference = resolve_block(text, store)
        session = cls(definition, external_source)
        session.is_reference = is_reference
        return session

    # ---------------- triggers ----------------

    def set_input(self, name: str, raw: Any) -> Dict[str, FormulaResult]:
        if name not in self.inputs:
            raise KeyError(name)
        self.inputs[name] = raw
        if self.definition.auto_calculate:
            return self.recompute()
        return self.results

    def calculate(self) -> Dict[str, FormulaResult]:
        # Manual trigger; available whether or not autoCalculate is set.
        return self.recompute()

    def reset(self) -> Dict[str, FormulaResult]:
        self.inputs = dict(self.initial_values)
        if self.definition.auto_calculate:
            return self.recompute()
        return self.results

    # ---------------- recompute pass ----------------

    def recompute(self) -> Dict[str, FormulaResult]:
        """
        One atomic pass. On the first input failure every formula slot gets
        the same error and no formula is evaluated; otherwise each formula is
        evaluated on its own and a failure only marks its own slot.
        """
        self.tracer.clear()
        formulas = self.definition.formulas
        scope: Dict[str, Any] = {}

        for v in self.definition.variables:
            raw = self.inputs.get(v.name)
            try:
                scope[v.name] = coerce_input(v, raw)
            except InvalidInput as e:
                logger.info("calculator %s: %s", self.definition.id, e)
                self.tracer.add("input_error", {"variable": v.name, "raw": raw, "message": str(e)})
                message = f"{INPUT_ERROR_PREFIX}{e}"
                self.results = {f.name: FormulaResult.failure(message) for f in formulas}
                return self.results
            self.tracer.add("input", {"variable": v.name, "type": v.type, "value": scope[v.name]})

        results: Dict[str, FormulaResult] = {}
        for f in formulas:
            try:
                value = evaluate(f.value, scope)
            except (EvaluationError, ArithmeticError) as e:
                kind = getattr(e, "kind", "arithmetic_error")
                self.tracer.add("formula_error", {"formula": f.name, "kind": kind, "message": str(e)})
                results[f.name] = FormulaResult.failure(f"{CALCULATION_ERROR_PREFIX}{e}")
                continue
            self.tracer.add("formula", {"formula": f.name, "expr": f.value, "result": format_value(value)})
            results[f.name] = FormulaResult.success(value)

        logger.debug("calculator %s recomputed: %d formulas, %d ok", self.definition.id,
                     len(results), sum(1 for r in results.values() if r.ok))
        self.results = results
        return results

    # ---------------- views / export ----------------

    def successful_results(self) -> Dict[str, Any]:
        return {name: r.value for name, r in self.results.items() if r.ok}

    def result_rows(self) -> List[Dict[str, Any]]:
        # Display rows, one per formula slot, in result order.
        return [{
            "name": name,
            "ok": r.ok,
            "value": r.value if r.ok and not _non_finite(r.value) else None,
            "display": format_value(r.value) if r.ok else r.error,
            "error": r.error,
        } for name, r in self.results.items()]

    def copy_result(self, name: str) -> str | None:
        r = self.results.get(name)
        return format_value(r.value) if r is not None and r.ok else None

    def export_summary(self) -> str | None:
        return export_summary(self.definition.name, self.results)

    def rendered_formulas(self) -> List[Tuple[str, str]]:
        if not self.definition.render_formula:
            return []
        return [(f.name, render_formula_text(f.value, self.definition.variables))
                for f in self.definition.formulas]

def _non_finite(v: Any) -> bool:
    # JSON has no Infinity/NaN; such values travel as display text only.
    return isinstance(v, float) and not math.isfinite(v)
