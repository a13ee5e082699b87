# -----------------------------------------------------------------------------
# Types module: Shared dataclasses for the calculator core
# Purpose:
#   Define structured representations for variables, formulas, calculator
#   definitions and per-formula results used across the definition model,
#   binding resolver, session controller and store.
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

VariableType = Literal["number", "text", "boolean"]
VARIABLE_TYPES = ("number", "text", "boolean")

@dataclass
class Variable:
    """
    One typed input of a calculator.
    - name: binding key in the evaluation scope (legal identifier)
    - label: display name; empty means "use name"
    - type: number | text | boolean, fixed at definition time
    - value: optional default of the matching type
    - property_map: optional key into an external metadata source whose
      non-null value overrides `value` when the calculator is opened
    """
    name: str
    type: VariableType = "number"
    label: str = ""
    value: Any = None
    property_map: str | None = None

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "label": self.label, "type": self.type}
        if self.value is not None:
            out["value"] = self.value
        if self.property_map:
            out["propertyMap"] = self.property_map
        return out

@dataclass
class Formula:
    """
    A named expression. `name` keys both the result slot and its display.
    Example:
        name: "BMI"
        value: "weight / (height / 100) ** 2"
    """
    name: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}

@dataclass
class CalculatorDefinition:
    id: str
    name: str
    variables: List[Variable] = field(default_factory=list)
    formulas: List[Formula] = field(default_factory=list)
    auto_calculate: bool = False
    render_formula: bool = False

    def variable(self, name: str) -> Variable | None:
        return next((v for v in self.variables if v.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        # Wire format keeps the camelCase keys of the definition text.
        return {
            "id": self.id,
            "name": self.name,
            "variables": [v.to_dict() for v in self.variables],
            "formulas": [f.to_dict() for f in self.formulas],
            "autoCalculate": self.auto_calculate,
            "renderFormula": self.render_formula,
        }

@dataclass
class FormulaResult:
    """
    Outcome of one formula in a recompute pass: either ok with a value,
    or an error message for that slot only.
    """
    ok: bool
    value: Any = None
    error: str | None = None

    @staticmethod
    def success(value: Any) -> "FormulaResult":
        return FormulaResult(ok=True, value=value)

    @staticmethod
    def failure(message: str) -> "FormulaResult":
        return FormulaResult(ok=False, error=message)
