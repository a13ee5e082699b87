# -----------------------------------------------------------------------------
# Calculator definition model
# Purpose: Turn raw definition data (stored mapping or inline JSON block) into
# a typed CalculatorDefinition.
# - Legacy single-formula payloads are upgraded once, here, at the boundary.
# - Definition-level failures raise CalculatorError subclasses; the API and
#   hosts render them as an error panel instead of the calculator.
# -----------------------------------------------------------------------------

from __future__ import annotations
import copy
import json
import logging
from typing import Any, Dict, List, Mapping, Protocol, Tuple

from .ids import generate_id, is_valid_identifier
from .safe_eval import RESERVED_WORDS
from .types import CalculatorDefinition, Formula, Variable, VARIABLE_TYPES

logger = logging.getLogger(__name__)

LEGACY_RESULT_LABEL = "Result"
RAW_ID_PREFIX = "raw-"

class CalculatorError(Exception):
    """Base for definition/input level failures. `kind` is a stable tag for the API."""
    kind = "calculator_error"

class InvalidSyntax(CalculatorError):
    kind = "invalid_syntax"

class MalformedDefinition(CalculatorError):
    kind = "malformed_definition"

class ReferenceNotFound(CalculatorError):
    kind = "reference_not_found"

    def __init__(self, calculator_id: str):
        super().__init__(f'Calculator with ID "{calculator_id}" not found.')
        self.calculator_id = calculator_id

class InvalidInput(CalculatorError):
    kind = "invalid_input"

    def __init__(self, label: str):
        super().__init__(f'Invalid number value for "{label}"')
        self.label = label

class DefinitionLookup(Protocol):
    # Anything that can hand back a stored definition by id (see catalog.CalculatorStore).
    def get(self, calculator_id: str) -> CalculatorDefinition | None: ...

# ---------------------------------------------------------------------------
# Legacy upgrade
# ---------------------------------------------------------------------------

def upgrade_legacy(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Single upgrade step for the legacy `{formula, resultLabel}` shape.
    Returns a new dict; a payload that already carries `formulas` passes
    through unchanged, so the step is idempotent.
    """
    data = dict(raw)
    if data.get("formula") and data.get("formulas") is None:
        data["formulas"] = [{
            "name": data.get("resultLabel") or LEGACY_RESULT_LABEL,
            "value": data["formula"],
        }]
        data.pop("formula", None)
        data.pop("resultLabel", None)
    return data

# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _variable_from_dict(i: int, vd: Any) -> Variable:
    if not isinstance(vd, Mapping):
        raise MalformedDefinition(f"Invalid calculator data: variable #{i + 1} is not an object")
    name = vd.get("name")
    if not isinstance(name, str):
        raise MalformedDefinition(f"Invalid calculator data: variable #{i + 1} has no name")
    vtype = vd.get("type", "number")
    if vtype not in VARIABLE_TYPES:
        raise MalformedDefinition(f"Invalid calculator data: variable '{name}' has unknown type {vtype!r}")
    prop = vd.get("propertyMap")
    return Variable(
        name=name,
        type=vtype,
        label=str(vd.get("label") or ""),
        value=vd.get("value"),
        property_map=str(prop) if prop else None,
    )

def _formula_from_dict(i: int, fd: Any) -> Formula:
    if not isinstance(fd, Mapping):
        raise MalformedDefinition(f"Invalid calculator data: formula #{i + 1} is not an object")
    name, value = fd.get("name"), fd.get("value")
    if not isinstance(name, str) or not isinstance(value, str):
        raise MalformedDefinition(f"Invalid calculator data: formula #{i + 1} needs string name and value")
    return Formula(name=name, value=value)

def normalize(raw: Mapping[str, Any] | CalculatorDefinition) -> CalculatorDefinition:
    """
    Upgrade + validate + materialize a definition.
    Required: non-empty `name`, list `variables`, non-empty list `formulas`.
    Accepts an already-normalized definition, making the operation idempotent.
    """
    if isinstance(raw, CalculatorDefinition):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        raise MalformedDefinition("Invalid calculator data: expected an object")

    data = upgrade_legacy(raw)
    name = data.get("name")
    variables = data.get("variables")
    formulas = data.get("formulas")
    if not name or not isinstance(name, str):
        raise MalformedDefinition("Invalid calculator data: missing name")
    if not isinstance(variables, list):
        raise MalformedDefinition("Invalid calculator data: variables must be a list")
    if not isinstance(formulas, list) or not formulas:
        raise MalformedDefinition("Invalid calculator data: at least one formula is required")

    return CalculatorDefinition(
        id=str(data.get("id") or generate_id()),
        name=name,
        variables=[_variable_from_dict(i, v) for i, v in enumerate(variables)],
        formulas=[_formula_from_dict(i, f) for i, f in enumerate(formulas)],
        auto_calculate=bool(data.get("autoCalculate", False)),
        render_formula=bool(data.get("renderFormula", False)),
    )

# ---------------------------------------------------------------------------
# Blocks: reference id vs inline JSON
# ---------------------------------------------------------------------------

def is_reference_block(text: str) -> bool:
    return not (text or "").strip().startswith("{")

def parse_inline(text: str) -> CalculatorDefinition:
    """
    Parse an inline `{...}` block into an ephemeral definition with a fresh
    `raw-` id. Reference text (anything not starting with `{`) is rejected;
    resolving ids is `resolve_block`'s job.
    """
    src = (text or "").strip()
    if not src.startswith("{"):
        raise MalformedDefinition("Invalid calculator data: not an inline definition")
    try:
        parsed = json.loads(src)
    except json.JSONDecodeError as e:
        raise InvalidSyntax(f"Invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise MalformedDefinition("Invalid calculator data: expected an object")
    # Explicit keys in the text win over the generated id.
    return normalize({"id": f"{RAW_ID_PREFIX}{generate_id(4)}", **parsed})

def resolve_block(text: str, store: DefinitionLookup) -> Tuple[CalculatorDefinition, bool]:
    """
    Resolve an embedded block. Returns (definition, is_reference).
    Stored definitions are deep-copied so nothing downstream can write back.
    """
    if is_reference_block(text):
        calculator_id = (text or "").strip()
        found = store.get(calculator_id)
        if found is None:
            logger.info("calculator reference %r not found", calculator_id)
            raise ReferenceNotFound(calculator_id)
        return normalize(copy.deepcopy(found)), True
    return parse_inline(text), False

# ---------------------------------------------------------------------------
# Authoring-time checks (store boundary)
# ---------------------------------------------------------------------------

def validate_for_save(definition: CalculatorDefinition) -> None:
    problems: List[str] = []
    seen_vars: set[str] = set()
    for v in definition.variables:
        if not is_valid_identifier(v.name):
            problems.append(f"invalid variable name '{v.name}'")
        elif v.name in RESERVED_WORDS:
            problems.append(f"reserved variable name '{v.name}'")
        elif v.name in seen_vars:
            problems.append(f"duplicate variable name '{v.name}'")
        seen_vars.add(v.name)
    seen_formulas: set[str] = set()
    for f in definition.formulas:
        if not f.name.strip():
            problems.append("formula without a name")
        elif f.name in seen_formulas:
            problems.append(f"duplicate formula name '{f.name}'")
        if not f.value.strip():
            problems.append(f"formula '{f.name}' is empty")
        seen_formulas.add(f.name)
    if problems:
        raise MalformedDefinition("Invalid calculator data: " + "; ".join(problems))
