# --- Formula Calculator API (FastAPI) -----------------------------------------
# Purpose: HTTP surface over the calculator core:
#   (1) manage the saved-calculator store (list, save, edit raw, rename,
#       duplicate, delete, insert snippets), and
#   (2) render/calculate an embedded block (stored id or inline JSON) against
#       optional note metadata and user inputs.
# Definition-level failures become 4xx with {kind, message}; input and
# formula failures are per-slot results inside a 200 response.
# ------------------------------------------------------------------------------

from __future__ import annotations
import os
import math
import logging
from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from fcalc.catalog import CalculatorStore
from fcalc.definition import CalculatorError
from fcalc.formatters import format_value
from fcalc.session import CalculatorSession

# Load .env for external configuration (store path, log level)
load_dotenv()
CALCULATORS_PATH = os.getenv("CALCULATORS_PATH", "examples/calculators.yaml")
LOG_LEVEL = os.getenv("FCALC_LOG_LEVEL", "INFO")

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("fcalc.api")

# error kind -> HTTP status
_STATUS = {
    "invalid_syntax": 400,
    "malformed_definition": 400,
    "reference_not_found": 404,
    "catalog_error": 409,
}

def _http_error(e: CalculatorError) -> HTTPException:
    """Uniform funnel: typed core error -> HTTP status + {kind, message}."""
    status = _STATUS.get(e.kind, 400)
    logger.warning("%s: %s", e.kind, e)
    return HTTPException(status_code=status, detail={"kind": e.kind, "message": str(e)})

def _json_safe(value: Any) -> Any:
    # JSON has no Infinity/NaN: echoed raw values (e.g. 1e400 from a request) travel as display text.
    if isinstance(value, float) and not math.isfinite(value):
        return format_value(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value

def _session_payload(session: CalculatorSession) -> Dict[str, Any]:
    return _json_safe({
        "ok": bool(session.results) and all(r.ok for r in session.results.values()),
        "calculator": session.definition.to_dict(),
        "is_reference": session.is_reference,
        "inputs": session.inputs,
        "rendered_formulas": [{"name": n, "text": t} for n, t in session.rendered_formulas()],
        "results": session.result_rows(),
        "summary": session.export_summary(),
        "trace": session.tracer.steps(),
    })

app = FastAPI(title="Formula Calculator API")

# Store is loaded once at startup and written only by authoring endpoints.
_store = CalculatorStore.from_file(CALCULATORS_PATH)

# ----------------------------- Schemas ----------------------------------------
class BlockRequest(BaseModel):
    # Block text: a stored calculator id, or inline JSON starting with '{'.
    source: str
    # Note metadata consulted through each variable's propertyMap.
    frontmatter: Optional[Dict[str, Any]] = None

class CalculateRequest(BlockRequest):
    # Current input values keyed by variable name; missing ones keep their starting value.
    inputs: Dict[str, Any] = Field(default_factory=dict)

class RenameRequest(BaseModel):
    name: str

class RawUpdateRequest(BaseModel):
    # Edited JSON text (or an already-parsed object).
    raw: Any

# ----------------------------- Routes -----------------------------------------
@app.get("/health")
def health(): return {"ok": True, "calculators": len(_store.calculators)}

@app.get("/calculators")
def list_calculators():
    return {"count": len(_store.calculators), "items": _store.list_calculators()}

@app.get("/calculators/{calculator_id}")
def get_calculator(calculator_id: str):
    try:
        return _json_safe(_store.require(calculator_id).to_dict())
    except CalculatorError as e:
        raise _http_error(e)

@app.post("/calculators", status_code=201)
def create_calculator(payload: Dict[str, Any] = Body(...)):
    """Save a new calculator; a fresh id is assigned and names must be unique."""
    try:
        created = _store.add(payload)
    except CalculatorError as e:
        raise _http_error(e)
    _store.save()
    return _json_safe(created.to_dict())

@app.put("/calculators/{calculator_id}")
def update_calculator(calculator_id: str, req: RawUpdateRequest):
    try:
        updated = _store.update_raw(calculator_id, req.raw)
    except CalculatorError as e:
        raise _http_error(e)
    _store.save()
    return _json_safe(updated.to_dict())

@app.post("/calculators/{calculator_id}/rename")
def rename_calculator(calculator_id: str, req: RenameRequest):
    try:
        renamed = _store.rename(calculator_id, req.name)
    except CalculatorError as e:
        raise _http_error(e)
    _store.save()
    return _json_safe(renamed.to_dict())

@app.post("/calculators/{calculator_id}/duplicate", status_code=201)
def duplicate_calculator(calculator_id: str):
    try:
        dup = _store.duplicate(calculator_id)
    except CalculatorError as e:
        raise _http_error(e)
    _store.save()
    return _json_safe(dup.to_dict())

@app.delete("/calculators/{calculator_id}")
def delete_calculator(calculator_id: str):
    try:
        removed = _store.delete(calculator_id)
    except CalculatorError as e:
        raise _http_error(e)
    _store.save()
    return {"ok": True, "deleted": removed.id}

@app.get("/calculators/{calculator_id}/snippet")
def calculator_snippet(calculator_id: str, raw: bool = False):
    """Block text to insert into a note: a reference by id, or the inline JSON copy."""
    try:
        text = _store.raw_block(calculator_id) if raw else _store.reference_block(calculator_id)
    except CalculatorError as e:
        raise _http_error(e)
    return {"snippet": text}

@app.post("/render")
def render_block(req: BlockRequest):
    """
    Open a block: resolve the definition, bind starting values from the
    frontmatter, render formulas if requested. Auto-calculating calculators
    come back with their first results already computed.
    """
    try:
        session = CalculatorSession.from_block(req.source, _store, req.frontmatter)
    except CalculatorError as e:
        raise _http_error(e)
    payload = _session_payload(session)
    payload["initial_values"] = _json_safe(session.initial_values)
    return payload

@app.post("/calculate")
def calculate_block(req: CalculateRequest):
    """
    Manual calculate: apply the supplied inputs over the resolved starting
    values and run one recompute pass. Unknown input names are reported,
    not fatal.
    """
    try:
        session = CalculatorSession.from_block(req.source, _store, req.frontmatter)
    except CalculatorError as e:
        raise _http_error(e)
    ignored = []
    for name, value in req.inputs.items():
        if name in session.inputs:
            session.inputs[name] = value
        else:
            ignored.append(name)
    session.calculate()
    payload = _session_payload(session)
    payload["ignored_inputs"] = ignored
    return payload
