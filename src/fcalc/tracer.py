# -----------------------------------------------------------------------------
# Tracing utility
# Purpose:
#   Append-only trace of what a recompute pass did (inputs coerced, formulas
#   evaluated, failures). Exported as plain dicts for API responses.
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Dict, Any

@dataclass
class TraceStep:
    # One record: short 'kind' label plus structured detail.
    kind: str
    detail: Dict[str, Any]

class Tracer:
    def __init__(self): self._steps: List[TraceStep] = []
    def add(self, kind: str, detail: Dict[str, Any]): self._steps.append(TraceStep(kind, detail))
    def clear(self): self._steps.clear()
    def kinds(self) -> List[str]: return [s.kind for s in self._steps]
    def steps(self) -> List[Dict[str, Any]]:
        return [{"kind": s.kind, "detail": s.detail} for s in self._steps]
