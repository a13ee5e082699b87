# -----------------------------------------------------------------------------
# Variable binding resolver
# Purpose: compute each variable's starting value from its stored default and
# an optional external metadata source (e.g. a note's frontmatter), keyed by
# the variable's `property_map`.
# -----------------------------------------------------------------------------

from __future__ import annotations
from typing import Any, Dict, Iterable, Mapping

from .types import Variable

_ZERO = {"number": 0, "text": "", "boolean": False}

def zero_value(vtype: str) -> Any:
    return _ZERO.get(vtype, "")

def resolve_initial_values(variables: Iterable[Variable],
                           external_source: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    """
    Never raises: a missing source, missing key or None value falls back to
    the stored default, then to the type's zero value.
    External values are passed through raw; coercion happens per recompute.
    """
    source = external_source if isinstance(external_source, Mapping) else {}
    out: Dict[str, Any] = {}
    for v in variables:
        key = (v.property_map or "").strip()
        if key and source.get(key) is not None:
            out[v.name] = source[key]
        elif v.value is not None:
            out[v.name] = v.value
        else:
            out[v.name] = zero_value(v.type)
    return out
