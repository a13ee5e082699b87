# -----------------------------------------------------------------------------
# Identifier utilities
# Purpose: opaque id generation for stored/inline calculators and the
# identifier rule shared by variable names and formula substitution targets.
# -----------------------------------------------------------------------------

from __future__ import annotations
import random
import re
import string

# 62-char alphabet: A-Z a-z 0-9
ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

def generate_id(length: int = 8) -> str:
    """
    Random alphanumeric id. Not cryptographically secure; good enough to keep
    a user-scale list of calculators collision-free in practice.
    """
    return "".join(random.choice(ID_ALPHABET) for _ in range(length))

def is_valid_identifier(s: object) -> bool:
    # Letter/underscore start, alphanumeric/underscore body.
    return isinstance(s, str) and _IDENT_RE.fullmatch(s) is not None
