# -----------------------------------------------------------------------------
# Safe expression evaluator (controlled environment)
# Purpose:
#   Evaluate one formula string against caller-supplied variables plus a fixed
#   library of numeric functions/constants.
# Safety:
#   - Own tokenizer + recursive-descent parser; expression text is never handed
#     to Python's compiler or eval().
#   - Grammar is arithmetic/comparison/logical operators, literals, names and
#     calls of library functions. No attribute access, indexing or assignment.
#   - Only names in the scope or the read-only library resolve.
# Numeric behaviour follows IEEE floats: 1/0 -> Infinity, 0/0 -> NaN,
# sqrt(-1) -> NaN. Non-finite results are values, not errors.
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
import random
import re
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Tuple

from .formatters import format_value

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class EvaluationError(Exception):
    """Per-formula failure; never fatal to the calculator."""
    kind = "evaluation_error"

class UnknownIdentifier(EvaluationError):
    kind = "unknown_identifier"

    def __init__(self, name: str):
        super().__init__(f"Unknown identifier: {name}")
        self.name = name

class ExpressionSyntaxError(EvaluationError):
    kind = "syntax_error"

    def __init__(self, message: str, pos: int | None = None):
        super().__init__(message if pos is None else f"{message} at position {pos}")
        self.pos = pos

class ExpressionTypeError(EvaluationError):
    kind = "type_error"

# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Token:
    kind: str      # number | string | ident | op | end
    text: str
    pos: int

# Plain decimal with optional exponent, ASCII digits only
NUMBER_PATTERN = r"(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?"

_TOKEN_RE = re.compile(rf"""
    (?P<ws>\s+)
  | (?P<number>{NUMBER_PATTERN})
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>===|!==|\*\*|==|!=|<=|>=|&&|\|\||[-+*/%^<>!?:(),])
""", re.VERBOSE)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}

def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)

def tokenize(expression: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(expression):
        m = _TOKEN_RE.match(expression, pos)
        if not m:
            raise ExpressionSyntaxError(f"Unexpected character {expression[pos]!r}", pos)
        kind = m.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, m.group(), pos))
        pos = m.end()
    tokens.append(Token("end", "", pos))
    return tokens

# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: Any

@dataclass(frozen=True)
class Name:
    id: str
    pos: int

@dataclass(frozen=True)
class Unary:
    op: str
    operand: Any

@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any

@dataclass(frozen=True)
class Logical:
    op: str        # && | ||
    left: Any
    right: Any

@dataclass(frozen=True)
class Conditional:
    test: Any
    body: Any
    orelse: Any

@dataclass(frozen=True)
class Call:
    func: str
    args: Tuple[Any, ...]
    pos: int

# ---------------------------------------------------------------------------
# Parser (lowest precedence first)
#   conditional := logic_or ['?' conditional ':' conditional]
#   logic_or    := logic_and (('||'|'or') logic_and)*
#   logic_and   := equality (('&&'|'and') equality)*
#   equality    := comparison (('=='|'!='|'==='|'!==') comparison)*
#   comparison  := additive (('<'|'<='|'>'|'>=') additive)*
#   additive    := term (('+'|'-') term)*
#   term        := unary (('*'|'/'|'%') unary)*
#   unary       := ('-'|'+'|'!'|'not') unary | power
#   power       := call [('**'|'^') unary]
#   call        := primary ['(' args ')']
# ---------------------------------------------------------------------------

_WORD_OPS = {"or": "||", "and": "&&", "not": "!"}

# Identifiers the parser never resolves as names
RESERVED_WORDS = frozenset(_WORD_OPS) | {"true", "false"}

class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.i = 0

    @property
    def tok(self) -> Token:
        return self.tokens[self.i]

    def _op(self) -> str | None:
        # Current token as an operator symbol, with word aliases folded in.
        t = self.tok
        if t.kind == "op":
            return t.text
        if t.kind == "ident" and t.text in _WORD_OPS:
            return _WORD_OPS[t.text]
        return None

    def _advance(self) -> Token:
        t = self.tok
        self.i += 1
        return t

    def _expect(self, text: str) -> Token:
        if self.tok.kind != "op" or self.tok.text != text:
            found = self.tok.text or "end of expression"
            raise ExpressionSyntaxError(f"Expected '{text}' but found '{found}'", self.tok.pos)
        return self._advance()

    def parse(self):
        if self.tok.kind == "end":
            raise ExpressionSyntaxError("Empty expression")
        node = self.conditional()
        if self.tok.kind != "end":
            raise ExpressionSyntaxError(f"Unexpected '{self.tok.text}'", self.tok.pos)
        return node

    def conditional(self):
        test = self.logic_or()
        if self._op() == "?":
            self._advance()
            body = self.conditional()
            self._expect(":")
            return Conditional(test, body, self.conditional())
        return test

    def _left_assoc(self, ops: Tuple[str, ...], sub: Callable[[], Any], node_type=Binary):
        node = sub()
        while self._op() in ops:
            op = self._op()
            self._advance()
            node = node_type(op, node, sub())
        return node

    def logic_or(self):
        return self._left_assoc(("||",), self.logic_and, Logical)

    def logic_and(self):
        return self._left_assoc(("&&",), self.equality, Logical)

    def equality(self):
        return self._left_assoc(("==", "!=", "===", "!=="), self.comparison)

    def comparison(self):
        return self._left_assoc(("<", "<=", ">", ">="), self.additive)

    def additive(self):
        return self._left_assoc(("+", "-"), self.term)

    def term(self):
        return self._left_assoc(("*", "/", "%"), self.unary)

    def unary(self):
        op = self._op()
        if op in ("-", "+", "!"):
            self._advance()
            return Unary(op, self.unary())
        return self.power()

    def power(self):
        base = self.call()
        if self._op() in ("**", "^"):
            self._advance()
            return Binary("**", base, self.unary())
        return base

    def call(self):
        node = self.primary()
        if self._op() == "(":
            if not isinstance(node, Name):
                raise ExpressionSyntaxError("Only named functions can be called", self.tok.pos)
            self._advance()
            args: List[Any] = []
            if self._op() != ")":
                args.append(self.conditional())
                while self._op() == ",":
                    self._advance()
                    args.append(self.conditional())
            self._expect(")")
            node = Call(node.id, tuple(args), node.pos)
            if self._op() == "(":
                raise ExpressionSyntaxError("Only named functions can be called", self.tok.pos)
        return node

    def primary(self):
        t = self.tok
        if t.kind == "number":
            self._advance()
            return Literal(float(t.text))
        if t.kind == "string":
            self._advance()
            return Literal(_unquote(t.text))
        if t.kind == "ident" and t.text not in _WORD_OPS:
            self._advance()
            if t.text == "true":
                return Literal(True)
            if t.text == "false":
                return Literal(False)
            return Name(t.text, t.pos)
        if t.kind == "op" and t.text == "(":
            self._advance()
            node = self.conditional()
            self._expect(")")
            return node
        if t.kind == "end":
            raise ExpressionSyntaxError("Unexpected end of expression", t.pos)
        raise ExpressionSyntaxError(f"Unexpected '{t.text}'", t.pos)

@lru_cache(maxsize=512)
def parse(expression: str):
    """Parse an expression into an immutable AST (cached per text)."""
    try:
        return _Parser(tokenize(expression)).parse()
    except RecursionError:
        raise ExpressionSyntaxError("Expression is nested too deeply") from None

# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def _type_name(v: Any) -> str:
    if isinstance(v, bool):
        return "boolean"
    if isinstance(v, (int, float)):
        return "number"
    if isinstance(v, str):
        return "text"
    return type(v).__name__

def _is_number(v: Any) -> bool:
    # Booleans count as 0/1 in numeric context.
    return isinstance(v, (int, float))

def _num(v: Any, where: str) -> float:
    if not _is_number(v):
        raise ExpressionTypeError(f"{where} needs a number, got {_type_name(v)}")
    try:
        return float(v)
    except OverflowError:
        # int too large for a float
        return math.inf if v > 0 else -math.inf

def truthy(v: Any) -> bool:
    if isinstance(v, float) and math.isnan(v):
        return False
    return bool(v)

def _div(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b

def _mod(a: float, b: float) -> float:
    if b == 0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
        return math.nan
    return math.fmod(a, b)

def _pow(a: float, b: float) -> float:
    if math.isinf(b) and abs(a) == 1:
        return math.nan
    try:
        return math.pow(a, b)
    except OverflowError:
        odd = b.is_integer() and b % 2 == 1
        return math.copysign(math.inf, a) if odd else math.inf
    except ValueError:
        # 0 ** negative, or negative base with a fractional exponent
        return math.inf if a == 0 else math.nan

_ARITH = {
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _div,
    "%": _mod,
    "**": _pow,
}

def _compare(op: str, a: Any, b: Any) -> bool:
    if _is_number(a) and _is_number(b):
        a, b = float(a), float(b)
    elif not (isinstance(a, str) and isinstance(b, str)):
        raise ExpressionTypeError(f"Cannot compare {_type_name(a)} with {_type_name(b)}")
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b

def _equal(a: Any, b: Any) -> bool:
    if _is_number(a) and _is_number(b):
        return float(a) == float(b)
    if _type_name(a) != _type_name(b):
        return False
    return a == b

# ---------------------------------------------------------------------------
# Library (read-only)
# ---------------------------------------------------------------------------

class LibraryFunction:
    """A callable library entry. Only these can be invoked from an expression."""

    def __init__(self, name: str, fn: Callable[..., Any], numeric: bool = True):
        self.name = name
        self.fn = fn
        self.numeric = numeric

    def __call__(self, *args: Any) -> Any:
        if self.numeric:
            args = tuple(_num(a, f"{self.name}()") for a in args)
        try:
            return self.fn(*args)
        except TypeError as e:
            raise ExpressionTypeError(f"{self.name}(): {e}") from None
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf

    def __repr__(self) -> str:
        return f"<library function {self.name}>"

_NUMBER_PREFIX = re.compile(rf"[+-]?(?:Infinity|{NUMBER_PATTERN})")

def _to_number(v: Any) -> float:
    """Number(): text must be a whole numeric literal; blank text is 0."""
    if _is_number(v):
        return _num(v, "Number()")
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return 0.0
        if _NUMBER_PREFIX.fullmatch(s):
            return float(s.replace("Infinity", "inf"))
    return math.nan

def _parse_float(v: Any) -> float:
    if _is_number(v) and not isinstance(v, bool):
        return float(v)
    m = _NUMBER_PREFIX.match(format_value(v).lstrip())
    return float(m.group().replace("Infinity", "inf")) if m else math.nan

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

def _parse_int(v: Any, radix: Any = None) -> float:
    s = format_value(v).strip().lower()
    sign = -1.0 if s.startswith("-") else 1.0
    s = s.lstrip("+-")
    base = int(_num(radix, "parseInt()")) if radix not in (None, 0) else 10
    if (radix in (None, 0) or base == 16) and s.startswith("0x"):
        base, s = 16, s[2:]
    if not 2 <= base <= 36:
        return math.nan
    digits = ""
    for ch in s:
        if ch not in _DIGITS[:base]:
            break
        digits += ch
    return sign * int(digits, base) if digits else math.nan

def _round(x: float) -> float:
    # Half-up toward +Infinity, like JavaScript's Math.round.
    # Compare against the floor instead of adding 0.5 first, which rounds
    # 0.49999999999999994 up.
    if not math.isfinite(x):
        return x
    r = float(math.floor(x))
    return r + 1.0 if x - r >= 0.5 else r

def _integral(fn: Callable[[float], int]) -> Callable[[float], float]:
    return lambda x: float(fn(x)) if math.isfinite(x) else x

def _log(fn: Callable[[float], float], pole: float = 0.0) -> Callable[[float], float]:
    return lambda x: -math.inf if x == pole else fn(x)

def _extreme(pick: Callable[..., float], empty: float) -> Callable[..., float]:
    def run(*xs: float) -> float:
        if any(math.isnan(x) for x in xs):
            return math.nan
        return pick(xs) if xs else empty
    return run

_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "abs": math.fabs, "sign": lambda x: x if x == 0 or math.isnan(x) else math.copysign(1.0, x),
    "sqrt": math.sqrt, "cbrt": lambda x: math.copysign(abs(x) ** (1.0 / 3.0), x),
    "pow": _pow, "exp": math.exp, "expm1": math.expm1, "hypot": math.hypot,
    "log": _log(math.log), "log10": _log(math.log10), "log2": _log(math.log2),
    "log1p": _log(math.log1p, -1.0),
    "sin": math.sin, "cos": math.cos, "tan": math.tan,
    "asin": math.asin, "acos": math.acos, "atan": math.atan, "atan2": math.atan2,
    "sinh": math.sinh, "cosh": math.cosh, "tanh": math.tanh,
    "asinh": math.asinh, "acosh": math.acosh, "atanh": math.atanh,
    "ceil": _integral(math.ceil), "floor": _integral(math.floor),
    "trunc": _integral(math.trunc), "round": _round,
    "max": _extreme(max, -math.inf), "min": _extreme(min, math.inf),
    "random": random.random,
}

_CONSTANTS: Dict[str, float] = {
    "PI": math.pi, "E": math.e,
    "LN2": math.log(2), "LN10": math.log(10),
    "LOG2E": math.log2(math.e), "LOG10E": math.log10(math.e),
    "SQRT2": math.sqrt(2), "SQRT1_2": math.sqrt(0.5),
}

_HELPERS: Dict[str, Callable[..., Any]] = {
    "Number": _to_number,
    "parseFloat": _parse_float,
    "parseInt": _parse_int,
    "isNaN": lambda v: math.isnan(_to_number(v)),
    "isFinite": lambda v: math.isfinite(_to_number(v)),
}

LIBRARY: Mapping[str, Any] = MappingProxyType({
    **{k: LibraryFunction(k, fn) for k, fn in _FUNCTIONS.items()},
    **{k: LibraryFunction(k, fn, numeric=False) for k, fn in _HELPERS.items()},
    **_CONSTANTS,
})

# ---------------------------------------------------------------------------
# Tree-walking evaluator
# ---------------------------------------------------------------------------

def _lookup(name: str, scope: Mapping[str, Any]) -> Any:
    # Caller's variables shadow library names.
    if name in scope:
        return scope[name]
    if name in LIBRARY:
        return LIBRARY[name]
    raise UnknownIdentifier(name)

def _eval(node: Any, scope: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Name):
        value = _lookup(node.id, scope)
        if isinstance(value, LibraryFunction):
            raise ExpressionTypeError(f"{node.id} is a function; call it as {node.id}(...)")
        return value
    if isinstance(node, Logical):
        left = _eval(node.left, scope)
        if node.op == "&&":
            return _eval(node.right, scope) if truthy(left) else left
        return left if truthy(left) else _eval(node.right, scope)
    if isinstance(node, Conditional):
        return _eval(node.body if truthy(_eval(node.test, scope)) else node.orelse, scope)
    if isinstance(node, Unary):
        val = _eval(node.operand, scope)
        if node.op == "!":
            return not truthy(val)
        n = _num(val, f"Unary '{node.op}'")
        return -n if node.op == "-" else n
    if isinstance(node, Binary):
        a = _eval(node.left, scope)
        b = _eval(node.right, scope)
        op = node.op
        if op == "+":
            if isinstance(a, str) or isinstance(b, str):
                return format_value(a) + format_value(b)
            return _num(a, "Operator '+'") + _num(b, "Operator '+'")
        if op in _ARITH:
            return _ARITH[op](_num(a, f"Operator '{op}'"), _num(b, f"Operator '{op}'"))
        if op in ("==", "==="):
            return _equal(a, b)
        if op in ("!=", "!=="):
            return not _equal(a, b)
        return _compare(op, a, b)
    if isinstance(node, Call):
        fn = _lookup(node.func, scope)
        if not isinstance(fn, LibraryFunction):
            raise ExpressionTypeError(f"{node.func} is not a function")
        return fn(*(_eval(a, scope) for a in node.args))
    raise ExpressionSyntaxError(f"Unsupported node {type(node).__name__}")

def evaluate(expression: str, scope: Mapping[str, Any] | None = None) -> Any:
    """
    Evaluate `expression` against `scope` (name -> number/text/boolean).

    Returns a float, str or bool. Raises an EvaluationError subclass:
    UnknownIdentifier, ExpressionSyntaxError or ExpressionTypeError.

    Examples
    --------
    >>> evaluate("a + b * 2", {"a": 3, "b": 4})
    11.0
    >>> evaluate("sqrt(x)", {"x": 16})
    4.0
    """
    if not isinstance(expression, str):
        raise ExpressionTypeError(f"Expression must be text, got {_type_name(expression)}")
    tree = parse(expression)
    try:
        return _eval(tree, scope or {})
    except RecursionError:
        raise ExpressionSyntaxError("Expression is nested too deeply") from None
