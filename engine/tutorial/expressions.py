"""
Tutorial Engine — Expression Evaluator

Evaluates the short expressions authors put in `compute` and `when` props,
e.g. "a + b * 2" or "count > 3 && enabled". State variables are referenced by
bare name.

Expressions are tokenized and parsed into a small AST, then walked by an
interpreter that sees only the state mapping and a fixed table of pure math
functions. There is no general code execution and no access to any other scope.

Supported:
  literals     1, 2.5, .5, 1e3, "text", 'text', true, false, null (True/False/None)
  names        any state key
  unary        -x  +x  !x  not x
  arithmetic   **  *  /  %  +  -
  comparison   <  <=  >  >=  ==  !=  ===  !==
  logic        &&  ||  and  or      (short-circuit, return an operand)
  ternary      cond ? a : b
  calls        abs min max round floor ceil sqrt pow exp log sin cos tan atan2 hypot
               (also as Math.sqrt(...)), constants Math.PI and Math.E

evaluate() never raises: faults come back as an EvaluationError value.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from engine.tutorial.formatting import display_value

MAX_DEPTH = 64
MAX_INT_EXPONENT = 1024
# Integer results wider than this are refused before they are computed
MAX_INT_BITS = 4096

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluationError:
    """A failed evaluation. Returned, never raised."""

    expression: str
    message: str
    kind: str = "runtime"  # "syntax", "name", "type", "math", "runtime"

    def __str__(self) -> str:
        return self.message


class ExpressionFault(Exception):
    """Internal: raised while parsing or evaluating, caught at the evaluate() boundary."""

    kind = "runtime"


class ExpressionSyntaxError(ExpressionFault):
    kind = "syntax"


class UnknownNameError(ExpressionFault):
    kind = "name"


class ExpressionTypeError(ExpressionFault):
    kind = "type"


class ExpressionMathError(ExpressionFault):
    kind = "math"


# ---------------------------------------------------------------------------
# Functions and constants
# ---------------------------------------------------------------------------


def _round(value: float) -> int:
    return math.floor(value + 0.5)


FUNCTIONS: dict[str, Any] = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": _round,
    "floor": math.floor,
    "ceil": math.ceil,
    "sqrt": math.sqrt,
    "pow": math.pow,
    "exp": math.exp,
    "log": math.log,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "atan2": math.atan2,
    "hypot": math.hypot,
}

CONSTANTS: dict[str, float] = {
    "PI": math.pi,
    "E": math.e,
}

KEYWORD_LITERALS: dict[str, Any] = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<op>===|!==|\*\*|==|!=|<=|>=|&&|\|\||[-+*/%<>!?:(),.])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


class Token:
    __slots__ = ("kind", "value", "pos")

    def __init__(self, kind: str, value: Any, pos: int) -> None:
        self.kind = kind  # "number", "string", "name", "op", "end"
        self.value = value
        self.pos = pos

    def __repr__(self) -> str:
        return f"Token({self.kind!r}, {self.value!r}, pos={self.pos})"


def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if m is None:
            raise ExpressionSyntaxError(f"Unexpected character {source[pos]!r} at position {pos}")
        kind = m.lastgroup
        text = m.group()
        if kind == "number":
            value: Any = float(text) if any(c in text for c in ".eE") else int(text)
            tokens.append(Token("number", value, pos))
        elif kind == "string":
            tokens.append(Token("string", _unescape(text[1:-1]), pos))
        elif kind == "name":
            tokens.append(Token("name", text, pos))
        elif kind == "op":
            tokens.append(Token("op", text, pos))
        pos = m.end()
    tokens.append(Token("end", None, pos))
    return tokens


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


class Literal:
    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


class Name:
    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"Name({self.name!r})"


class Unary:
    __slots__ = ("op", "operand")

    def __init__(self, op: str, operand: Any) -> None:
        self.op = op
        self.operand = operand

    def __repr__(self) -> str:
        return f"Unary({self.op!r}, {self.operand!r})"


class Binary:
    __slots__ = ("op", "left", "right")

    def __init__(self, op: str, left: Any, right: Any) -> None:
        self.op = op
        self.left = left
        self.right = right

    def __repr__(self) -> str:
        return f"Binary({self.op!r}, {self.left!r}, {self.right!r})"


class Logical:
    __slots__ = ("op", "left", "right")

    def __init__(self, op: str, left: Any, right: Any) -> None:
        self.op = op  # "and" or "or"
        self.left = left
        self.right = right

    def __repr__(self) -> str:
        return f"Logical({self.op!r}, {self.left!r}, {self.right!r})"


class Conditional:
    __slots__ = ("test", "then", "otherwise")

    def __init__(self, test: Any, then: Any, otherwise: Any) -> None:
        self.test = test
        self.then = then
        self.otherwise = otherwise

    def __repr__(self) -> str:
        return f"Conditional({self.test!r}, {self.then!r}, {self.otherwise!r})"


class Call:
    __slots__ = ("func", "args")

    def __init__(self, func: str, args: list[Any]) -> None:
        self.func = func
        self.args = args

    def __repr__(self) -> str:
        return f"Call({self.func!r}, {self.args!r})"


# ---------------------------------------------------------------------------
# Parser (recursive descent, lowest precedence first)
# ---------------------------------------------------------------------------

_EQUALITY_OPS = {"==", "!=", "===", "!=="}
_COMPARISON_OPS = {"<", "<=", ">", ">="}


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0
        self.depth = 0
        self.names: set[str] = set()

    # -- token helpers --

    def peek(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        tok = self.tokens[self.index]
        self.index += 1
        return tok

    def at_op(self, *ops: str) -> bool:
        tok = self.peek()
        return tok.kind == "op" and tok.value in ops

    def at_word(self, *words: str) -> bool:
        tok = self.peek()
        return tok.kind == "name" and tok.value in words

    def expect_op(self, op: str) -> Token:
        tok = self.advance()
        if tok.kind != "op" or tok.value != op:
            raise ExpressionSyntaxError(f"Expected {op!r} at position {tok.pos}, got {_describe(tok)}")
        return tok

    # -- grammar --

    def parse(self) -> Any:
        node = self.expression()
        tok = self.peek()
        if tok.kind != "end":
            raise ExpressionSyntaxError(f"Unexpected {_describe(tok)} at position {tok.pos}")
        return node

    def expression(self) -> Any:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise ExpressionSyntaxError("Expression is nested too deeply")
        try:
            return self.ternary()
        finally:
            self.depth -= 1

    def ternary(self) -> Any:
        test = self.logical_or()
        if self.at_op("?"):
            self.advance()
            then = self.expression()
            self.expect_op(":")
            otherwise = self.expression()
            return Conditional(test, then, otherwise)
        return test

    def logical_or(self) -> Any:
        left = self.logical_and()
        while self.at_op("||") or self.at_word("or"):
            self.advance()
            left = Logical("or", left, self.logical_and())
        return left

    def logical_and(self) -> Any:
        left = self.equality()
        while self.at_op("&&") or self.at_word("and"):
            self.advance()
            left = Logical("and", left, self.equality())
        return left

    def equality(self) -> Any:
        left = self.comparison()
        while self.at_op(*_EQUALITY_OPS):
            op = self.advance().value
            left = Binary(op, left, self.comparison())
        return left

    def comparison(self) -> Any:
        left = self.additive()
        while self.at_op(*_COMPARISON_OPS):
            op = self.advance().value
            left = Binary(op, left, self.additive())
        return left

    def additive(self) -> Any:
        left = self.multiplicative()
        while self.at_op("+", "-"):
            op = self.advance().value
            left = Binary(op, left, self.multiplicative())
        return left

    def multiplicative(self) -> Any:
        left = self.unary()
        while self.at_op("*", "/", "%"):
            op = self.advance().value
            left = Binary(op, left, self.unary())
        return left

    def unary(self) -> Any:
        if self.at_op("-", "+", "!") or self.at_word("not"):
            tok = self.advance()
            op = "!" if tok.value == "not" else tok.value
            self.depth += 1
            if self.depth > MAX_DEPTH:
                raise ExpressionSyntaxError("Expression is nested too deeply")
            try:
                return Unary(op, self.unary())
            finally:
                self.depth -= 1
        return self.power()

    def power(self) -> Any:
        base = self.primary()
        if self.at_op("**"):
            self.advance()
            # right-associative, binds tighter than unary on its left
            return Binary("**", base, self.unary())
        return base

    def primary(self) -> Any:
        tok = self.advance()
        if tok.kind in ("number", "string"):
            return Literal(tok.value)
        if tok.kind == "name":
            return self.name_or_call(tok)
        if tok.kind == "op" and tok.value == "(":
            node = self.expression()
            self.expect_op(")")
            return node
        if tok.kind == "end":
            raise ExpressionSyntaxError("Unexpected end of expression")
        raise ExpressionSyntaxError(f"Unexpected {_describe(tok)} at position {tok.pos}")

    def name_or_call(self, tok: Token) -> Any:
        name = tok.value
        if name in KEYWORD_LITERALS:
            return Literal(KEYWORD_LITERALS[name])
        if name in ("and", "or", "not"):
            raise ExpressionSyntaxError(f"Unexpected {name!r} at position {tok.pos}")
        if name == "Math" and self.at_op("."):
            self.advance()
            member = self.advance()
            if member.kind != "name":
                raise ExpressionSyntaxError(f"Expected name after 'Math.' at position {member.pos}")
            if self.at_op("("):
                return Call(member.value, self.arguments())
            if member.value not in CONSTANTS:
                raise ExpressionSyntaxError(f"Unknown constant Math.{member.value}")
            return Literal(CONSTANTS[member.value])
        if self.at_op("("):
            return Call(name, self.arguments())
        if self.at_op("."):
            raise ExpressionSyntaxError(f"Member access is not supported (position {self.peek().pos})")
        self.names.add(name)
        return Name(name)

    def arguments(self) -> list[Any]:
        self.expect_op("(")
        args: list[Any] = []
        if self.at_op(")"):
            self.advance()
            return args
        while True:
            args.append(self.expression())
            if self.at_op(","):
                self.advance()
                continue
            self.expect_op(")")
            return args


def _describe(tok: Token) -> str:
    if tok.kind == "end":
        return "end of expression"
    return f"{tok.value!r}"


# ---------------------------------------------------------------------------
# Compiled expressions
# ---------------------------------------------------------------------------


class Expression:
    """A parsed expression, ready to evaluate against any state mapping."""

    __slots__ = ("source", "tree", "names")

    def __init__(self, source: str, tree: Any, names: frozenset[str]) -> None:
        self.source = source
        self.tree = tree
        self.names = names  # free identifiers the expression reads

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"

    def evaluate(self, state: Mapping[str, Any]) -> Any:
        """Evaluate against state. Raises ExpressionFault; use evaluate() for the safe form."""
        return _eval(self.tree, state)


@lru_cache(maxsize=512)
def compile_expression(source: str) -> Expression:
    """
    Parse an expression string. Raises ExpressionSyntaxError on bad syntax.
    Cached by exact source string — parse once, evaluate many times.
    """
    if not source.strip():
        raise ExpressionSyntaxError("Empty expression")
    parser = _Parser(tokenize(source))
    tree = parser.parse()
    return Expression(source, tree, frozenset(parser.names))


def evaluate(source: Any, state: Mapping[str, Any]) -> Any:
    """
    Evaluate an expression against a flat state mapping.

    Returns the value, or an EvaluationError carrying the original message.
    Pure: never writes to state, never raises.
    """
    if not isinstance(source, str):
        return EvaluationError(repr(source), "Expression must be a string", "syntax")
    try:
        return compile_expression(source).evaluate(state)
    except ExpressionFault as e:
        return EvaluationError(source, str(e), e.kind)
    except ZeroDivisionError:
        return EvaluationError(source, "Division by zero", "math")
    except (OverflowError, ValueError) as e:
        return EvaluationError(source, f"Math error: {e}", "math")
    except TypeError as e:
        return EvaluationError(source, str(e), "type")
    except RecursionError:
        return EvaluationError(source, "Expression is nested too deeply", "syntax")


def is_error(value: Any) -> bool:
    return isinstance(value, EvaluationError)


def truthy(value: Any) -> bool:
    """Branch truthiness as authors expect it from the browser (NaN is falsy)."""
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float))


def _require_numbers(op: str, left: Any, right: Any) -> None:
    if not (_is_number(left) and _is_number(right)):
        raise ExpressionTypeError(
            f"Unsupported operands for {op}: {type(left).__name__} and {type(right).__name__}"
        )


def _add(left: Any, right: Any) -> Any:
    if isinstance(left, str) or isinstance(right, str):
        if left is None or right is None:
            raise ExpressionTypeError("Cannot concatenate a missing value")
        return display_value(left) + display_value(right)
    _require_numbers("+", left, right)
    return left + right


def _remainder(left: Any, right: Any) -> Any:
    _require_numbers("%", left, right)
    if right == 0:
        raise ExpressionMathError("Division by zero")
    if isinstance(left, int) and isinstance(right, int):
        # sign follows the dividend
        r = abs(left) % abs(right)
        return -r if left < 0 else r
    return math.fmod(left, right)


def _check_int_size(bits: int) -> None:
    if bits > MAX_INT_BITS:
        raise ExpressionMathError("Result too large")


def _power(left: Any, right: Any) -> Any:
    _require_numbers("**", left, right)
    if isinstance(left, int) and isinstance(right, int) and abs(right) > MAX_INT_EXPONENT:
        raise ExpressionMathError("Exponent too large")
    if isinstance(left, int) and isinstance(right, int) and right > 0:
        _check_int_size(max(abs(left).bit_length() - 1, 0) * right)
    if left == 0 and right < 0:
        raise ExpressionMathError("Division by zero")
    result = left**right
    if isinstance(result, complex):
        raise ExpressionMathError("Result is not a real number")
    return result


def _divide(left: Any, right: Any) -> Any:
    _require_numbers("/", left, right)
    if right == 0:
        raise ExpressionMathError("Division by zero")
    return left / right


def _compare(op: str, left: Any, right: Any) -> bool:
    comparable = (_is_number(left) and _is_number(right)) or (isinstance(left, str) and isinstance(right, str))
    if not comparable:
        raise ExpressionTypeError(
            f"Cannot compare {type(left).__name__} and {type(right).__name__} with {op}"
        )
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _equal(left: Any, right: Any) -> bool:
    # bool is an int subclass; true must not equal 1
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _binary(op: str, left: Any, right: Any) -> Any:
    if op == "+":
        return _add(left, right)
    if op == "-":
        _require_numbers(op, left, right)
        return left - right
    if op == "*":
        _require_numbers(op, left, right)
        if isinstance(left, int) and isinstance(right, int):
            _check_int_size(abs(left).bit_length() + abs(right).bit_length())
        return left * right
    if op == "/":
        return _divide(left, right)
    if op == "%":
        return _remainder(left, right)
    if op == "**":
        return _power(left, right)
    if op in ("==", "==="):
        return _equal(left, right)
    if op in ("!=", "!=="):
        return not _equal(left, right)
    return _compare(op, left, right)


def _eval(node: Any, state: Mapping[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, Name):
        if node.name not in state:
            raise UnknownNameError(f"{node.name} is not defined")
        return state[node.name]

    if isinstance(node, Unary):
        value = _eval(node.operand, state)
        if node.op == "!":
            return not truthy(value)
        if not _is_number(value):
            raise ExpressionTypeError(f"Bad operand for unary {node.op}: {type(value).__name__}")
        return -value if node.op == "-" else +value

    if isinstance(node, Logical):
        left = _eval(node.left, state)
        if node.op == "and":
            return _eval(node.right, state) if truthy(left) else left
        return left if truthy(left) else _eval(node.right, state)

    if isinstance(node, Binary):
        return _binary(node.op, _eval(node.left, state), _eval(node.right, state))

    if isinstance(node, Conditional):
        if truthy(_eval(node.test, state)):
            return _eval(node.then, state)
        return _eval(node.otherwise, state)

    if isinstance(node, Call):
        func = FUNCTIONS.get(node.func)
        if func is None:
            raise UnknownNameError(f"{node.func} is not a function")
        args = [_eval(arg, state) for arg in node.args]
        for arg in args:
            if not _is_number(arg):
                raise ExpressionTypeError(f"{node.func}() expects numbers, got {type(arg).__name__}")
        return func(*args)

    raise ExpressionFault(f"Unknown expression node: {node!r}")  # pragma: no cover
