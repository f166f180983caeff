"""Formula expression language for salary components.

Formulas are small arithmetic expressions evaluated against a scope of
named numbers, e.g.::

    baseSalary * (performanceScore / 100) * 0.15
    if(grossSalary > 10000, grossSalary * 0.2, grossSalary * 0.1)

Grammar (lowest to highest precedence):

    expression     := comparison
    comparison     := additive [("==" | "!=" | "<" | ">" | "<=" | ">=") additive]
    additive       := multiplicative (("+" | "-") multiplicative)*
    multiplicative := unary (("*" | "/" | "%") unary)*
    unary          := ("+" | "-") unary | power
    power          := primary ["^" unary]
    primary        := NUMBER | NAME | NAME "(" [expression ("," expression)*] ")"
                    | "(" expression ")"

Comparisons evaluate to 1 or 0. ``%`` is floored: the result takes the
sign of the divisor (``-7 % 3 == 2``). Formulas are limited to
MAX_TOKENS tokens and MAX_NESTING open groups. All arithmetic is done in Decimal under a
fixed context so results never depend on the caller's decimal settings.
Formulas are parsed into an AST and walked; nothing is ever handed to the
host interpreter.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import (
    ROUND_CEILING,
    ROUND_FLOOR,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    localcontext,
)
from functools import lru_cache
from typing import Any, Callable, Union

# Fixed arithmetic context for every evaluation
FORMULA_CONTEXT = Context(
    prec=28,
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, DivisionByZero, Overflow],
)

ONE = Decimal("1")
ZERO = Decimal("0")

# Parentheses, unary signs, powers and calls opened at once
MAX_NESTING = 64
# Bounds the depth of left-leaning operator chains
MAX_TOKENS = 256


# ============================================================================
# Errors
# ============================================================================


class FormulaError(Exception):
    """Base class for formula parse and evaluation failures."""

    def __init__(self, message: str, formula: str | None = None):
        self.message = message
        self.formula = formula
        super().__init__(message)


class FormulaSyntaxError(FormulaError):
    """Raised when formula text cannot be parsed."""

    def __init__(self, message: str, position: int, formula: str | None = None):
        self.position = position
        super().__init__(f"{message} at position {position}", formula)


class UndefinedVariableError(FormulaError):
    """Raised when a formula references a name absent from the scope."""

    def __init__(self, name: str, formula: str | None = None):
        self.name = name
        super().__init__(f"Undefined variable '{name}'", formula)


class DivisionByZeroError(FormulaError):
    """Raised on division or modulo by zero."""

    def __init__(self, formula: str | None = None):
        super().__init__("Division by zero", formula)


class UnknownFunctionError(FormulaError):
    """Raised for calls to unsupported functions or with a bad argument list."""

    def __init__(self, name: str, message: str, formula: str | None = None):
        self.name = name
        super().__init__(message, formula)


class NonNumericResultError(FormulaError):
    """Raised when a value is not a finite number."""


# ============================================================================
# Tokenizer
# ============================================================================

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>>=|<=|==|!=|[-+*/%^<>(),])
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str  # "number", "name", "op", "end"
    text: str
    position: int


def tokenize(formula: str) -> list[Token]:
    """Split formula text into tokens, ending with an ``end`` token."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(formula):
        match = _TOKEN_RE.match(formula, pos)
        if match is None:
            raise FormulaSyntaxError(
                f"Unexpected character '{formula[pos]}'", pos, formula
            )
        kind = match.lastgroup
        if kind != "ws":
            if len(tokens) == MAX_TOKENS:
                raise FormulaSyntaxError("Formula is too long", pos, formula)
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token("end", "", len(formula)))
    return tokens


# ============================================================================
# AST
# ============================================================================


@dataclass(frozen=True)
class Number:
    value: Decimal


@dataclass(frozen=True)
class Name:
    id: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True)
class Binary:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple[Node, ...]
    position: int


Node = Union[Number, Name, Unary, Binary, Call]

COMPARISON_OPS = ("==", "!=", "<", ">", "<=", ">=")


class _Parser:
    """Recursive-descent parser producing an AST."""

    def __init__(self, formula: str):
        self.formula = formula
        self.tokens = tokenize(formula)
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, *ops: str) -> Token | None:
        token = self.current
        if token.kind == "op" and token.text in ops:
            self.index += 1
            return token
        return None

    def _expect(self, op: str) -> Token:
        token = self._accept(op)
        if token is None:
            self._unexpected(f"expected '{op}'")
        return token

    def _nest(self, token: Token) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise FormulaSyntaxError(
                "Formula is nested too deeply", token.position, self.formula
            )

    def _unexpected(self, hint: str | None = None) -> None:
        token = self.current
        if token.kind == "end":
            message = "Unexpected end of formula"
        else:
            message = f"Unexpected token '{token.text}'"
        if hint:
            message += f" ({hint})"
        raise FormulaSyntaxError(message, token.position, self.formula)

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise FormulaSyntaxError("Empty formula", 0, self.formula)
        node = self._comparison()
        if self.current.kind != "end":
            self._unexpected()
        return node

    def _comparison(self) -> Node:
        left = self._additive()
        token = self._accept(*COMPARISON_OPS)
        if token is not None:
            right = self._additive()
            left = Binary(token.text, left, right)
        return left

    def _additive(self) -> Node:
        node = self._multiplicative()
        while (token := self._accept("+", "-")) is not None:
            node = Binary(token.text, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._unary()
        while (token := self._accept("*", "/", "%")) is not None:
            node = Binary(token.text, node, self._unary())
        return node

    def _unary(self) -> Node:
        token = self._accept("+", "-")
        if token is not None:
            self._nest(token)
            node = Unary(token.text, self._unary())
            self.depth -= 1
            return node
        return self._power()

    def _power(self) -> Node:
        base = self._primary()
        token = self._accept("^")
        if token is not None:
            self._nest(token)
            node = Binary("^", base, self._unary())
            self.depth -= 1
            return node
        return base

    def _primary(self) -> Node:
        token = self.current

        if token.kind == "number":
            self._advance()
            return Number(Decimal(token.text))

        if token.kind == "name":
            self._advance()
            if self._accept("(") is not None:
                self._nest(token)
                node = Call(token.text, self._arguments(), token.position)
                self.depth -= 1
                return node
            return Name(token.text)

        if self._accept("(") is not None:
            self._nest(token)
            node = self._comparison()
            self._expect(")")
            self.depth -= 1
            return node

        self._unexpected()
        raise AssertionError("unreachable")

    def _arguments(self) -> tuple[Node, ...]:
        args: list[Node] = []
        if self._accept(")") is not None:
            return ()
        args.append(self._comparison())
        while self._accept(",") is not None:
            args.append(self._comparison())
        self._expect(")")
        return tuple(args)


@lru_cache(maxsize=1024)
def parse(formula: str) -> Node:
    """Parse formula text into an AST.

    Raises:
        FormulaSyntaxError: If the text is not a valid formula
    """
    return _Parser(formula).parse()


def referenced_variables(formula: str) -> frozenset[str]:
    """Return the variable names a formula reads (function names excluded)."""
    names: set[str] = set()
    stack: list[Node] = [parse(formula)]
    while stack:
        node = stack.pop()
        if isinstance(node, Name):
            names.add(node.id)
        elif isinstance(node, Unary):
            stack.append(node.operand)
        elif isinstance(node, Binary):
            stack.extend((node.left, node.right))
        elif isinstance(node, Call):
            stack.extend(node.args)
    return frozenset(names)


# ============================================================================
# Evaluation
# ============================================================================


def coerce_number(value: Any, label: str, formula: str | None = None) -> Decimal:
    """Convert a scope value to a finite Decimal."""
    if isinstance(value, bool):
        return ONE if value else ZERO
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    else:
        raise NonNumericResultError(
            f"{label} is not a number: {value!r}", formula
        )
    if not number.is_finite():
        raise NonNumericResultError(f"{label} is not a finite number", formula)
    return number


def _fn_min(*args: Decimal) -> Decimal:
    return min(args)


def _fn_max(*args: Decimal) -> Decimal:
    return max(args)


def _fn_round(x: Decimal, digits: Decimal = ZERO) -> Decimal:
    if digits != digits.to_integral_value():
        raise UnknownFunctionError("round", "round() digits must be an integer")
    exponent = Decimal(1).scaleb(-int(digits))
    return x.quantize(exponent, rounding=ROUND_HALF_UP)


def _fn_floor(x: Decimal) -> Decimal:
    return x.to_integral_value(rounding=ROUND_FLOOR)


def _fn_ceil(x: Decimal) -> Decimal:
    return x.to_integral_value(rounding=ROUND_CEILING)


def _fn_abs(x: Decimal) -> Decimal:
    return abs(x)


# name -> (callable, min args, max args or None for variadic)
FUNCTIONS: dict[str, tuple[Callable[..., Decimal], int, int | None]] = {
    "min": (_fn_min, 1, None),
    "max": (_fn_max, 1, None),
    "round": (_fn_round, 1, 2),
    "floor": (_fn_floor, 1, 1),
    "ceil": (_fn_ceil, 1, 1),
    "abs": (_fn_abs, 1, 1),
}


class _Evaluator:
    """Tree-walking evaluator over a read-only scope."""

    def __init__(self, formula: str, scope: Mapping[str, Any]):
        self.formula = formula
        self.scope = scope

    def visit(self, node: Node) -> Decimal:
        if isinstance(node, Number):
            return node.value
        if isinstance(node, Name):
            return self._lookup(node.id)
        if isinstance(node, Unary):
            operand = self.visit(node.operand)
            return -operand if node.op == "-" else +operand
        if isinstance(node, Binary):
            return self._binary(node)
        if isinstance(node, Call):
            return self._call(node)
        raise TypeError(f"Unknown node type {type(node).__name__}")

    def _lookup(self, name: str) -> Decimal:
        if name not in self.scope:
            raise UndefinedVariableError(name, self.formula)
        return coerce_number(self.scope[name], f"Variable '{name}'", self.formula)

    def _binary(self, node: Binary) -> Decimal:
        left = self.visit(node.left)
        right = self.visit(node.right)
        op = node.op

        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op in ("/", "%"):
            if right == 0:
                raise DivisionByZeroError(self.formula)
            if op == "/":
                return left / right
            remainder = left % right
            # Floored: the result takes the sign of the divisor
            if remainder != 0 and (remainder < 0) != (right < 0):
                remainder += right
            return remainder
        if op == "^":
            if left == 0 and right < 0:
                raise DivisionByZeroError(self.formula)
            return left**right
        if op == "==":
            return ONE if left == right else ZERO
        if op == "!=":
            return ONE if left != right else ZERO
        if op == "<":
            return ONE if left < right else ZERO
        if op == ">":
            return ONE if left > right else ZERO
        if op == "<=":
            return ONE if left <= right else ZERO
        if op == ">=":
            return ONE if left >= right else ZERO
        raise TypeError(f"Unknown operator {op}")

    def _call(self, node: Call) -> Decimal:
        if node.name == "if":
            if len(node.args) != 3:
                raise UnknownFunctionError(
                    "if",
                    f"if() takes 3 arguments ({len(node.args)} given)",
                    self.formula,
                )
            condition, then_value, else_value = node.args
            chosen = then_value if self.visit(condition) != 0 else else_value
            return self.visit(chosen)

        entry = FUNCTIONS.get(node.name)
        if entry is None:
            raise UnknownFunctionError(
                node.name, f"Unknown function '{node.name}'", self.formula
            )
        func, min_args, max_args = entry
        count = len(node.args)
        if count < min_args or (max_args is not None and count > max_args):
            raise UnknownFunctionError(
                node.name,
                f"{node.name}() got {count} argument(s)",
                self.formula,
            )
        args = [self.visit(arg) for arg in node.args]
        try:
            return func(*args)
        except UnknownFunctionError as e:
            e.formula = self.formula
            raise


def evaluate(formula: str, scope: Mapping[str, Any] | None = None) -> Decimal:
    """Evaluate a formula against a scope of named numbers.

    Args:
        formula: Formula text
        scope: Mapping of variable name to number (case-sensitive)

    Returns:
        The result as a finite Decimal

    Raises:
        FormulaError: Any parse or evaluation failure (see subclasses)
    """
    tree = parse(formula)
    evaluator = _Evaluator(formula, scope or {})
    try:
        with localcontext(FORMULA_CONTEXT):
            # Unary plus applies the context to results no operator touched
            result = +evaluator.visit(tree)
    except DivisionByZero as e:
        raise DivisionByZeroError(formula) from e
    except (InvalidOperation, Overflow) as e:
        raise NonNumericResultError(
            f"Result is not a finite number ({type(e).__name__})", formula
        ) from e
    return coerce_number(result, "Result", formula)
