"""
``formula.js`` — spreadsheet-function expression engine.

A small tokenizer plus recursive-descent parser for spreadsheet formulas::

    CONCATENATE('a', UPPER("b"), 1 + 2)

Grammar, lowest precedence first::

    comparison  := concat (("=" | "<>" | "<" | ">" | "<=" | ">=") concat)*
    concat      := additive ("&" additive)*
    additive    := term (("+" | "-") term)*
    term        := power (("*" | "/") power)*
    power       := unary ("^" unary)*
    unary       := ("+" | "-") unary | postfix
    postfix     := primary "%"?
    primary     := NUMBER | STRING | NAME "(" args ")" | NAME | "(" comparison ")"

Bare names are looked up in the scope (dotted paths allowed); a name the
scope does not know is taken as literal text.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

from calcflow.exceptions import ExpressionSyntaxError
from calcflow.expressions.namespace import lookup_path

from .base import ExpressionEngine, guarded_power, normalize_number

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
  | (?P<op><>|<=|>=|[-+*/^&=<>%])
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
  | (?P<name>[A-Za-z_$][\w.$]*)
""", re.VERBOSE)


class Token:
    __slots__ = ("kind", "text", "position")

    def __init__(self, kind: str, text: str, position: int):
        self.kind = kind
        self.text = text
        self.position = position

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.text!r})"


def tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_RE.match(expression, position)
        if match is None:
            raise ExpressionSyntaxError(
                f"Unexpected character {expression[position]!r} at position {position}"
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(0), position))
        position = match.end()
    return tokens


# ── Value coercion ────────────────────────────────────────────────────────────


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(normalize_number(value))


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if value is None or value == "":
        return 0
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"#VALUE! cannot convert {value!r} to a number") from None
    raise TypeError(f"#VALUE! cannot convert {type(value).__name__} to a number")


def _flatten(args: tuple) -> list:
    values: list = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            values.extend(_flatten(tuple(arg)))
        else:
            values.append(arg)
    return values


def _numbers(args: tuple) -> list:
    return [_number(v) for v in _flatten(args) if v is not None and v != ""]


# ── Function table ────────────────────────────────────────────────────────────


def _concatenate(*args: Any) -> str:
    return "".join(_text(v) for v in _flatten(args))


def _left(text: Any, count: Any = 1) -> str:
    return _text(text)[:int(_number(count))]


def _right(text: Any, count: Any = 1) -> str:
    count = int(_number(count))
    return _text(text)[-count:] if count > 0 else ""


def _mid(text: Any, start: Any, count: Any) -> str:
    begin = int(_number(start)) - 1
    if begin < 0:
        raise ValueError("#VALUE! MID start must be >= 1")
    return _text(text)[begin:begin + int(_number(count))]


def _substitute(text: Any, old: Any, new: Any, instance: Any = None) -> str:
    text, old, new = _text(text), _text(old), _text(new)
    if instance is None:
        return text.replace(old, new)
    index = -1
    for _ in range(int(_number(instance))):
        index = text.find(old, index + 1)
        if index < 0:
            return text
    return text[:index] + new + text[index + len(old):]


def _find(needle: Any, haystack: Any, start: Any = 1) -> int:
    index = _text(haystack).find(_text(needle), int(_number(start)) - 1)
    if index < 0:
        raise ValueError(f"#VALUE! {_text(needle)!r} not found")
    return index + 1


def _textjoin(delimiter: Any, ignore_empty: Any, *args: Any) -> str:
    values = [_text(v) for v in _flatten(args)]
    if ignore_empty:
        values = [v for v in values if v != ""]
    return _text(delimiter).join(values)


def _average(*args: Any) -> float:
    values = _numbers(args)
    if not values:
        raise ZeroDivisionError("#DIV/0! AVERAGE of no values")
    return sum(values) / len(values)


def _round(value: Any, digits: Any = 0) -> float:
    quantum = Decimal(1).scaleb(-int(_number(digits)))
    return float(Decimal(str(_number(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def _if(condition: Any, when_true: Any = True, when_false: Any = False) -> Any:
    return when_true if condition else when_false


FUNCTIONS: dict[str, Callable[..., Any]] = {
    "CONCATENATE": _concatenate,
    "CONCAT": _concatenate,
    "UPPER": lambda text: _text(text).upper(),
    "LOWER": lambda text: _text(text).lower(),
    "PROPER": lambda text: _text(text).title(),
    "TRIM": lambda text: " ".join(_text(text).split()),
    "LEN": lambda text: len(_text(text)),
    "LEFT": _left,
    "RIGHT": _right,
    "MID": _mid,
    "REPT": lambda text, count: _text(text) * int(_number(count)),
    "SUBSTITUTE": _substitute,
    "EXACT": lambda a, b: _text(a) == _text(b),
    "FIND": _find,
    "TEXTJOIN": _textjoin,
    "VALUE": _number,
    "SUM": lambda *args: sum(_numbers(args)),
    "AVERAGE": _average,
    "MIN": lambda *args: min(_numbers(args), default=0),
    "MAX": lambda *args: max(_numbers(args), default=0),
    "ROUND": _round,
    "ABS": lambda value: abs(_number(value)),
    "IF": _if,
    "AND": lambda *args: all(_flatten(args)),
    "OR": lambda *args: any(_flatten(args)),
    "NOT": lambda value: not value,
}

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "=": lambda a, b: a == b,
    "<>": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
}


# ── Parser ────────────────────────────────────────────────────────────────────


class _Parser:
    """Evaluates while parsing; one instance per evaluation."""

    def __init__(self, tokens: list[Token], scope: Mapping[str, Any]):
        self.tokens = tokens
        self.scope = scope
        self.index = 0

    def peek(self) -> Optional[Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def advance(self) -> Token:
        token = self.peek()
        if token is None:
            raise ExpressionSyntaxError("Unexpected end of formula")
        self.index += 1
        return token

    def accept(self, kind: str, *texts: str) -> Optional[Token]:
        token = self.peek()
        if token is not None and token.kind == kind and (not texts or token.text in texts):
            self.index += 1
            return token
        return None

    def expect(self, kind: str, text: str) -> Token:
        token = self.accept(kind, text)
        if token is None:
            found = self.peek()
            where = f"{found.text!r} at position {found.position}" if found else "end of formula"
            raise ExpressionSyntaxError(f"Expected {text!r} but found {where}")
        return token

    def parse(self) -> Any:
        if not self.tokens:
            raise ExpressionSyntaxError("Empty formula")
        value = self.comparison()
        token = self.peek()
        if token is not None:
            raise ExpressionSyntaxError(
                f"Unexpected token {token.text!r} at position {token.position}"
            )
        return value

    def comparison(self) -> Any:
        left = self.concat()
        while (op := self.accept("op", *_COMPARISONS)) is not None:
            left = _COMPARISONS[op.text](left, self.concat())
        return left

    def concat(self) -> Any:
        left = self.additive()
        while self.accept("op", "&"):
            left = _text(left) + _text(self.additive())
        return left

    def additive(self) -> Any:
        left = self.term()
        while (op := self.accept("op", "+", "-")) is not None:
            right = self.term()
            left = _number(left) + _number(right) if op.text == "+" else _number(left) - _number(right)
        return left

    def term(self) -> Any:
        left = self.power()
        while (op := self.accept("op", "*", "/")) is not None:
            right = self.power()
            if op.text == "*":
                left = _number(left) * _number(right)
            else:
                if _number(right) == 0:
                    raise ZeroDivisionError("#DIV/0! division by zero")
                left = _number(left) / _number(right)
        return left

    def power(self) -> Any:
        left = self.unary()
        while self.accept("op", "^"):
            left = guarded_power(_number(left), _number(self.unary()))
        return left

    def unary(self) -> Any:
        op = self.accept("op", "+", "-")
        if op is not None:
            value = _number(self.unary())
            return -value if op.text == "-" else value
        return self.postfix()

    def postfix(self) -> Any:
        value = self.primary()
        if self.accept("op", "%"):
            value = _number(value) / 100
        return value

    def primary(self) -> Any:
        token = self.advance()

        if token.kind == "number":
            return normalize_number(float(token.text))

        if token.kind == "string":
            quote = token.text[0]
            return token.text[1:-1].replace(quote * 2, quote)

        if token.kind == "lparen":
            value = self.comparison()
            self.expect("rparen", ")")
            return value

        if token.kind == "name":
            if self.accept("lparen"):
                return self.call(token)
            upper = token.text.upper()
            if upper in ("TRUE", "FALSE"):
                return upper == "TRUE"
            value = lookup_path(self.scope, token.text)
            if value is None and token.text.split(".")[0] not in self.scope:
                return token.text
            return value

        raise ExpressionSyntaxError(
            f"Unexpected token {token.text!r} at position {token.position}"
        )

    def call(self, name: Token) -> Any:
        args: list[Any] = []
        if not self.accept("rparen"):
            args.append(self.comparison())
            while self.accept("comma"):
                args.append(self.comparison())
            self.expect("rparen", ")")

        fn = FUNCTIONS.get(name.text.upper())
        if fn is None:
            raise NameError(f"#NAME? unknown function {name.text}")
        return fn(*args)


class FormulaEngine(ExpressionEngine):
    """Spreadsheet-style text and number functions."""

    name = "formula.js"
    description = "Spreadsheet functions such as CONCATENATE, SUM and IF"

    def evaluate(self, expression: str, scope: Mapping[str, Any]) -> Any:
        tokens = tokenize(expression.strip())
        return normalize_number(_Parser(tokens, scope).parse())
