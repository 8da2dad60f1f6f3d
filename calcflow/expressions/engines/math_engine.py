"""
``math.js`` — algebraic expression engine.

Parses with the stdlib ``ast`` module and evaluates a whitelisted subset of
node types.  Never calls eval().

Supported syntax:
  - Literals: numbers, "strings", true, false, null, [lists]
  - Arithmetic: + - * / % and ^ (power, same as **)
  - Comparisons: == != < <= > >=
  - Boolean: and, or, not
  - Variables from the scope, with dotted access into nested objects
  - Functions: abs sqrt pow exp log log10 log2 sin cos tan floor ceil round
    min max sum mean mod
  - Constants: pi, e
"""

from __future__ import annotations

import ast
import math
import operator
import re
from collections.abc import Mapping
from typing import Any

from calcflow.exceptions import ExpressionSyntaxError

from .base import ExpressionEngine, guarded_power, normalize_number

_QUOTED_OR_CARET = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"|\^")


def _log(x: float, base: float = math.e) -> float:
    return math.log(x, base)


def _round(x: float, digits: int = 0) -> float:
    return round(x, int(digits))


def _flatten(args: tuple) -> list:
    values: list = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            values.extend(_flatten(tuple(arg)))
        else:
            values.append(arg)
    return values


def _sum(*args: Any) -> Any:
    return sum(_flatten(args))


def _mean(*args: Any) -> float:
    values = _flatten(args)
    if not values:
        raise ValueError("mean() requires at least one value")
    return sum(values) / len(values)


def _min(*args: Any) -> Any:
    return min(_flatten(args))


def _max(*args: Any) -> Any:
    return max(_flatten(args))


FUNCTIONS: dict[str, Any] = {
    "abs": abs,
    "sqrt": math.sqrt,
    "pow": guarded_power,
    "exp": math.exp,
    "log": _log,
    "log10": math.log10,
    "log2": math.log2,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "floor": math.floor,
    "ceil": math.ceil,
    "round": _round,
    "min": _min,
    "max": _max,
    "sum": _sum,
    "mean": _mean,
    "mod": operator.mod,
}

CONSTANTS: dict[str, Any] = {
    "pi": math.pi,
    "e": math.e,
    "true": True,
    "false": False,
    "null": None,
}

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: guarded_power,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}


def _translate(expression: str) -> str:
    """Rewrite ``^`` to ``**`` outside string literals."""
    return _QUOTED_OR_CARET.sub(
        lambda m: "**" if m.group(0) == "^" else m.group(0), expression
    )


class MathEngine(ExpressionEngine):
    """Algebraic evaluator: numbers, booleans and variables from the scope."""

    name = "math.js"
    description = "Arithmetic and boolean expressions with math functions"

    def evaluate(self, expression: str, scope: Mapping[str, Any]) -> Any:
        tree = ast.parse(_translate(expression.strip()), mode="eval")
        return normalize_number(self._eval(tree.body, scope))

    def _eval(self, node: ast.expr, scope: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, (int, float, str, bool)) or node.value is None:
                return node.value
            raise ExpressionSyntaxError(f"Unsupported literal {node.value!r}")

        if isinstance(node, ast.Name):
            if node.id in scope:
                return scope[node.id]
            if node.id in CONSTANTS:
                return CONSTANTS[node.id]
            raise NameError(f"Undefined symbol {node.id}")

        if isinstance(node, ast.Attribute):
            base = self._eval(node.value, scope)
            if isinstance(base, Mapping):
                return base.get(node.attr)
            raise TypeError(f"Cannot read property '{node.attr}' of {type(base).__name__}")

        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            left = self._eval(node.left, scope)
            right = self._eval(node.right, scope)
            return _BINARY_OPS[type(node.op)](left, right)

        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, scope))

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self._eval(v, scope) for v in node.values)
            return any(self._eval(v, scope) for v in node.values)

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, scope)
            for op, comparator in zip(node.ops, node.comparators):
                if type(op) not in _COMPARE_OPS:
                    raise ExpressionSyntaxError(f"Unsupported operator {type(op).__name__}")
                right = self._eval(comparator, scope)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.keywords:
                raise ExpressionSyntaxError("Only plain function calls are allowed")
            fn = FUNCTIONS.get(node.func.id)
            if fn is None:
                raise NameError(f"Undefined function {node.func.id}")
            return fn(*(self._eval(arg, scope) for arg in node.args))

        if isinstance(node, (ast.List, ast.Tuple)):
            return [self._eval(el, scope) for el in node.elts]

        raise ExpressionSyntaxError(
            f"Unsupported expression element '{type(node).__name__}'"
        )
