"""Pluggable expression engines and the registry that dispatches to them."""

from calcflow.expressions.engines.base import ExpressionEngine, normalize_number
from calcflow.expressions.engines.formula_engine import FormulaEngine
from calcflow.expressions.engines.math_engine import MathEngine
from calcflow.expressions.engines.registry import EvaluationResult, ExpressionEngineRegistry


def default_registry() -> ExpressionEngineRegistry:
    """Registry with the built-in ``math.js`` and ``formula.js`` engines."""
    registry = ExpressionEngineRegistry()
    registry.register(MathEngine())
    registry.register(FormulaEngine())
    return registry


__all__ = [
    "ExpressionEngine",
    "ExpressionEngineRegistry",
    "EvaluationResult",
    "MathEngine",
    "FormulaEngine",
    "default_registry",
    "normalize_number",
]
