"""Central registry of all available expression engines."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Optional

from calcflow.exceptions import (
    EngineNotFound,
    ExpressionError,
    ExpressionRuntimeError,
    ExpressionSyntaxError,
)

from .base import ExpressionEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of one evaluation: either ``value`` or ``error`` is meaningful."""
    value: Any = None
    error: Optional[ExpressionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ExpressionEngineRegistry:
    """Maps engine identifiers (``"math.js"``, ``"formula.js"``) to engines."""

    def __init__(self):
        self._engines: dict[str, ExpressionEngine] = {}

    def register(self, engine: ExpressionEngine) -> None:
        """Register *engine* under its ``name``.  Re-registering replaces it."""
        self._engines[engine.name] = engine

    def get(self, engine_id: str) -> ExpressionEngine:
        """Get engine by identifier.

        Raises:
            EngineNotFound: if no engine is registered under *engine_id*.
        """
        if engine_id not in self._engines:
            raise EngineNotFound(
                f"Expression engine '{engine_id}' is not registered", engine_id=engine_id
            )
        return self._engines[engine_id]

    def list_engines(self) -> list[ExpressionEngine]:
        return list(self._engines.values())

    def __contains__(self, engine_id: object) -> bool:
        return engine_id in self._engines

    def evaluate(
        self,
        engine_id: str,
        expression: str,
        scope: Optional[Mapping[str, Any]] = None,
    ) -> EvaluationResult:
        """Evaluate *expression* with the engine registered as *engine_id*.

        Never raises.  Parse failures come back as ``ExpressionSyntaxError``,
        anything the evaluator raises as ``ExpressionRuntimeError`` tagged with
        the original exception's class name.
        """
        try:
            engine = self.get(engine_id)
        except EngineNotFound as exc:
            return EvaluationResult(error=exc)

        view = MappingProxyType(dict(scope or {}))
        try:
            value = engine.evaluate(expression, view)
        except ExpressionError as exc:
            error = exc
        except SyntaxError as exc:
            error = ExpressionSyntaxError(exc.msg or str(exc))
        except RecursionError:
            error = ExpressionRuntimeError("Expression is nested too deeply", kind="RecursionError")
        except Exception as exc:
            error = ExpressionRuntimeError(str(exc), kind=type(exc).__name__)
        else:
            return EvaluationResult(value=value)

        logger.debug(f"[Engines] {engine_id} failed on {expression!r}: {error}")
        return EvaluationResult(error=error)
