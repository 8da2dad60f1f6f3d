"""
Calculation instruction — evaluates an expression and records the value.

Two configuration shapes::

    # static: the expression lives in the node config
    {"engine": "math.js", "expression": "{{$context.data.read}} + 1"}

    # dynamic: engine + expression are read from data at run time
    {"dynamic": "{{$context.data.category}}", "scope": "{{$context.data}}"}

Static mode resolves placeholders against the node namespace, then hands the
text to the engine.  When the whole expression is a single placeholder its
value is returned as is instead of being stringified, so
``{{$system.now}}`` evaluates to the timestamp string itself.

Dynamic mode resolves ``dynamic`` to ``{"engine": ..., "expression": ...}``
and ``scope`` to a mapping, then runs static mode on that expression with
placeholders resolved against the scope (``{{read}}`` means ``scope.read``).

Nothing raised while resolving or evaluating leaves :func:`calculate`; every
failure becomes an error ``JobResult`` whose result is ``"<Kind>: <message>"``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from calcflow.exceptions import DynamicSourceError, ExpressionError, WorkflowValidationError
from calcflow.expressions.engines import ExpressionEngineRegistry
from calcflow.expressions.namespace import Namespace, scoped_namespace, thaw
from calcflow.expressions.template import SubstitutionMode, resolve, single_placeholder
from calcflow.instructions.base import Instruction, InstructionContext
from calcflow.types import JobResult, JobStatus, Node

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "math.js"


class StaticCalculation(BaseModel):
    engine: str = DEFAULT_ENGINE
    expression: str

    def produce_job_result(
        self, namespace: Mapping[str, Any], engines: ExpressionEngineRegistry
    ) -> JobResult:
        if single_placeholder(self.expression) is not None:
            engines.get(self.engine)  # raises EngineNotFound
            return JobResult.resolved(
                thaw(resolve(self.expression, namespace, SubstitutionMode.PRESERVE))
            )

        quote_aware = engines.get(self.engine).quote_aware if self.engine in engines else False
        text = resolve(self.expression, namespace, quote_aware=quote_aware)
        outcome = engines.evaluate(self.engine, text, {})
        if outcome.ok:
            return JobResult.resolved(outcome.value)
        return JobResult.error(outcome.error)


class DynamicCalculation(BaseModel):
    dynamic: Any
    scope: Any = None

    def produce_job_result(
        self, namespace: Mapping[str, Any], engines: ExpressionEngineRegistry
    ) -> JobResult:
        source = _resolve_source(self.dynamic, namespace)
        if isinstance(source, (list, tuple)) and len(source) == 1:
            source = source[0]
        if not isinstance(source, Mapping):
            raise DynamicSourceError(
                f"dynamic expression must resolve to an object, got {type(source).__name__}"
            )

        expression = source.get("expression")
        if not isinstance(expression, str):
            raise DynamicSourceError("dynamic expression source has no 'expression' text")
        engine = source.get("engine") or DEFAULT_ENGINE
        if not isinstance(engine, str):
            raise DynamicSourceError("dynamic expression source has an invalid 'engine'")

        scope = _resolve_source(self.scope, namespace)
        if scope is None:
            scope = {}
        if not isinstance(scope, Mapping):
            raise DynamicSourceError(
                f"dynamic expression scope must resolve to an object, got {type(scope).__name__}"
            )

        static = StaticCalculation(engine=engine, expression=expression)
        return static.produce_job_result(scoped_namespace(scope), engines)


CalculationMode = Union[StaticCalculation, DynamicCalculation]


def _resolve_source(value: Any, namespace: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return resolve(value, namespace, SubstitutionMode.PRESERVE)
    return value


def parse_calculation_config(
    config: Mapping[str, Any], default_engine: str = DEFAULT_ENGINE
) -> CalculationMode:
    """Select static or dynamic mode from a node config.

    Raises:
        WorkflowValidationError: if the config matches neither shape.
    """
    try:
        if "dynamic" in config:
            return DynamicCalculation(dynamic=config["dynamic"], scope=config.get("scope"))
        if "expression" in config:
            return StaticCalculation(
                engine=config.get("engine") or default_engine,
                expression=config["expression"],
            )
    except ValidationError as exc:
        raise WorkflowValidationError(
            "Invalid calculation config",
            violations=[err["msg"] for err in exc.errors()],
        ) from exc

    raise WorkflowValidationError(
        "Calculation config needs either 'expression' or 'dynamic'",
        violations=["missing expression"],
    )


def calculate(
    config: Mapping[str, Any],
    namespace: Mapping[str, Any],
    engines: ExpressionEngineRegistry,
    default_engine: str = DEFAULT_ENGINE,
) -> JobResult:
    """Run one calculation synchronously.  Never raises."""
    try:
        mode = parse_calculation_config(config, default_engine)
    except WorkflowValidationError as exc:
        return JobResult(status=JobStatus.FAILED, result=f"ConfigError: {exc}")

    try:
        return mode.produce_job_result(namespace, engines)
    except ExpressionError as exc:
        logger.debug(f"[Calculation] {exc}")
        return JobResult.error(exc)


class CalculationInstruction(Instruction):
    type = "calculation"
    description = "Evaluate an expression with a registered engine"

    def __init__(self, engines: ExpressionEngineRegistry, default_engine: Optional[str] = None):
        self.engines = engines
        self.default_engine = default_engine or DEFAULT_ENGINE

    async def run(
        self, node: Node, namespace: Namespace, context: InstructionContext
    ) -> JobResult:
        return calculate(node.config, namespace, self.engines, self.default_engine)

    def validate_config(self, config: dict[str, Any]) -> None:
        mode = parse_calculation_config(config, self.default_engine)
        if isinstance(mode, StaticCalculation) and mode.engine not in self.engines:
            raise WorkflowValidationError(
                f"Expression engine '{mode.engine}' is not registered",
                violations=[f"unknown engine: {mode.engine}"],
            )
