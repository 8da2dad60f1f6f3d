"""calcflow.expressions — placeholder resolution, variable namespace, engines."""

from calcflow.expressions.engines import (
    EvaluationResult,
    ExpressionEngine,
    ExpressionEngineRegistry,
    default_registry,
)
from calcflow.expressions.namespace import (
    CONTEXT_KEY,
    JOBS_KEY,
    SYSTEM_KEY,
    Namespace,
    SystemVariables,
    build_namespace,
    scoped_namespace,
)
from calcflow.expressions.template import SubstitutionMode, resolve, resolve_value

__all__ = [
    "CONTEXT_KEY", "JOBS_KEY", "SYSTEM_KEY",
    "Namespace", "SystemVariables", "build_namespace", "scoped_namespace",
    "SubstitutionMode", "resolve", "resolve_value",
    "EvaluationResult", "ExpressionEngine", "ExpressionEngineRegistry",
    "default_registry",
]
