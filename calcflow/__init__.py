"""calcflow — workflow execution with expression-driven calculation nodes.

Usage:
    from calcflow import build_runtime

    rt = build_runtime(session)
    rt.collections.define("posts", {"read": 0})
    wf = await rt.workflows.create("demo", config={"collection": "posts", "mode": 1}, enabled=True)
    await rt.workflows.create_node(wf.id, "calculation", {"expression": "{{$context.data.read}} + 1"})
    await rt.collections.create("posts", {"title": "t1"})
"""

from calcflow.types import (
    Workflow, Node, Execution, Job, JobResult, CollectionRecord,
    JobStatus, ExecutionStatus, TriggerType, CollectionMode,
)
from calcflow.exceptions import (
    CalcflowError, WorkflowError, WorkflowNotFound, WorkflowValidationError,
    NodeNotFound, InstructionNotFound, ExpressionError, ExpressionSyntaxError,
    ExpressionRuntimeError, EngineNotFound, DynamicSourceError,
    CollectionError, CollectionNotFound, RecordNotFound, TriggerError,
)
from calcflow.runtime import Runtime, build_runtime
from calcflow.version import __version__

__all__ = [
    "Workflow", "Node", "Execution", "Job", "JobResult", "CollectionRecord",
    "JobStatus", "ExecutionStatus", "TriggerType", "CollectionMode",
    "CalcflowError", "WorkflowError", "WorkflowNotFound", "WorkflowValidationError",
    "NodeNotFound", "InstructionNotFound", "ExpressionError", "ExpressionSyntaxError",
    "ExpressionRuntimeError", "EngineNotFound", "DynamicSourceError",
    "CollectionError", "CollectionNotFound", "RecordNotFound", "TriggerError",
    "Runtime", "build_runtime",
    "__version__",
]
