"""Echo instruction: passes a value through unchanged."""

from __future__ import annotations

from calcflow.expressions.namespace import Namespace, thaw
from calcflow.expressions.template import resolve_value
from calcflow.instructions.base import Instruction, InstructionContext
from calcflow.types import JobResult, Node


class EchoInstruction(Instruction):
    """Result is ``config.value`` (placeholders resolved), else the single
    upstream result, else the execution context."""

    type = "echo"
    description = "Pass a value, the upstream result or the trigger context through"

    async def run(
        self, node: Node, namespace: Namespace, context: InstructionContext
    ) -> JobResult:
        if "value" in node.config:
            return JobResult.resolved(thaw(resolve_value(node.config["value"], namespace)))
        if len(context.upstream_results) == 1:
            (result,) = context.upstream_results.values()
            return JobResult.resolved(result)
        return JobResult.resolved(thaw(context.execution.context))
