"""Instruction interface, per-node run context and the instruction registry.

An instruction is the behaviour behind a node ``type``.  The processor hands
each instruction the node, the node's read-only variable namespace and an
``InstructionContext``; the instruction returns a ``JobResult``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from calcflow.exceptions import InstructionNotFound
from calcflow.expressions.namespace import Namespace
from calcflow.types import Execution, JobResult, Node

if TYPE_CHECKING:
    from calcflow.collections.manager import CollectionManager
    from calcflow.config import CalcflowConfig


@dataclass
class InstructionContext:
    """Everything an instruction may read besides its namespace."""
    execution: Execution
    upstream_results: dict[str, Any] = field(default_factory=dict)   # parent key → result
    collections: Optional["CollectionManager"] = None
    config: Optional["CalcflowConfig"] = None


class Instruction(ABC):
    """Behaviour of one node type."""

    type: str = ""
    description: str = ""

    @abstractmethod
    async def run(
        self, node: Node, namespace: Namespace, context: InstructionContext
    ) -> JobResult:
        """Produce the job result for *node*.  Must not mutate *namespace*."""

    def validate_config(self, config: dict[str, Any]) -> None:
        """Reject a node config at authoring time.  Default: accept anything."""
        return None


class InstructionRegistry:
    """Maps node type tags to instructions."""

    def __init__(self):
        self._instructions: dict[str, Instruction] = {}

    def register(self, instruction: Instruction) -> None:
        self._instructions[instruction.type] = instruction

    def get(self, instruction_type: str) -> Instruction:
        """Get the instruction for a node type.

        Raises:
            InstructionNotFound: if no instruction is registered for the type.
        """
        if instruction_type not in self._instructions:
            raise InstructionNotFound(
                f"Instruction '{instruction_type}' not found in registry",
                instruction_type=instruction_type,
            )
        return self._instructions[instruction_type]

    def list_types(self) -> list[str]:
        return sorted(self._instructions)

    def __contains__(self, instruction_type: object) -> bool:
        return instruction_type in self._instructions
