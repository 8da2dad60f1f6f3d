"""calcflow.instructions — node behaviours run by the processor."""

from typing import Optional

from calcflow.expressions.engines import ExpressionEngineRegistry, default_registry
from calcflow.instructions.base import Instruction, InstructionContext, InstructionRegistry
from calcflow.instructions.calculation import CalculationInstruction, calculate
from calcflow.instructions.echo import EchoInstruction
from calcflow.instructions.query import QueryInstruction


def default_instructions(
    engines: Optional[ExpressionEngineRegistry] = None,
    default_engine: Optional[str] = None,
) -> InstructionRegistry:
    """Registry with ``calculation``, ``echo`` and ``query``."""
    registry = InstructionRegistry()
    registry.register(CalculationInstruction(engines or default_registry(), default_engine))
    registry.register(EchoInstruction())
    registry.register(QueryInstruction())
    return registry


__all__ = [
    "Instruction",
    "InstructionContext",
    "InstructionRegistry",
    "CalculationInstruction",
    "EchoInstruction",
    "QueryInstruction",
    "calculate",
    "default_instructions",
]
