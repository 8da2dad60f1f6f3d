"""Expression engine interface."""

import operator
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

# Largest exponent accepted by ^ / ** / pow
MAX_EXPONENT = 1024


def guarded_power(base: Any, exponent: Any) -> Any:
    """``base ** exponent``, refusing exponents above :data:`MAX_EXPONENT`."""
    if isinstance(exponent, (int, float)) and abs(exponent) > MAX_EXPONENT:
        raise OverflowError(f"Exponent {exponent} exceeds limit of {MAX_EXPONENT}")
    return operator.pow(base, exponent)


def normalize_number(value: Any) -> Any:
    """Collapse integral floats to ``int`` (``2.0`` → ``2``); leave everything else."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class ExpressionEngine(ABC):
    """A pure evaluator keyed by ``name`` in the engine registry.

    ``quote_aware`` tells the template resolver that this engine's tokenizer
    treats quoted literals as opaque, so placeholders inside them are left
    alone.
    """

    name: str = ""
    description: str = ""
    quote_aware: bool = True

    @abstractmethod
    def evaluate(self, expression: str, scope: Mapping[str, Any]) -> Any:
        """Evaluate *expression* against read-only *scope*.

        Implementations may raise any exception; the registry converts it
        into a typed ``ExpressionError``.
        """
