"""Callback/hook system for processor lifecycle events."""

from calcflow.callbacks.base import BaseCallback, CalcflowCallback
from calcflow.callbacks.logging import LoggingCallback

__all__ = ["CalcflowCallback", "BaseCallback", "LoggingCallback"]
