"""calcflow.workflows — DAG utilities, authoring operations and the processor."""

from .manager import WorkflowManager
from .processor import Processor

__all__ = ["WorkflowManager", "Processor"]
