"""calcflow.db — SQLAlchemy models, session factory and the repository."""

from calcflow.db.models import (
    Base, ExecutionModel, JobModel, NodeModel, RecordModel, WorkflowModel,
)
from calcflow.db.repository import Repository

__all__ = [
    "Base", "WorkflowModel", "NodeModel", "ExecutionModel", "JobModel", "RecordModel",
    "Repository",
]
