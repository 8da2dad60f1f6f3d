"""All ORM models. These map 1:1 to the Pydantic types but are SQLAlchemy models.

Tables: workflows, workflow_nodes, executions, jobs, collection_records
Jobs and records use integer autoincrement ids so id order is insertion order.
"""

from sqlalchemy import Column, String, Integer, DateTime, JSON, Boolean, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase
from datetime import datetime, timezone
import uuid


class Base(DeclarativeBase):
    pass


class WorkflowModel(Base):
    __tablename__ = "workflows"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    enabled = Column(Boolean, default=False)
    type = Column(String, nullable=False, default="collection")   # TriggerType value
    config = Column(JSON, default=dict)                          # {"collection", "mode", ...}
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_workflow_type_enabled", "type", "enabled"),)


class NodeModel(Base):
    __tablename__ = "workflow_nodes"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    key = Column(String, nullable=False)
    type = Column(String, nullable=False)
    title = Column(Text, default="")
    config = Column(JSON, default=dict)
    upstream_ids = Column(JSON, default=list)
    downstream_ids = Column(JSON, default=list)
    position = Column(Integer, default=0)            # creation order inside the workflow

    __table_args__ = (UniqueConstraint("workflow_id", "key", name="uq_node_workflow_key"),)


class ExecutionModel(Base):
    __tablename__ = "executions"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False, index=True)
    context = Column(JSON, default=dict)
    status = Column(String, default="started")       # ExecutionStatus value
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_execution_workflow_created", "workflow_id", "created_at"),)


class JobModel(Base):
    __tablename__ = "jobs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String, ForeignKey("executions.id"), nullable=False, index=True)
    node_id = Column(String, nullable=False)
    node_key = Column(String, nullable=False)
    status = Column(String, default="pending")       # JobStatus value
    result = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class RecordModel(Base):
    __tablename__ = "collection_records"
    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String, nullable=False, index=True)
    data = Column(JSON, default=dict)                 # field values, without id
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
