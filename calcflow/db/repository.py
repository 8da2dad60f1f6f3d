"""Data access layer.

This is the ONLY layer that talks to the database.
Methods take and return the Pydantic types from ``calcflow.types``.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from calcflow.db.models import ExecutionModel, JobModel, NodeModel, RecordModel, WorkflowModel
from calcflow.types import (
    CollectionRecord, Execution, ExecutionStatus, Job, JobStatus, Node, TriggerType, Workflow,
)


def _json_safe(value: Any) -> Any:
    """Round-trip through JSON so only plain JSON values reach a JSON column."""
    return json.loads(json.dumps(value, default=str))


class Repository:
    """All database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Workflows ──

    @staticmethod
    def _model_to_workflow(m: WorkflowModel, nodes: list[Node] = None) -> Workflow:
        return Workflow(
            id=m.id,
            title=m.title,
            enabled=bool(m.enabled),
            type=TriggerType(m.type),
            config=m.config or {},
            nodes=nodes or [],
            created_at=m.created_at,
        )

    async def create_workflow(self, workflow: Workflow) -> Workflow:
        """Persist a new workflow (nodes are saved separately)."""
        record = WorkflowModel(
            id=workflow.id,
            title=workflow.title,
            enabled=workflow.enabled,
            type=workflow.type.value,
            config=_json_safe(workflow.config),
            created_at=workflow.created_at,
            updated_at=workflow.created_at,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_workflow(record)

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Get a workflow with its nodes in creation order."""
        result = await self.session.execute(
            select(WorkflowModel).where(WorkflowModel.id == workflow_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        return self._model_to_workflow(record, await self.list_nodes(workflow_id))

    async def list_workflows(
        self,
        workflow_type: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> list[Workflow]:
        """List workflows, oldest first, each with its nodes."""
        query = select(WorkflowModel)
        if workflow_type is not None:
            query = query.where(WorkflowModel.type == workflow_type)
        if enabled is not None:
            query = query.where(WorkflowModel.enabled == enabled)
        query = query.order_by(WorkflowModel.created_at)
        result = await self.session.execute(query)
        return [
            self._model_to_workflow(m, await self.list_nodes(m.id))
            for m in result.scalars().all()
        ]

    async def update_workflow(self, workflow_id: str, updates: dict) -> Optional[Workflow]:
        """Apply partial updates to a workflow."""
        allowed = {"title", "enabled", "config"}
        bad = set(updates) - allowed
        if bad:
            raise ValueError(f"Unknown workflow update keys: {bad}")
        result = await self.session.execute(
            select(WorkflowModel).where(WorkflowModel.id == workflow_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        for key, value in updates.items():
            setattr(record, key, _json_safe(value) if key == "config" else value)
        record.updated_at = datetime.now(timezone.utc)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_workflow(record, await self.list_nodes(workflow_id))

    # ── Nodes ──

    @staticmethod
    def _model_to_node(m: NodeModel) -> Node:
        return Node(
            id=m.id,
            workflow_id=m.workflow_id,
            key=m.key,
            type=m.type,
            title=m.title or "",
            config=m.config or {},
            upstream_ids=list(m.upstream_ids or []),
            downstream_ids=list(m.downstream_ids or []),
        )

    async def create_node(self, node: Node) -> Node:
        """Persist a node at the end of its workflow's creation order."""
        existing = await self.list_nodes(node.workflow_id)
        record = NodeModel(
            id=node.id,
            workflow_id=node.workflow_id,
            key=node.key,
            type=node.type,
            title=node.title,
            config=_json_safe(node.config),
            upstream_ids=list(node.upstream_ids),
            downstream_ids=list(node.downstream_ids),
            position=len(existing),
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_node(record)

    async def get_node(self, node_id: str) -> Optional[Node]:
        result = await self.session.execute(select(NodeModel).where(NodeModel.id == node_id))
        record = result.scalar_one_or_none()
        return self._model_to_node(record) if record else None

    async def list_nodes(self, workflow_id: str) -> list[Node]:
        result = await self.session.execute(
            select(NodeModel)
            .where(NodeModel.workflow_id == workflow_id)
            .order_by(NodeModel.position)
        )
        return [self._model_to_node(m) for m in result.scalars().all()]

    async def update_node(self, node_id: str, updates: dict) -> Optional[Node]:
        """Apply partial updates to a node.  ``key`` is immutable."""
        allowed = {"title", "config", "upstream_ids", "downstream_ids"}
        bad = set(updates) - allowed
        if bad:
            raise ValueError(f"Unknown node update keys: {bad}")
        result = await self.session.execute(select(NodeModel).where(NodeModel.id == node_id))
        record = result.scalar_one_or_none()
        if record is None:
            return None
        for key, value in updates.items():
            setattr(record, key, _json_safe(value))
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_node(record)

    # ── Executions ──

    @staticmethod
    def _model_to_execution(m: ExecutionModel, jobs: list[Job] = None) -> Execution:
        return Execution(
            id=m.id,
            workflow_id=m.workflow_id,
            context=m.context or {},
            status=ExecutionStatus(m.status),
            jobs=jobs or [],
            created_at=m.created_at,
            completed_at=m.completed_at,
        )

    async def create_execution(self, execution: Execution) -> Execution:
        """Persist a new execution with its context snapshot."""
        record = ExecutionModel(
            id=execution.id,
            workflow_id=execution.workflow_id,
            context=_json_safe(execution.context),
            status=execution.status.value,
            created_at=execution.created_at,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_execution(record)

    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Fetch an execution together with its jobs."""
        result = await self.session.execute(
            select(ExecutionModel).where(ExecutionModel.id == execution_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        return self._model_to_execution(record, await self.list_jobs(execution_id))

    async def update_execution(self, execution_id: str, updates: dict) -> Optional[Execution]:
        """Apply partial updates to an execution row."""
        result = await self.session.execute(
            select(ExecutionModel).where(ExecutionModel.id == execution_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        for key, value in updates.items():
            if hasattr(record, key):
                setattr(record, key, getattr(value, "value", value))
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_execution(record, await self.list_jobs(execution_id))

    async def list_executions(self, workflow_id: str) -> list[Execution]:
        """List executions of a workflow, oldest first."""
        result = await self.session.execute(
            select(ExecutionModel)
            .where(ExecutionModel.workflow_id == workflow_id)
            .order_by(ExecutionModel.created_at)
        )
        return [
            self._model_to_execution(m, await self.list_jobs(m.id))
            for m in result.scalars().all()
        ]

    # ── Jobs ──

    @staticmethod
    def _model_to_job(m: JobModel) -> Job:
        return Job(
            id=m.id,
            execution_id=m.execution_id,
            node_id=m.node_id,
            node_key=m.node_key,
            status=JobStatus(m.status),
            result=m.result,
            created_at=m.created_at,
        )

    async def create_job(self, job: Job) -> Job:
        """Persist a job; the returned copy carries the assigned id."""
        record = JobModel(
            execution_id=job.execution_id,
            node_id=job.node_id,
            node_key=job.node_key,
            status=job.status.value,
            result=_json_safe(job.result),
            created_at=job.created_at,
        )
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_job(record)

    async def list_jobs(self, execution_id: str) -> list[Job]:
        """Jobs of an execution in insertion order."""
        result = await self.session.execute(
            select(JobModel)
            .where(JobModel.execution_id == execution_id)
            .order_by(JobModel.id)
        )
        return [self._model_to_job(m) for m in result.scalars().all()]

    # ── Collection records ──

    @staticmethod
    def _model_to_record(m: RecordModel) -> CollectionRecord:
        return CollectionRecord(
            id=m.id,
            collection=m.collection,
            values=m.data or {},
            created_at=m.created_at,
        )

    async def create_record(self, collection: str, values: dict) -> CollectionRecord:
        record = RecordModel(collection=collection, data=_json_safe(values))
        self.session.add(record)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_record(record)

    async def _get_record_model(self, collection: str, record_id: int) -> Optional[RecordModel]:
        result = await self.session.execute(
            select(RecordModel).where(
                RecordModel.collection == collection,
                RecordModel.id == record_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_record(self, collection: str, record_id: int) -> Optional[CollectionRecord]:
        record = await self._get_record_model(collection, record_id)
        return self._model_to_record(record) if record else None

    async def update_record(
        self, collection: str, record_id: int, values: dict
    ) -> Optional[CollectionRecord]:
        """Merge *values* into a record's fields."""
        record = await self._get_record_model(collection, record_id)
        if record is None:
            return None
        record.data = {**(record.data or {}), **_json_safe(values)}
        record.updated_at = datetime.now(timezone.utc)
        await self.session.commit()
        await self.session.refresh(record)
        return self._model_to_record(record)

    async def delete_record(self, collection: str, record_id: int) -> bool:
        record = await self._get_record_model(collection, record_id)
        if record is None:
            return False
        await self.session.delete(record)
        await self.session.commit()
        return True

    async def list_records(self, collection: str) -> list[CollectionRecord]:
        """All records of a collection in id order."""
        result = await self.session.execute(
            select(RecordModel)
            .where(RecordModel.collection == collection)
            .order_by(RecordModel.id)
        )
        return [self._model_to_record(m) for m in result.scalars().all()]
