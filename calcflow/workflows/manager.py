"""
WorkflowManager — authoring operations on workflows and their nodes.

Creates workflows and nodes, links nodes into a DAG, toggles ``enabled`` and
reads back executions and jobs.  Every structural edit is validated before it
is persisted: node types must be registered, node keys are unique within a
workflow and links must keep the graph acyclic.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Optional

from calcflow.config import CalcflowConfig, WorkflowYAML
from calcflow.db.repository import Repository
from calcflow.exceptions import NodeNotFound, WorkflowNotFound, WorkflowValidationError
from calcflow.instructions import InstructionRegistry
from calcflow.triggers.collection import validate_collection_config
from calcflow.types import Execution, Job, Node, TriggerType, Workflow

from .dag import topological_sort

logger = logging.getLogger(__name__)


def generate_node_key() -> str:
    """Short random key used as the node's address in ``$jobsMapByNodeKey``."""
    return secrets.token_hex(5)


class WorkflowManager:
    """
    Args:
        repository:    Repository used for all reads and writes.
        instructions:  Registry consulted to validate node types and configs.
        config:        CalcflowConfig; a default instance is created if omitted.
    """

    def __init__(
        self,
        repository: Repository,
        instructions: InstructionRegistry,
        config: Optional[CalcflowConfig] = None,
    ) -> None:
        self._repository = repository
        self._instructions = instructions
        self._config = config or CalcflowConfig()

    # ── Workflows ─────────────────────────────────────────────────────────────

    async def create(
        self,
        title: str,
        type: TriggerType = TriggerType.COLLECTION,
        config: Optional[dict[str, Any]] = None,
        enabled: bool = False,
    ) -> Workflow:
        """Persist a new workflow with no nodes.

        Raises:
            TriggerError: if a collection workflow has an unusable trigger config.
        """
        if type == TriggerType.COLLECTION:
            validate_collection_config(config or {})
        workflow = Workflow(title=title, type=type, config=config or {}, enabled=enabled)
        workflow = await self._repository.create_workflow(workflow)
        logger.info(f"[Workflows] created {workflow.id} {title!r} enabled={enabled}")
        return workflow

    async def get(self, workflow_id: str) -> Workflow:
        """
        Raises:
            WorkflowNotFound: if no workflow has this id.
        """
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFound(
                f"Workflow '{workflow_id}' not found", workflow_id=workflow_id
            )
        return workflow

    async def list_enabled(self, type: TriggerType = TriggerType.COLLECTION) -> list[Workflow]:
        return await self._repository.list_workflows(workflow_type=type.value, enabled=True)

    async def set_enabled(self, workflow_id: str, enabled: bool) -> Workflow:
        await self.get(workflow_id)
        workflow = await self._repository.update_workflow(workflow_id, {"enabled": enabled})
        logger.info(f"[Workflows] {workflow_id} enabled={enabled}")
        return workflow

    # ── Nodes ─────────────────────────────────────────────────────────────────

    async def get_node(self, node_id: str) -> Node:
        node = await self._repository.get_node(node_id)
        if node is None:
            raise NodeNotFound(f"Node '{node_id}' not found", node_id=node_id)
        return node

    async def create_node(
        self,
        workflow_id: str,
        type: str,
        config: Optional[dict[str, Any]] = None,
        upstream_id: Optional[str] = None,
        title: str = "",
        key: Optional[str] = None,
    ) -> Node:
        """
        Validate and persist a node.  With *upstream_id* the node is recorded
        as a child of that node; call ``set_downstream`` on the parent to link
        the other side (either side alone is enough for traversal).

        Raises:
            WorkflowNotFound:        unknown workflow.
            NodeNotFound:            unknown upstream node.
            InstructionNotFound:     unregistered node type.
            WorkflowValidationError: bad config, duplicate key or too many nodes.
        """
        workflow = await self.get(workflow_id)
        config = config or {}

        instruction = self._instructions.get(type)
        instruction.validate_config(config)

        if len(workflow.nodes) >= self._config.max_workflow_nodes:
            raise WorkflowValidationError(
                f"Workflow '{workflow_id}' already has {len(workflow.nodes)} nodes",
                violations=[f"max_workflow_nodes={self._config.max_workflow_nodes}"],
            )

        existing_keys = {n.key for n in workflow.nodes}
        if key is None:
            key = generate_node_key()
            while key in existing_keys:
                key = generate_node_key()
        elif key in existing_keys:
            raise WorkflowValidationError(
                f"Node key '{key}' already used in workflow '{workflow_id}'",
                violations=[f"duplicate key: {key}"],
            )

        upstream_ids: list[str] = []
        if upstream_id is not None:
            if upstream_id not in {n.id for n in workflow.nodes}:
                raise NodeNotFound(
                    f"Upstream node '{upstream_id}' not in workflow '{workflow_id}'",
                    node_id=upstream_id,
                )
            upstream_ids.append(upstream_id)

        node = Node(
            workflow_id=workflow_id,
            key=key,
            type=type,
            title=title,
            config=config,
            upstream_ids=upstream_ids,
        )
        node = await self._repository.create_node(node)
        logger.info(f"[Workflows] node {node.key} ({type}) added to {workflow_id}")
        return node

    async def update_node_config(self, node_id: str, config: dict[str, Any]) -> Node:
        node = await self.get_node(node_id)
        self._instructions.get(node.type).validate_config(config)
        return await self._repository.update_node(node_id, {"config": config})

    async def set_downstream(self, node_id: str, downstream_id: str) -> Node:
        """Record *downstream_id* as a child of *node_id*.

        Raises:
            NodeNotFound:            either node is missing.
            WorkflowValidationError: nodes belong to different workflows or the
                                     link would create a cycle.
        """
        node = await self.get_node(node_id)
        child = await self.get_node(downstream_id)
        if node.workflow_id != child.workflow_id:
            raise WorkflowValidationError(
                "Cannot link nodes from different workflows",
                violations=[f"{node_id} -> {downstream_id}"],
            )
        if downstream_id in node.downstream_ids:
            return node

        # Validate the would-be graph before persisting anything
        workflow = await self.get(node.workflow_id)
        candidate = [
            n.model_copy(update={"downstream_ids": [*n.downstream_ids, downstream_id]})
            if n.id == node_id else n
            for n in workflow.nodes
        ]
        topological_sort(candidate)

        return await self._repository.update_node(
            node_id, {"downstream_ids": [*node.downstream_ids, downstream_id]}
        )

    async def link(self, upstream_id: str, downstream_id: str) -> tuple[Node, Node]:
        """Declare the edge on both nodes."""
        parent = await self.set_downstream(upstream_id, downstream_id)
        child = await self.get_node(downstream_id)
        if upstream_id not in child.upstream_ids:
            child = await self._repository.update_node(
                downstream_id, {"upstream_ids": [*child.upstream_ids, upstream_id]}
            )
        return parent, child

    # ── Runs ──────────────────────────────────────────────────────────────────

    async def get_executions(self, workflow_id: str) -> list[Execution]:
        """Executions of a workflow, oldest first, each with its jobs."""
        return await self._repository.list_executions(workflow_id)

    async def get_jobs(self, execution_id: str) -> list[Job]:
        """Jobs of an execution, in visitation order."""
        return await self._repository.list_jobs(execution_id)

    # ── Declarative definitions ───────────────────────────────────────────────

    async def load_definition(self, definition: WorkflowYAML) -> Workflow:
        """Create a workflow and its nodes from a parsed YAML definition.

        Nodes are created in file order; ``upstream`` refers to an earlier
        node's ``key``.
        """
        workflow = await self.create(
            title=definition.title,
            type=TriggerType(definition.trigger.type),
            config=definition.trigger.to_config(),
            enabled=definition.enabled,
        )
        ids_by_key: dict[str, str] = {}
        for entry in definition.nodes:
            upstream_id = None
            if entry.upstream is not None:
                if entry.upstream not in ids_by_key:
                    raise WorkflowValidationError(
                        f"Node '{entry.key}' refers to unknown upstream '{entry.upstream}'",
                        violations=[f"unknown upstream: {entry.upstream}"],
                    )
                upstream_id = ids_by_key[entry.upstream]
            node = await self.create_node(
                workflow.id,
                type=entry.type,
                config=entry.config,
                upstream_id=upstream_id,
                title=entry.title,
                key=entry.key,
            )
            ids_by_key[node.key] = node.id
            if upstream_id is not None:
                await self.set_downstream(upstream_id, node.id)
        return await self.get(workflow.id)
