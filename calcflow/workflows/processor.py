"""
Processor — drives one workflow execution over the node DAG.

For every execution:

  1. Persist the Execution (``started``) with a snapshot of the trigger context.
  2. Sort the nodes topologically (Kahn, ties in creation order) and compute
     each node's ancestor set once.
  3. Visit nodes in that order.  A node runs only when all of its parents
     produced a ``resolved`` job; its namespace exposes the results of its
     ancestors and nothing else.
  4. Persist one Job per visited node, then close the Execution as
     ``resolved``, ``error`` or ``aborted``.

With ``halt_on_error`` (default) the first non-resolved job ends the run.
Without it, independent branches keep running while descendants of the
failed node are skipped; the Execution still ends as ``error``.
"""

from __future__ import annotations

import inspect
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from calcflow.config import CalcflowConfig
from calcflow.db.repository import Repository
from calcflow.expressions.engines import ExpressionEngineRegistry, default_registry
from calcflow.expressions.namespace import SystemVariables, build_namespace, thaw
from calcflow.instructions import InstructionContext, InstructionRegistry
from calcflow.triggers.event_bus import EVENT_EXECUTION_COMPLETED, EVENT_EXECUTION_FAILED, EventBus
from calcflow.types import Execution, ExecutionStatus, Job, JobResult, JobStatus, Node, Workflow

from .dag import get_ancestors, get_parents, topological_sort

logger = logging.getLogger(__name__)


class Processor:
    """
    Args:
        repository:    persistence for executions and jobs.
        instructions:  node type → instruction.
        engines:       expression engines; the built-ins if omitted.
        collections:   CollectionManager handed to instructions (``query``).
        event_bus:     receives ``execution.completed`` / ``execution.failed``.
        config:        CalcflowConfig; supplies ``$system`` and the error policy.
        callbacks:     async ``cb(event, data)`` lifecycle hooks.
    """

    def __init__(
        self,
        repository: Repository,
        instructions: InstructionRegistry,
        engines: Optional[ExpressionEngineRegistry] = None,
        collections: Any = None,
        event_bus: Optional[EventBus] = None,
        config: Optional[CalcflowConfig] = None,
        callbacks: list = None,
    ) -> None:
        self.repository = repository
        self.instructions = instructions
        self.engines = engines or default_registry()
        self.collections = collections
        self.config = config or CalcflowConfig()
        self.callbacks = callbacks or []
        self._event_bus = event_bus
        self._system = SystemVariables(self.config.system_variables)
        self._running: set[str] = set()
        self._aborted: set[str] = set()

    def abort(self, execution_id: str) -> None:
        """Stop *execution_id* before its next node is visited.

        Ids of executions that are not running are ignored.
        """
        if execution_id not in self._running:
            logger.warning(f"[Processor] abort ignored: {execution_id} is not running")
            return
        logger.info(f"[Processor] abort requested for {execution_id}")
        self._aborted.add(execution_id)

    async def start(self, workflow: Workflow, context: Optional[dict[str, Any]] = None) -> Execution:
        """Run *workflow* once with *context* (``{"data": <record>}``).

        Returns:
            The finished Execution with its jobs in visitation order.

        Raises:
            WorkflowValidationError: if the node graph contains a cycle.
        """
        order = topological_sort(workflow.nodes)
        ancestors = get_ancestors(workflow.nodes, order)
        nodes = {n.id: n for n in workflow.nodes}
        parents = {nid: get_parents(nid, workflow.nodes) for nid in order}

        execution = await self.repository.create_execution(
            Execution(workflow_id=workflow.id, context=thaw(context or {}))
        )
        logger.info(
            f"[Processor] execution {execution.id} started "
            f"wf={workflow.id} nodes={len(order)}"
        )
        await self._fire_callbacks("execution_started", {
            "execution_id": execution.id,
            "workflow_id": workflow.id,
            "node_count": len(order),
        })

        jobs: dict[str, Job] = {}
        status = ExecutionStatus.RESOLVED
        self._running.add(execution.id)
        try:
            for node_id in order:
                if execution.id in self._aborted:
                    status = ExecutionStatus.ABORTED
                    break

                node = nodes[node_id]
                blocked = [
                    p for p in parents[node_id]
                    if p not in jobs or jobs[p].status != JobStatus.RESOLVED
                ]
                if blocked:
                    logger.debug(f"[Processor] skip {node.key}: upstream not resolved {blocked}")
                    continue

                job = await self._visit(execution, node, nodes, ancestors[node_id], parents[node_id], jobs)
                jobs[node_id] = job

                if job.status != JobStatus.RESOLVED:
                    status = ExecutionStatus.ERROR
                    if self.config.halt_on_error:
                        break

            if execution.id in self._aborted:
                status = ExecutionStatus.ABORTED
        except Exception:
            status = ExecutionStatus.ERROR
            logger.exception(f"[Processor] execution {execution.id} failed")
            raise
        finally:
            self._running.discard(execution.id)
            self._aborted.discard(execution.id)
            execution = await self.repository.update_execution(execution.id, {
                "status": status,
                "completed_at": datetime.now(timezone.utc),
            })
            logger.info(f"[Processor] execution {execution.id} {status.value} jobs={len(jobs)}")

        await self._fire_callbacks("execution_completed", {
            "execution_id": execution.id,
            "workflow_id": workflow.id,
            "status": status.value,
            "job_count": len(jobs),
        })
        await self._emit(
            EVENT_EXECUTION_COMPLETED if status == ExecutionStatus.RESOLVED else EVENT_EXECUTION_FAILED,
            {
                "workflow_id": workflow.id,
                "execution_id": execution.id,
                "status": status.value,
                "results": {j.node_key: j.result for j in execution.jobs},
            },
        )
        return execution

    async def _visit(
        self,
        execution: Execution,
        node: Node,
        nodes: dict[str, Node],
        ancestor_ids: frozenset[str],
        parent_ids: list[str],
        jobs: dict[str, Job],
    ) -> Job:
        namespace = build_namespace(
            execution.context,
            {nodes[a].key: jobs[a].result for a in ancestor_ids if a in jobs},
            self._system,
        )
        context = InstructionContext(
            execution=execution,
            upstream_results={nodes[p].key: jobs[p].result for p in parent_ids},
            collections=self.collections,
            config=self.config,
        )

        try:
            instruction = self.instructions.get(node.type)
            outcome = await instruction.run(node, namespace, context)
        except Exception as exc:
            logger.error(f"[Processor] node {node.key} ({node.type}) raised: {exc}", exc_info=True)
            outcome = JobResult(status=JobStatus.ERROR, result=f"{type(exc).__name__}: {exc}")

        try:
            result = thaw(outcome.result)
            json.dumps(result, default=str)
        except (TypeError, ValueError, OverflowError, RecursionError) as exc:
            logger.error(f"[Processor] node {node.key} result cannot be stored: {exc}")
            outcome = JobResult(
                status=JobStatus.ERROR,
                result=f"{type(exc).__name__}: result cannot be stored: {exc}",
            )
            result = outcome.result

        job = await self.repository.create_job(Job(
            execution_id=execution.id,
            node_id=node.id,
            node_key=node.key,
            status=outcome.status,
            result=result,
        ))
        logger.debug(f"[Processor] job {job.id} node={node.key} status={job.status.value}")
        await self._fire_callbacks("job_created", {
            "execution_id": execution.id,
            "job_id": job.id,
            "node_key": node.key,
            "node_type": node.type,
            "status": job.status.value,
        })
        return job

    async def _fire_callbacks(self, event: str, data: dict) -> None:
        """Invoke all registered callbacks for a lifecycle event."""
        for cb in self.callbacks:
            try:
                result = cb(event, data)
                if inspect.isawaitable(result):
                    await result
            except Exception as cb_exc:
                logger.warning(f"[Processor] Callback error on '{event}': {cb_exc}")

    async def _emit(self, event: str, data: dict) -> None:
        if self._event_bus is None:
            return
        try:
            await self._event_bus.emit(event, data)
        except Exception:
            logger.exception(f"[Processor] EventBus.emit({event}) failed")
