"""
End-to-end execution tests: records are created in a collection, the trigger
starts the workflow and the processor walks its nodes.
"""

import re

import pytest

from calcflow.instructions import Instruction
from calcflow.runtime import build_runtime
from calcflow.triggers.event_bus import EVENT_EXECUTION_COMPLETED, EVENT_EXECUTION_FAILED
from calcflow.types import ExecutionStatus, JobResult, JobStatus

TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


async def _node(runtime, workflow, type, config=None, upstream=None, key=None):
    node = await runtime.workflows.create_node(
        workflow.id, type, config or {}, upstream_id=upstream.id if upstream else None, key=key
    )
    if upstream is not None:
        await runtime.workflows.set_downstream(upstream.id, node.id)
    return node


async def _calc(runtime, workflow, expression, engine="math.js", **kwargs):
    return await _node(
        runtime, workflow, "calculation", {"engine": engine, "expression": expression}, **kwargs
    )


async def _only_execution(runtime, workflow):
    executions = await runtime.workflows.get_executions(workflow.id)
    assert len(executions) == 1
    return executions[0]


class AbortingInstruction(Instruction):
    type = "abort"

    def __init__(self, processor):
        self.processor = processor

    async def run(self, node, namespace, context):
        self.processor.abort(context.execution.id)
        return JobResult.resolved("stopping")


class ExplodingInstruction(Instruction):
    type = "explode"

    async def run(self, node, namespace, context):
        raise RuntimeError("boom")


class UnstorableInstruction(Instruction):
    type = "unstorable"

    async def run(self, node, namespace, context):
        loop = {}
        loop["self"] = loop
        return JobResult.resolved(loop)


# ── Static calculations ──────────────────────────────────────────────────────


class TestStaticCalculation:

    @pytest.mark.asyncio
    async def test_syntax_error(self, runtime, workflow):
        await _calc(runtime, workflow, "1 1")
        await runtime.collections.create("posts", {"title": "t1"})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ERROR
        (job,) = execution.jobs
        assert job.status == JobStatus.ERROR
        assert job.result.startswith("SyntaxError")

    @pytest.mark.asyncio
    async def test_constant(self, runtime, workflow):
        await _calc(runtime, workflow, " 1 + 1 ")
        await runtime.collections.create("posts", {"title": "t1"})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.RESOLVED
        (job,) = execution.jobs
        assert job.status == JobStatus.RESOLVED
        assert job.result == 2

    @pytest.mark.asyncio
    async def test_context(self, runtime, workflow):
        await _calc(runtime, workflow, "{{$context.data.read}} + 1")
        await runtime.collections.create("posts", {"title": "t1", "read": 1})

        (job,) = (await _only_execution(runtime, workflow)).jobs
        assert job.result == 2

    @pytest.mark.asyncio
    async def test_jobs_map_by_node_key(self, runtime, workflow):
        n1 = await _node(runtime, workflow, "echo")
        await _calc(runtime, workflow, f"{{{{$jobsMapByNodeKey.{n1.key}.data.read}}}} + 1", upstream=n1)
        await runtime.collections.create("posts", {"title": "t1", "read": 1})

        execution = await _only_execution(runtime, workflow)
        assert [j.node_key for j in execution.jobs][0] == n1.key
        assert execution.jobs[1].result == 2

    @pytest.mark.asyncio
    async def test_system_constant(self, runtime, workflow):
        await _calc(runtime, workflow, "1 + {{$system.no1}}")
        await runtime.collections.create("posts", {"title": "t1"})

        (job,) = (await _only_execution(runtime, workflow)).jobs
        assert job.result == 2

    @pytest.mark.asyncio
    async def test_system_now(self, runtime, workflow):
        await _calc(runtime, workflow, "{{$system.now}}")
        await runtime.collections.create("posts", {"title": "t1"})

        (job,) = (await _only_execution(runtime, workflow)).jobs
        assert job.status == JobStatus.RESOLVED
        assert TIME_RE.match(job.result)

    @pytest.mark.asyncio
    async def test_formula_string(self, runtime, workflow):
        await _calc(runtime, workflow, "CONCATENATE('a', {{$context.data.title}})", engine="formula.js")
        await runtime.collections.create("posts", {"title": "t1"})

        (job,) = (await _only_execution(runtime, workflow)).jobs
        assert job.result == "at1"

    @pytest.mark.asyncio
    async def test_formula_placeholder_inside_quotes(self, runtime, workflow):
        await _calc(runtime, workflow, "CONCATENATE('a', '{{$context.data.title}}')", engine="formula.js")
        await runtime.collections.create("posts", {"title": "t1"})

        (job,) = (await _only_execution(runtime, workflow)).jobs
        assert job.result == "a $context.data.title "


# ── Dynamic calculations ─────────────────────────────────────────────────────


class TestDynamicCalculation:

    @pytest.mark.asyncio
    async def test_expression_from_record(self, runtime, workflow):
        await _node(runtime, workflow, "calculation", {
            "dynamic": "{{$context.data.category}}",
            "scope": "{{$context.data}}",
        })
        await runtime.collections.create("posts", {
            "title": "t1",
            "category": {"engine": "math.js", "expression": "1 + {{read}}"},
        })

        (job,) = (await _only_execution(runtime, workflow)).jobs
        assert job.status == JobStatus.RESOLVED
        assert job.result == 1

    @pytest.mark.asyncio
    async def test_expression_from_queried_record(self, runtime, workflow):
        category = await runtime.collections.create("categories", {
            "title": "c1",
            "engine": "math.js",
            "expression": "1 + {{read}}",
        })
        n1 = await _node(runtime, workflow, "query", {
            "collection": "categories",
            "multiple": False,
            "params": {"filter": {"$and": [{"id": "{{$context.data.categoryId}}"}]}},
        })
        await _node(runtime, workflow, "calculation", {
            "dynamic": f"{{{{$jobsMapByNodeKey.{n1.key}}}}}",
            "scope": "{{$context.data}}",
        }, upstream=n1)

        await runtime.collections.create("posts", {"title": "t1", "categoryId": category.id})

        execution = await _only_execution(runtime, workflow)
        assert len(execution.jobs) == 2
        assert execution.jobs[0].result["title"] == "c1"
        assert execution.jobs[1].result == 1

    @pytest.mark.asyncio
    async def test_query_without_match_fails_dynamic(self, runtime, workflow):
        n1 = await _node(runtime, workflow, "query", {
            "collection": "categories",
            "params": {"filter": {"id": "{{$context.data.categoryId}}"}},
        })
        await _node(runtime, workflow, "calculation", {
            "dynamic": f"{{{{$jobsMapByNodeKey.{n1.key}}}}}",
        }, upstream=n1)

        await runtime.collections.create("posts", {"title": "t1", "categoryId": 999})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ERROR
        assert execution.jobs[0].result is None
        assert execution.jobs[1].result.startswith("DynamicSourceError")


# ── Graph traversal ──────────────────────────────────────────────────────────


class TestTraversal:

    @pytest.mark.asyncio
    async def test_sibling_results_are_not_visible(self, runtime, workflow):
        root = await _calc(runtime, workflow, "1")
        left = await _calc(runtime, workflow, "2", upstream=root)
        await _calc(runtime, workflow, f"{{{{$jobsMapByNodeKey.{left.key}}}}}", upstream=root)
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert [j.result for j in execution.jobs] == [1, 2, None]

    @pytest.mark.asyncio
    async def test_grandparent_results_are_visible(self, runtime, workflow):
        a = await _calc(runtime, workflow, "5")
        b = await _calc(runtime, workflow, "1", upstream=a)
        await _calc(runtime, workflow, f"{{{{$jobsMapByNodeKey.{a.key}}}}} * 2", upstream=b)
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert execution.jobs[-1].result == 10

    @pytest.mark.asyncio
    async def test_join_waits_for_all_parents(self, runtime, workflow):
        a = await _calc(runtime, workflow, "1")
        b = await _calc(runtime, workflow, "2", upstream=a)
        c = await _calc(runtime, workflow, "3", upstream=a)
        d = await _calc(
            runtime, workflow,
            f"{{{{$jobsMapByNodeKey.{b.key}}}}} + {{{{$jobsMapByNodeKey.{c.key}}}}}",
            upstream=b,
        )
        await runtime.workflows.link(c.id, d.id)
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert [j.node_key for j in execution.jobs] == [a.key, b.key, c.key, d.key]
        assert execution.jobs[-1].result == 5

    @pytest.mark.asyncio
    async def test_job_ids_follow_visit_order(self, runtime, workflow):
        a = await _calc(runtime, workflow, "1")
        await _calc(runtime, workflow, "2", upstream=a)
        await runtime.collections.create("posts", {})

        jobs = (await _only_execution(runtime, workflow)).jobs
        assert jobs[0].id < jobs[1].id

    @pytest.mark.asyncio
    async def test_context_snapshot_is_persisted(self, runtime, workflow):
        await _calc(runtime, workflow, "1")
        record = await runtime.collections.create("posts", {"title": "t1"})

        execution = await _only_execution(runtime, workflow)
        assert execution.context == {"data": {"id": record.id, "title": "t1", "read": 0}}
        assert execution.completed_at is not None

    @pytest.mark.asyncio
    async def test_start_directly(self, runtime, workflow):
        await _calc(runtime, workflow, "{{$context.data.read}} * 3")
        wf = await runtime.workflows.get(workflow.id)

        execution = await runtime.processor.start(wf, {"data": {"read": 5}})
        assert execution.status == ExecutionStatus.RESOLVED
        assert execution.jobs[0].result == 15

    @pytest.mark.asyncio
    async def test_workflow_without_nodes(self, runtime, workflow):
        await runtime.collections.create("posts", {})
        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.RESOLVED
        assert execution.jobs == []


# ── Error policy ─────────────────────────────────────────────────────────────


class TestErrorPolicy:

    @pytest.mark.asyncio
    async def test_halt_on_error(self, runtime, workflow):
        await _calc(runtime, workflow, "1 1")
        await _calc(runtime, workflow, "1")
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ERROR
        assert len(execution.jobs) == 1

    @pytest.mark.asyncio
    async def test_continue_skips_descendants_only(self, runtime, workflow):
        runtime.config.halt_on_error = False
        bad = await _calc(runtime, workflow, "1 1")
        await _calc(runtime, workflow, "2", upstream=bad)
        independent = await _calc(runtime, workflow, "3")
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ERROR
        assert [j.node_key for j in execution.jobs] == [bad.key, independent.key]
        assert execution.jobs[1].result == 3

    @pytest.mark.asyncio
    async def test_instruction_exception_becomes_error_job(self, runtime, workflow):
        runtime.instructions.register(ExplodingInstruction())
        await _node(runtime, workflow, "explode")
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ERROR
        assert execution.jobs[0].result == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_abort(self, runtime, workflow):
        runtime.instructions.register(AbortingInstruction(runtime.processor))
        first = await _node(runtime, workflow, "abort")
        await _calc(runtime, workflow, "1", upstream=first)
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ABORTED
        assert [j.result for j in execution.jobs] == ["stopping"]
        assert not runtime.processor._aborted

    @pytest.mark.asyncio
    async def test_unstorable_result_becomes_error_job(self, runtime, workflow):
        runtime.instructions.register(UnstorableInstruction())
        await _node(runtime, workflow, "unstorable")
        await runtime.collections.create("posts", {})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ERROR
        (job,) = execution.jobs
        assert job.status == JobStatus.ERROR
        assert "result cannot be stored" in job.result

    @pytest.mark.asyncio
    async def test_execution_closes_when_persistence_fails(self, runtime, workflow, monkeypatch):
        await _calc(runtime, workflow, "1")
        wf = await runtime.workflows.get(workflow.id)

        async def failing_create_job(job):
            raise RuntimeError("disk full")

        monkeypatch.setattr(runtime.processor.repository, "create_job", failing_create_job)
        with pytest.raises(RuntimeError, match="disk full"):
            await runtime.processor.start(wf, {"data": {}})

        execution = await _only_execution(runtime, workflow)
        assert execution.status == ExecutionStatus.ERROR
        assert execution.completed_at is not None
        assert not runtime.processor._running

    @pytest.mark.asyncio
    async def test_abort_ignores_unknown_execution(self, runtime):
        runtime.processor.abort("not-running")
        assert not runtime.processor._aborted


# ── Callbacks and events ─────────────────────────────────────────────────────


class TestNotifications:

    @pytest.mark.asyncio
    async def test_callbacks_receive_lifecycle(self, session, config):
        seen = []

        async def record(event, data):
            seen.append((event, data))

        def broken(event, data):
            raise ValueError("callback bug")

        rt = build_runtime(session, config, callbacks=[broken, record])
        rt.collections.define("posts")
        wf = await rt.workflows.create("wf", config={"collection": "posts", "mode": 1}, enabled=True)
        await rt.workflows.create_node(wf.id, "calculation", {"expression": "1"})
        await rt.collections.create("posts", {})

        events = [event for event, _ in seen]
        assert events == ["execution_started", "job_created", "execution_completed"]
        assert seen[1][1]["status"] == "resolved"
        assert seen[2][1]["job_count"] == 1

    @pytest.mark.asyncio
    async def test_completed_event(self, runtime, workflow):
        received = []
        runtime.event_bus.subscribe(EVENT_EXECUTION_COMPLETED, received.append)
        node = await _calc(runtime, workflow, "1 + 1")
        await runtime.collections.create("posts", {})

        (payload,) = received
        assert payload["workflow_id"] == workflow.id
        assert payload["status"] == "resolved"
        assert payload["results"] == {node.key: 2}

    @pytest.mark.asyncio
    async def test_failed_event(self, runtime, workflow):
        received = []
        runtime.event_bus.subscribe(EVENT_EXECUTION_FAILED, received.append)
        await _calc(runtime, workflow, "1 +")
        await runtime.collections.create("posts", {})

        assert len(received) == 1
        assert received[0]["status"] == "error"
