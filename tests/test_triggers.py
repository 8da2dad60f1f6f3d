"""EventBus and the collection trigger."""

import pytest

from calcflow.triggers import EventBus, workflow_matches
from calcflow.types import CollectionMode, Workflow


def _workflow(**config):
    return Workflow(title="wf", enabled=True, config={"collection": "posts", "mode": 1, **config})


def _payload(data=None, changed=None, collection="posts"):
    return {"collection": collection, "data": data or {"id": 1}, "changed": changed or []}


# ── EventBus ─────────────────────────────────────────────────────────────────


class TestEventBus:

    @pytest.mark.asyncio
    async def test_sync_and_async_subscribers(self):
        bus = EventBus()
        seen = []

        async def on_async(data):
            seen.append(("async", data))

        bus.subscribe("evt", lambda data: seen.append(("sync", data)))
        bus.subscribe("evt", on_async)
        await bus.emit("evt", 1)
        assert seen == [("sync", 1), ("async", 1)]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        def broken(data):
            raise RuntimeError("nope")

        bus.subscribe("evt", broken)
        bus.subscribe("evt", seen.append)
        await bus.emit("evt", "x")
        assert seen == ["x"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        bus.subscribe("evt", seen.append)
        assert bus.subscriber_count("evt") == 1
        bus.unsubscribe("evt", seen.append)
        bus.unsubscribe("evt", seen.append)
        await bus.emit("evt", "x")
        assert seen == []
        assert bus.subscriber_count("evt") == 0

    @pytest.mark.asyncio
    async def test_emit_without_subscribers(self):
        await EventBus().emit("nothing", {})


# ── Matching ─────────────────────────────────────────────────────────────────


class TestWorkflowMatches:

    def test_collection_and_mode(self):
        wf = _workflow(mode=int(CollectionMode.CREATE | CollectionMode.DESTROY))
        assert workflow_matches(wf, CollectionMode.CREATE, _payload())
        assert workflow_matches(wf, CollectionMode.DESTROY, _payload())
        assert not workflow_matches(wf, CollectionMode.UPDATE, _payload())
        assert not workflow_matches(wf, CollectionMode.CREATE, _payload(collection="categories"))

    def test_changed_fields_only_apply_to_updates(self):
        wf = _workflow(mode=3, changed=["title"])
        assert workflow_matches(wf, CollectionMode.UPDATE, _payload(changed=["title", "read"]))
        assert not workflow_matches(wf, CollectionMode.UPDATE, _payload(changed=["read"]))
        assert workflow_matches(wf, CollectionMode.CREATE, _payload(changed=["read"]))

    def test_condition(self):
        wf = _workflow(condition={"read": {"$gte": 1}})
        assert workflow_matches(wf, CollectionMode.CREATE, _payload({"id": 1, "read": 2}))
        assert not workflow_matches(wf, CollectionMode.CREATE, _payload({"id": 1, "read": 0}))

    def test_bad_condition_never_matches(self):
        wf = _workflow(condition={"read": {"$bogus": 1}})
        assert not workflow_matches(wf, CollectionMode.CREATE, _payload({"id": 1, "read": 2}))


# ── CollectionTrigger ────────────────────────────────────────────────────────


class TestCollectionTrigger:

    @pytest.mark.asyncio
    async def test_disabled_workflow_does_not_run(self, runtime):
        wf = await runtime.workflows.create("off", config={"collection": "posts", "mode": 1})
        await runtime.workflows.create_node(wf.id, "echo")
        await runtime.collections.create("posts", {})
        assert await runtime.workflows.get_executions(wf.id) == []

    @pytest.mark.asyncio
    async def test_update_mode(self, runtime):
        wf = await runtime.workflows.create(
            "on update", config={"collection": "posts", "mode": 2, "changed": ["read"]}, enabled=True
        )
        await runtime.workflows.create_node(wf.id, "calculation", {"expression": "{{$context.data.read}} * 2"})

        record = await runtime.collections.create("posts", {"title": "t1"})
        assert await runtime.workflows.get_executions(wf.id) == []

        await runtime.collections.update("posts", record.id, {"title": "t2"})
        assert await runtime.workflows.get_executions(wf.id) == []

        await runtime.collections.update("posts", record.id, {"read": 4})
        (execution,) = await runtime.workflows.get_executions(wf.id)
        assert execution.jobs[0].result == 8

    @pytest.mark.asyncio
    async def test_destroy_mode_sees_last_state(self, runtime):
        wf = await runtime.workflows.create("on destroy", config={"collection": "posts", "mode": 4}, enabled=True)
        await runtime.workflows.create_node(wf.id, "echo")
        record = await runtime.collections.create("posts", {"title": "gone"})
        await runtime.collections.destroy("posts", record.id)

        (execution,) = await runtime.workflows.get_executions(wf.id)
        assert execution.jobs[0].result == {"data": {"id": record.id, "title": "gone", "read": 0}}

    @pytest.mark.asyncio
    async def test_every_matching_workflow_runs(self, runtime, workflow):
        second = await runtime.workflows.create("second", config={"collection": "posts", "mode": 1}, enabled=True)
        await runtime.collections.create("posts", {})
        assert len(await runtime.workflows.get_executions(workflow.id)) == 1
        assert len(await runtime.workflows.get_executions(second.id)) == 1

    @pytest.mark.asyncio
    async def test_detach(self, runtime, workflow):
        runtime.trigger.detach()
        await runtime.collections.create("posts", {})
        assert await runtime.workflows.get_executions(workflow.id) == []

        runtime.trigger.attach()
        runtime.trigger.attach()
        await runtime.collections.create("posts", {})
        assert len(await runtime.workflows.get_executions(workflow.id)) == 1
