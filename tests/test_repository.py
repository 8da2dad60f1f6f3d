"""Repository round-trips against in-memory SQLite."""

import pytest

from calcflow.db.repository import Repository
from calcflow.types import Execution, ExecutionStatus, Job, JobStatus, Node, Workflow


@pytest.fixture
def repo(session):
    return Repository(session)


@pytest.fixture
def wf():
    return Workflow(title="wf", config={"collection": "posts", "mode": 1})


@pytest.mark.asyncio
async def test_workflow_with_nodes_in_creation_order(repo, wf):
    await repo.create_workflow(wf)
    for key in ("b", "a", "c"):
        await repo.create_node(Node(workflow_id=wf.id, key=key, type="echo"))

    fetched = await repo.get_workflow(wf.id)
    assert [n.key for n in fetched.nodes] == ["b", "a", "c"]
    assert await repo.get_workflow("missing") is None


@pytest.mark.asyncio
async def test_list_workflows_filters(repo, wf):
    await repo.create_workflow(wf)
    await repo.create_workflow(Workflow(title="on", enabled=True, config={"collection": "posts", "mode": 1}))

    assert len(await repo.list_workflows()) == 2
    enabled = await repo.list_workflows(workflow_type="collection", enabled=True)
    assert [w.title for w in enabled] == ["on"]


@pytest.mark.asyncio
async def test_update_rejects_unknown_keys(repo, wf):
    await repo.create_workflow(wf)
    with pytest.raises(ValueError):
        await repo.update_workflow(wf.id, {"type": "other"})
    node = await repo.create_node(Node(workflow_id=wf.id, key="n1", type="echo"))
    with pytest.raises(ValueError):
        await repo.update_node(node.id, {"key": "n2"})


@pytest.mark.asyncio
async def test_execution_and_jobs(repo, wf):
    await repo.create_workflow(wf)
    node = await repo.create_node(Node(workflow_id=wf.id, key="n1", type="echo"))
    execution = await repo.create_execution(Execution(workflow_id=wf.id, context={"data": {"id": 1}}))
    assert execution.status == ExecutionStatus.STARTED

    first = await repo.create_job(Job(
        execution_id=execution.id, node_id=node.id, node_key="n1",
        status=JobStatus.RESOLVED, result={"nested": [1, 2]},
    ))
    second = await repo.create_job(Job(
        execution_id=execution.id, node_id=node.id, node_key="n1",
        status=JobStatus.ERROR, result="SyntaxError: bad",
    ))
    assert first.id < second.id

    updated = await repo.update_execution(execution.id, {"status": ExecutionStatus.ERROR})
    assert updated.status == ExecutionStatus.ERROR
    assert [j.result for j in updated.jobs] == [{"nested": [1, 2]}, "SyntaxError: bad"]

    (listed,) = await repo.list_executions(wf.id)
    assert listed.context == {"data": {"id": 1}}


@pytest.mark.asyncio
async def test_records(repo):
    record = await repo.create_record("posts", {"title": "t1"})
    await repo.create_record("categories", {"title": "c1"})

    updated = await repo.update_record("posts", record.id, {"read": 1})
    assert updated.values == {"title": "t1", "read": 1}
    assert [r.values["title"] for r in await repo.list_records("posts")] == ["t1"]

    assert await repo.delete_record("posts", record.id) is True
    assert await repo.delete_record("posts", record.id) is False
    assert await repo.update_record("posts", record.id, {}) is None
