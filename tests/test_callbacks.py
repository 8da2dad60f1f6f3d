"""Lifecycle callbacks."""

import json
import logging

import pytest

from calcflow.callbacks import BaseCallback, CalcflowCallback, LoggingCallback


class Recorder(BaseCallback):
    def __init__(self):
        self.started = []

    async def on_execution_started(self, data):
        self.started.append(data)


@pytest.mark.asyncio
async def test_base_callback_dispatches_to_hooks():
    cb = Recorder()
    await cb("execution_started", {"execution_id": "e1"})
    await cb("unknown_event", {})
    assert cb.started == [{"execution_id": "e1"}]


def test_protocol():
    assert isinstance(LoggingCallback(), CalcflowCallback)


@pytest.mark.asyncio
async def test_logging_callback_writes_json(caplog):
    cb = LoggingCallback()
    with caplog.at_level(logging.INFO, logger="calcflow.audit"):
        await cb("job_created", {"execution_id": "e1", "job_id": 3, "node_key": "n1", "status": "resolved"})
        await cb("execution_completed", {"execution_id": "e1", "status": "error", "job_count": 1})

    first, second = caplog.records
    assert json.loads(first.getMessage())["node_key"] == "n1"
    assert second.levelno == logging.WARNING
    assert json.loads(second.getMessage())["status"] == "error"


@pytest.mark.asyncio
async def test_logging_callback_end_to_end(session, config, caplog):
    from calcflow.runtime import build_runtime

    rt = build_runtime(session, config, callbacks=[LoggingCallback()])
    rt.collections.define("posts")
    wf = await rt.workflows.create("wf", config={"collection": "posts", "mode": 1}, enabled=True)
    await rt.workflows.create_node(wf.id, "calculation", {"expression": "1 + 1"})

    with caplog.at_level(logging.INFO, logger="calcflow.audit"):
        await rt.collections.create("posts", {})

    events = [
        json.loads(r.getMessage())["event"] for r in caplog.records if r.name == "calcflow.audit"
    ]
    assert events == ["execution_started", "job_created", "execution_completed"]
