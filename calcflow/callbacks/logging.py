"""Structured JSON logging callback for processor lifecycle events."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from calcflow.callbacks.base import BaseCallback

logger = logging.getLogger("calcflow.audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class LoggingCallback(BaseCallback):
    """Emits one self-contained JSON log line per lifecycle event.

    Each line carries ``event`` and ``ts`` plus the event's fields.
    INFO for normal events, WARNING for executions that did not resolve.
    Logger name: calcflow.audit (configure in your logging setup)
    """

    async def on_execution_started(self, data: dict[str, Any]) -> None:
        logger.info(json.dumps({
            "event": "execution_started",
            "ts": _now(),
            "execution_id": data.get("execution_id", ""),
            "workflow_id": data.get("workflow_id", ""),
            "node_count": data.get("node_count", 0),
        }))

    async def on_job_created(self, data: dict[str, Any]) -> None:
        logger.info(json.dumps({
            "event": "job_created",
            "ts": _now(),
            "execution_id": data.get("execution_id", ""),
            "job_id": data.get("job_id"),
            "node_key": data.get("node_key", ""),
            "node_type": data.get("node_type", ""),
            "status": data.get("status", ""),
        }))

    async def on_execution_completed(self, data: dict[str, Any]) -> None:
        status = data.get("status", "")
        log = logger.info if status == "resolved" else logger.warning
        log(json.dumps({
            "event": "execution_completed",
            "ts": _now(),
            "execution_id": data.get("execution_id", ""),
            "workflow_id": data.get("workflow_id", ""),
            "status": status,
            "job_count": data.get("job_count", 0),
        }))
