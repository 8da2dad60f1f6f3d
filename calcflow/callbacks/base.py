"""Base callback protocol for processor lifecycle hooks.

The processor calls every registered callback as ``await cb(event, data)``
with one of these events:

  execution_started    {"execution_id", "workflow_id", "node_count"}
  job_created          {"execution_id", "job_id", "node_key", "node_type", "status"}
  execution_completed  {"execution_id", "workflow_id", "status", "job_count"}

Subclass ``BaseCallback`` and override the named hooks you need.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CalcflowCallback(Protocol):
    """Anything awaitable as ``cb(event, data)``."""

    async def __call__(self, event: str, data: dict[str, Any]) -> None:
        ...


class BaseCallback:
    """Dispatches lifecycle events to no-op named hooks."""

    async def __call__(self, event: str, data: dict[str, Any]) -> None:
        hook = getattr(self, f"on_{event}", None)
        if hook is not None:
            await hook(data)

    async def on_execution_started(self, data: dict[str, Any]) -> None:
        pass

    async def on_job_created(self, data: dict[str, Any]) -> None:
        pass

    async def on_execution_completed(self, data: dict[str, Any]) -> None:
        pass
