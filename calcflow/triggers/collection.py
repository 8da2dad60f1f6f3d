"""Collection trigger: starts executions when records are created, updated or destroyed.

A workflow subscribes through its config::

    {
        "collection": "posts",
        "mode": 3,                       # CollectionMode flags: 1 create | 2 update | 4 destroy
        "changed": ["title"],            # update mode only: fire when one of these changed
        "condition": {"read": {"$gte": 1}}
    }

Every enabled ``collection`` workflow whose config matches the event gets one
execution with context ``{"data": <record>}``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from calcflow.collections.filters import match_filter
from calcflow.exceptions import CollectionError, TriggerError
from calcflow.triggers.event_bus import (
    EVENT_RECORD_CREATED, EVENT_RECORD_DESTROYED, EVENT_RECORD_UPDATED, EventBus,
)
from calcflow.types import CollectionMode, Execution, TriggerType, Workflow

if TYPE_CHECKING:
    from calcflow.workflows.manager import WorkflowManager
    from calcflow.workflows.processor import Processor

logger = logging.getLogger(__name__)

EVENT_MODES: dict[str, CollectionMode] = {
    EVENT_RECORD_CREATED: CollectionMode.CREATE,
    EVENT_RECORD_UPDATED: CollectionMode.UPDATE,
    EVENT_RECORD_DESTROYED: CollectionMode.DESTROY,
}

_ALL_MODES = int(CollectionMode.CREATE | CollectionMode.UPDATE | CollectionMode.DESTROY)


def validate_collection_config(config: dict[str, Any]) -> None:
    """
    Raises:
        TriggerError: if the config cannot select any record event.
    """
    if not isinstance(config.get("collection"), str) or not config["collection"]:
        raise TriggerError(
            "Collection trigger requires config.collection",
            trigger_type=TriggerType.COLLECTION.value,
        )
    mode = config.get("mode")
    if not isinstance(mode, int) or isinstance(mode, bool) or not 0 < mode <= _ALL_MODES:
        raise TriggerError(
            f"Collection trigger mode must be a flag combination in 1..{_ALL_MODES}, got {mode!r}",
            trigger_type=TriggerType.COLLECTION.value,
        )


def workflow_matches(workflow: Workflow, mode: CollectionMode, payload: dict[str, Any]) -> bool:
    """True when *workflow* should run for a record event of *mode*."""
    config = workflow.config
    if config.get("collection") != payload.get("collection"):
        return False
    if not CollectionMode(int(config.get("mode") or 0) & _ALL_MODES) & mode:
        return False

    watched = config.get("changed") or []
    if mode == CollectionMode.UPDATE and watched:
        if not set(watched) & set(payload.get("changed") or []):
            return False

    condition = config.get("condition") or {}
    if condition:
        try:
            return match_filter(payload.get("data") or {}, condition)
        except CollectionError as exc:
            logger.warning(f"[CollectionTrigger] workflow {workflow.id} has a bad condition: {exc}")
            return False
    return True


class CollectionTrigger:
    """Bridges record events on the bus to processor executions."""

    def __init__(
        self,
        workflow_manager: "WorkflowManager",
        processor: "Processor",
        event_bus: EventBus,
    ) -> None:
        self._workflow_manager = workflow_manager
        self._processor = processor
        self._event_bus = event_bus
        self._handlers: dict[str, Any] = {}

    def attach(self) -> None:
        """Subscribe to all record events.  Idempotent."""
        if self._handlers:
            return
        for event, mode in EVENT_MODES.items():
            async def handler(payload: dict[str, Any], _mode: CollectionMode = mode) -> None:
                await self.on_record_event(_mode, payload)
            self._handlers[event] = handler
            self._event_bus.subscribe(event, handler)

    def detach(self) -> None:
        for event, handler in self._handlers.items():
            self._event_bus.unsubscribe(event, handler)
        self._handlers.clear()

    async def on_record_event(self, mode: CollectionMode, payload: dict[str, Any]) -> list[Execution]:
        """Start one execution per matching enabled workflow, in creation order."""
        executions: list[Execution] = []
        for workflow in await self._workflow_manager.list_enabled(TriggerType.COLLECTION):
            if not workflow_matches(workflow, mode, payload):
                continue
            logger.info(
                f"[CollectionTrigger] {payload.get('collection')} {mode.name.lower()} "
                f"→ workflow {workflow.id}"
            )
            executions.append(
                await self._processor.start(workflow, {"data": payload.get("data")})
            )
        return executions
