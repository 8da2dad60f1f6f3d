"""calcflow triggers — in-process event bus and the collection trigger."""

from calcflow.triggers.event_bus import (
    EventBus,
    EVENT_RECORD_CREATED,
    EVENT_RECORD_UPDATED,
    EVENT_RECORD_DESTROYED,
    EVENT_EXECUTION_COMPLETED,
    EVENT_EXECUTION_FAILED,
)
from calcflow.triggers.collection import CollectionTrigger, validate_collection_config, workflow_matches

__all__ = [
    "EventBus",
    "EVENT_RECORD_CREATED",
    "EVENT_RECORD_UPDATED",
    "EVENT_RECORD_DESTROYED",
    "EVENT_EXECUTION_COMPLETED",
    "EVENT_EXECUTION_FAILED",
    "CollectionTrigger",
    "validate_collection_config",
    "workflow_matches",
]
