"""
CollectionManager — a small record store with field defaults.

Collections are declared with ``define(name, defaults)``; records get their
defaults filled in on create.  Every mutation publishes an event that the
collection trigger listens to::

    collection.record.created    {"collection", "data", "changed"}
    collection.record.updated    {"collection", "data", "changed"}
    collection.record.destroyed  {"collection", "data", "changed"}

``data`` is the record as ``{"id": ..., **fields}``; ``changed`` lists the
field names that were set (create), actually changed (update) or removed
(destroy).
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional, Union

from calcflow.db.repository import Repository
from calcflow.exceptions import CollectionNotFound, RecordNotFound
from calcflow.triggers.event_bus import (
    EVENT_RECORD_CREATED, EVENT_RECORD_DESTROYED, EVENT_RECORD_UPDATED, EventBus,
)
from calcflow.types import CollectionRecord

from .filters import match_filter, sort_records

logger = logging.getLogger(__name__)


class CollectionManager:
    def __init__(self, repository: Repository, event_bus: Optional[EventBus] = None) -> None:
        self._repository = repository
        self._event_bus = event_bus
        self._defaults: dict[str, dict[str, Any]] = {}

    def define(self, name: str, defaults: Optional[dict[str, Any]] = None) -> None:
        """Declare (or redeclare) a collection and its field defaults."""
        self._defaults[name] = dict(defaults or {})
        logger.debug(f"[Collections] defined {name} defaults={self._defaults[name]}")

    def list_collections(self) -> list[str]:
        return sorted(self._defaults)

    def _require(self, name: str) -> dict[str, Any]:
        if name not in self._defaults:
            raise CollectionNotFound(f"Collection '{name}' is not defined", collection=name)
        return self._defaults[name]

    async def _publish(self, event: str, name: str, record: CollectionRecord, changed: list[str]) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.emit(event, {
            "collection": name,
            "data": record.as_data(),
            "changed": changed,
        })

    # ── Mutations ─────────────────────────────────────────────────────────────

    async def create(self, name: str, values: Optional[dict[str, Any]] = None) -> CollectionRecord:
        """Insert a record with defaults applied, then publish ``created``."""
        values = {**copy.deepcopy(self._require(name)), **(values or {})}
        values.pop("id", None)
        record = await self._repository.create_record(name, values)
        logger.info(f"[Collections] {name}#{record.id} created")
        await self._publish(EVENT_RECORD_CREATED, name, record, sorted(values))
        return record

    async def update(self, name: str, record_id: int, values: dict[str, Any]) -> CollectionRecord:
        """Merge *values* into a record, then publish ``updated`` with the changed fields.

        Raises:
            RecordNotFound: if the record does not exist.
        """
        before = await self.get(name, record_id)
        values = {k: v for k, v in values.items() if k != "id"}
        changed = sorted(k for k, v in values.items() if before.values.get(k) != v)
        record = await self._repository.update_record(name, record_id, values)
        logger.info(f"[Collections] {name}#{record_id} updated changed={changed}")
        await self._publish(EVENT_RECORD_UPDATED, name, record, changed)
        return record

    async def destroy(self, name: str, record_id: int) -> CollectionRecord:
        """Delete a record and publish ``destroyed`` with its last state.

        Raises:
            RecordNotFound: if the record does not exist.
        """
        record = await self.get(name, record_id)
        await self._repository.delete_record(name, record_id)
        logger.info(f"[Collections] {name}#{record_id} destroyed")
        await self._publish(EVENT_RECORD_DESTROYED, name, record, sorted(record.values))
        return record

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, name: str, record_id: int) -> CollectionRecord:
        self._require(name)
        record = await self._repository.get_record(name, record_id)
        if record is None:
            raise RecordNotFound(
                f"Record {record_id} not found in collection '{name}'", collection=name
            )
        return record

    async def find(
        self,
        name: str,
        filter: Optional[dict[str, Any]] = None,
        sort: Union[str, list[str], None] = None,
        limit: Optional[int] = None,
    ) -> list[CollectionRecord]:
        """Records matching *filter*, sorted, at most *limit* of them."""
        self._require(name)
        records = await self._repository.list_records(name)
        by_id = {r.id: r for r in records}
        matches = [r.as_data() for r in records if match_filter(r.as_data(), filter)]
        ordered = [by_id[data["id"]] for data in sort_records(matches, sort)]
        return ordered[:limit] if limit is not None else ordered

    async def find_one(
        self,
        name: str,
        filter: Optional[dict[str, Any]] = None,
        sort: Union[str, list[str], None] = None,
    ) -> Optional[CollectionRecord]:
        records = await self.find(name, filter=filter, sort=sort, limit=1)
        return records[0] if records else None
