"""
Variable namespace seen by ``{{ path }}`` placeholders.

Three layers, all read-only:

  $context            the triggering data (``{"data": <record>}``)
  $jobsMapByNodeKey   node key → job result, for the running node's ancestors
  $system             deployment constants plus zero-argument thunks such as
                      ``now``, evaluated lazily at lookup time

Values are deep-frozen (mappings become ``MappingProxyType``, lists become
tuples) so an instruction can never mutate what another node observes.
``thaw`` converts a frozen value back into plain JSON-able containers.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Iterator, Optional

logger = logging.getLogger(__name__)

CONTEXT_KEY = "$context"
JOBS_KEY = "$jobsMapByNodeKey"
SYSTEM_KEY = "$system"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


SYSTEM_FUNCTIONS: dict[str, Callable[[], Any]] = {
    "now": utc_now_iso,
}


# ── Freezing ──────────────────────────────────────────────────────────────────


def freeze(value: Any) -> Any:
    """Return a read-only deep copy of *value*."""
    if isinstance(value, SystemVariables):
        return value
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`: plain dicts and lists, safe to serialize."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


# ── Path lookup ───────────────────────────────────────────────────────────────


def lookup_path(root: Any, path: str) -> Any:
    """Walk a dot-separated *path* from *root*.

    Mapping keys, numeric sequence indexes and public attributes are
    supported.  Any missing segment yields ``None``; a zero-argument callable
    stored in a mapping is invoked and its return value used.  Methods
    reached through attribute access are never called.
    """
    current = root
    for part in path.strip().split("."):
        if current is None:
            break
        if isinstance(current, Mapping):
            current = current.get(part)
            if callable(current) and not isinstance(current, type):
                current = current()
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else None
        elif part and not part.startswith("_") and not isinstance(current, (str, bytes)):
            current = getattr(current, part, None)
            if callable(current):
                current = None
        else:
            current = None

    if current is None:
        logger.debug(f"[Namespace] Unresolved path {path!r}")
    return current


# ── Namespace layers ──────────────────────────────────────────────────────────


class SystemVariables(Mapping):
    """Read-only ``$system`` surface.

    Leaves are immediate values or zero-argument thunks; thunks run on every
    lookup, never ahead of time.
    """

    def __init__(
        self,
        constants: Optional[Mapping[str, Any]] = None,
        functions: Optional[Mapping[str, Callable[[], Any]]] = None,
    ) -> None:
        self._entries: dict[str, Any] = {k: freeze(v) for k, v in (constants or {}).items()}
        self._entries.update(SYSTEM_FUNCTIONS if functions is None else functions)

    def __getitem__(self, key: str) -> Any:
        value = self._entries[key]
        if callable(value):
            return value()
        return value

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class Namespace(Mapping):
    """Read-only lookup surface handed to instructions."""

    def __init__(self, root: Mapping[str, Any]) -> None:
        self._root = MappingProxyType(dict(root))

    def __getitem__(self, key: str) -> Any:
        return self._root[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._root)

    def __len__(self) -> int:
        return len(self._root)

    def lookup(self, path: str) -> Any:
        return lookup_path(self, path)

    def __repr__(self) -> str:
        return f"Namespace(keys={list(self._root)})"


def build_namespace(
    context: Mapping[str, Any],
    jobs_by_node_key: Optional[Mapping[str, Any]] = None,
    system: Optional[SystemVariables] = None,
) -> Namespace:
    """Assemble the layered namespace for one node visit."""
    return Namespace({
        CONTEXT_KEY: freeze(context or {}),
        JOBS_KEY: freeze(jobs_by_node_key or {}),
        SYSTEM_KEY: system if system is not None else SystemVariables(),
    })


def scoped_namespace(data: Optional[Mapping[str, Any]]) -> Namespace:
    """Ephemeral namespace whose paths resolve directly against *data*."""
    return Namespace(freeze(data or {}))
