"""Pydantic models for YAML workflow definition validation.

These mirror calcflow/types.py structures but accept looser string inputs
(e.g., mode: "create|update") and coerce them to the stored shapes.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from calcflow.types import CollectionMode, TriggerType


class TriggerYAML(BaseModel):
    """Validated schema for the ``trigger`` section of a workflow file."""

    type: TriggerType = TriggerType.COLLECTION
    collection: str
    mode: int = int(CollectionMode.CREATE)
    changed: list[str] = Field(default_factory=list)
    condition: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v):
        if isinstance(v, str):
            return TriggerType(v.lower())
        return v

    @field_validator("mode", mode="before")
    @classmethod
    def coerce_mode(cls, v):
        if isinstance(v, str):
            mode = CollectionMode(0)
            for part in v.split("|"):
                name = part.strip().upper()
                if name not in CollectionMode.__members__:
                    raise ValueError(f"Unknown trigger mode '{part.strip()}'")
                mode |= CollectionMode[name]
            return int(mode)
        return v

    def to_config(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "mode": self.mode,
            "changed": self.changed,
            "condition": self.condition,
        }


class NodeYAML(BaseModel):
    """Validated schema for a node entry. ``upstream`` refers to another entry's key."""

    key: str
    type: str
    title: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    upstream: Optional[str] = None


class CollectionYAML(BaseModel):
    """A collection to define before running, with its field defaults."""

    name: str
    defaults: dict[str, Any] = Field(default_factory=dict)


class WorkflowYAML(BaseModel):
    """Root schema for a workflow definition file."""

    title: str
    enabled: bool = True
    trigger: TriggerYAML
    nodes: list[NodeYAML] = Field(default_factory=list)
    collections: list[CollectionYAML] = Field(default_factory=list)
