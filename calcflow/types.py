"""All shared types, enums, and type aliases. Everything imports from here."""

from enum import Enum, IntFlag
from typing import Any, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ──────────────────────────────────────────────────────────────

class JobStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"   # success
    ERROR = "error"         # resolution / evaluation / instruction error
    FAILED = "failed"       # instruction rejected its configuration
    ABORTED = "aborted"     # execution halted before the node finished

class ExecutionStatus(str, Enum):
    STARTED = "started"
    RESOLVED = "resolved"
    ERROR = "error"
    ABORTED = "aborted"

class TriggerType(str, Enum):
    COLLECTION = "collection"

class CollectionMode(IntFlag):
    """Bit flags selecting which record mutations fire a collection trigger."""
    CREATE = 1
    UPDATE = 2
    DESTROY = 4


# ── Core Data Shapes ───────────────────────────────────────────────────

class Node(BaseModel):
    """One instruction in a workflow graph."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    key: str                            # stable address inside $jobsMapByNodeKey
    type: str                           # instruction tag: "calculation", "echo", "query"
    title: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    upstream_ids: list[str] = Field(default_factory=list)
    downstream_ids: list[str] = Field(default_factory=list)

class Workflow(BaseModel):
    """A trigger definition plus its node graph."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    enabled: bool = False
    type: TriggerType = TriggerType.COLLECTION
    config: dict[str, Any] = Field(default_factory=dict)   # {"collection": ..., "mode": 1}
    nodes: list[Node] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

class Job(BaseModel):
    """Persisted outcome of one node within one execution."""
    id: Optional[int] = None            # assigned by storage, monotonic
    execution_id: str
    node_id: str
    node_key: str
    status: JobStatus = JobStatus.PENDING
    result: Any = None
    created_at: datetime = Field(default_factory=_utcnow)

class Execution(BaseModel):
    """One run of a workflow triggered by a single event."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    context: dict[str, Any] = Field(default_factory=dict)  # {"data": <record>}
    status: ExecutionStatus = ExecutionStatus.STARTED
    jobs: list[Job] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

class JobResult(BaseModel):
    """What an instruction hands back to the processor for one node."""
    status: JobStatus
    result: Any = None

    @classmethod
    def resolved(cls, result: Any) -> "JobResult":
        return cls(status=JobStatus.RESOLVED, result=result)

    @classmethod
    def error(cls, error: Any) -> "JobResult":
        return cls(status=JobStatus.ERROR, result=str(error))

class CollectionRecord(BaseModel):
    """A row of a monitored data collection."""
    id: Optional[int] = None
    collection: str
    values: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)

    def as_data(self) -> dict[str, Any]:
        """Flatten into the shape exposed as ``$context.data``."""
        return {"id": self.id, **self.values}
