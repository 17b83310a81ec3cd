"""Data contracts for flow instances and their collaborator records."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class InstanceStatus(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


class NodeStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LogType(str, Enum):
    SYSTEM = "SYSTEM"
    NODE = "NODE"


class FlowModel(BaseModel):
    """Base model serializing to the camelCase shape clients expect."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class LogEntry(FlowModel):
    """One event in an instance's execution log."""

    type: LogType
    message: str
    node_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class ErrorDetails(FlowModel):
    message: str
    stack: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None


class NodeState(FlowModel):
    """Execution status of a single node."""

    status: NodeStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    execution_time: Optional[float] = None
    retry_count: int = 0
    error: Optional[str] = None
    error_details: Optional[ErrorDetails] = None
    suggestion: Optional[str] = None


class NodeContextEntry(FlowModel):
    """What a node consumed and produced on its latest successful run."""

    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    execution_time: float = 0.0


class FlowInstance(FlowModel):
    """One draft or running execution of a flow template."""

    id: str = Field(default_factory=new_id)
    project_id: str
    template_id: str
    status: InstanceStatus = InstanceStatus.DRAFT
    context: Dict[str, Any] = Field(default_factory=dict)
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    node_data: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    node_states: Dict[str, NodeState] = Field(default_factory=dict)
    node_context: Dict[str, NodeContextEntry] = Field(default_factory=dict)
    logs: List[LogEntry] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def find_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        """Return the snapshot node with ``node_id`` if present."""
        return next((n for n in self.nodes if n.get("id") == node_id), None)


class Project(FlowModel):
    id: str = Field(default_factory=new_id)
    name: str
    project_number: Optional[str] = None


class FlowTemplate(FlowModel):
    """Reusable node/edge graph from which instances are created."""

    id: str = Field(default_factory=new_id)
    name: str
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)


class FileNode(FlowModel):
    id: str = Field(default_factory=new_id)
    flow_instance_id: str
    file_name: str
    storage_path: Optional[str] = None


class FlowDocument(FlowModel):
    id: str = Field(default_factory=new_id)
    instance_id: str
    title: str
    storage_path: Optional[str] = None


class User(FlowModel):
    """Acting user as seen by the authorization collaborator."""

    id: str
    username: Optional[str] = None
    roles: List[str] = Field(default_factory=list)


class ResolvedNode(FlowModel):
    """Canonical node shape handed to executors.

    Built once per execution so dispatch never re-derives the type from the
    raw ``type`` / ``data.type`` / label fields.
    """

    id: str
    type: Optional[str] = None
    label: Optional[str] = None
    category: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "ResolvedNode":
        """Normalize a graph node as stored by the editor."""
        data = dict(raw.get("data") or {})
        return cls(
            id=str(raw.get("id", "")),
            type=raw.get("type") or data.get("type"),
            label=data.get("label") or raw.get("label"),
            category=data.get("category"),
            data=data,
        )


class ExecutionContext(BaseModel):
    """Context passed to executors alongside the node and its input."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    flow_instance: FlowInstance
