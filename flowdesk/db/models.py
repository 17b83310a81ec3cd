from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from ..contracts import utcnow


def _timestamp(nullable: bool = True) -> Column:
    return Column(DateTime(timezone=True), nullable=nullable)


class FlowInstanceRecord(SQLModel, table=True):
    """Row holding one flow instance with its JSON-typed state fields."""

    __tablename__ = "flow_instances"

    id: str = Field(primary_key=True)
    project_id: str = Field(index=True)
    template_id: str
    status: str = Field(default="draft", index=True)
    context: dict = Field(default_factory=dict, sa_column=Column(JSON))
    nodes: list = Field(default_factory=list, sa_column=Column(JSON))
    edges: list = Field(default_factory=list, sa_column=Column(JSON))
    node_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    node_states: dict = Field(default_factory=dict, sa_column=Column(JSON))
    node_context: dict = Field(default_factory=dict, sa_column=Column(JSON))
    logs: list = Field(default_factory=list, sa_column=Column(JSON))
    started_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    paused_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    ended_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(False))


class ProjectRecord(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(primary_key=True)
    name: str
    project_number: Optional[str] = None


class FlowTemplateRecord(SQLModel, table=True):
    __tablename__ = "flow_templates"

    id: str = Field(primary_key=True)
    name: str
    nodes: list = Field(default_factory=list, sa_column=Column(JSON))
    edges: list = Field(default_factory=list, sa_column=Column(JSON))


class FileNodeRecord(SQLModel, table=True):
    """Uploaded file attached to an instance."""

    __tablename__ = "file_nodes"

    id: str = Field(primary_key=True)
    flow_instance_id: str = Field(foreign_key="flow_instances.id", index=True)
    file_name: str
    storage_path: Optional[str] = None


class FlowDocumentRecord(SQLModel, table=True):
    __tablename__ = "flow_documents"

    id: str = Field(primary_key=True)
    instance_id: str = Field(foreign_key="flow_instances.id", index=True)
    title: str
    storage_path: Optional[str] = None
