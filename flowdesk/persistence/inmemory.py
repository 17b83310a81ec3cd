"""In-memory implementation of the flow repository."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Set

from ..contracts import (
    FileNode,
    FlowDocument,
    FlowInstance,
    FlowTemplate,
    LogEntry,
    Project,
    utcnow,
)
from ..errors import NotFoundError
from .repository import Attachments, FlowRepository


class InMemoryFlowRepository(FlowRepository):
    """Store flow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, FlowInstance] = {}
        self._projects: Dict[str, Project] = {}
        self._templates: Dict[str, FlowTemplate] = {}
        self._file_nodes: Dict[str, FileNode] = {}
        self._documents: Dict[str, FlowDocument] = {}

    # ------------------------------------------------------------------
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_InMemorySession"]:
        session = _InMemorySession(self)
        yield session
        # only reached when the block did not raise
        session.commit()

    async def get_instance(self, instance_id: str) -> FlowInstance | None:
        instance = self._instances.get(instance_id)
        return instance.model_copy(deep=True) if instance else None

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[FlowInstance]:
        instances = [
            inst.model_copy(deep=True)
            for inst in self._instances.values()
            if (project_id is None or inst.project_id == project_id)
            and (status is None or inst.status.value == status)
        ]
        return sorted(instances, key=lambda inst: inst.created_at, reverse=True)

    async def add_project(self, project: Project) -> Project:
        self._projects[project.id] = project.model_copy(deep=True)
        return project

    async def add_template(self, template: FlowTemplate) -> FlowTemplate:
        self._templates[template.id] = template.model_copy(deep=True)
        return template

    async def add_file_node(self, file_node: FileNode) -> FileNode:
        self._file_nodes[file_node.id] = file_node.model_copy(deep=True)
        return file_node

    async def add_document(self, document: FlowDocument) -> FlowDocument:
        self._documents[document.id] = document.model_copy(deep=True)
        return document


class _InMemorySession:
    """Stages writes and applies them to the repository on commit."""

    def __init__(self, repo: InMemoryFlowRepository) -> None:
        self._repo = repo
        self._staged: Dict[str, FlowInstance] = {}
        self._deleted: Set[str] = set()

    def _current(self, instance_id: str) -> FlowInstance | None:
        if instance_id in self._deleted:
            return None
        if instance_id in self._staged:
            return self._staged[instance_id]
        return self._repo._instances.get(instance_id)

    def _require(self, instance_id: str) -> FlowInstance:
        instance = self._current(instance_id)
        if instance is None:
            raise NotFoundError("flow instance", instance_id)
        return instance

    async def get_instance(self, instance_id: str) -> FlowInstance | None:
        instance = self._current(instance_id)
        return instance.model_copy(deep=True) if instance else None

    async def create_instance(self, instance: FlowInstance) -> FlowInstance:
        self._staged[instance.id] = instance.model_copy(deep=True)
        return instance

    async def update_instance(self, instance_id: str, **changes: Any) -> FlowInstance:
        current = self._require(instance_id)
        data = current.model_dump()
        data.update(changes)
        data["updated_at"] = utcnow()
        updated = FlowInstance.model_validate(data)
        self._staged[instance_id] = updated
        return updated.model_copy(deep=True)

    async def append_log(self, instance_id: str, entry: LogEntry) -> FlowInstance:
        current = self._require(instance_id)
        return await self.update_instance(
            instance_id, logs=[*current.logs, entry.model_copy()]
        )

    async def delete_instance(self, instance_id: str) -> Attachments:
        self._require(instance_id)
        self._staged.pop(instance_id, None)
        self._deleted.add(instance_id)
        files = [
            f.model_copy()
            for f in self._repo._file_nodes.values()
            if f.flow_instance_id == instance_id
        ]
        documents = [
            d.model_copy()
            for d in self._repo._documents.values()
            if d.instance_id == instance_id
        ]
        return files, documents

    async def get_template(self, template_id: str) -> FlowTemplate | None:
        template = self._repo._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def get_project(self, project_id: str) -> Project | None:
        project = self._repo._projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    # ------------------------------------------------------------------
    def commit(self) -> None:
        repo = self._repo
        for instance_id in self._deleted:
            repo._instances.pop(instance_id, None)
            repo._file_nodes = {
                k: f
                for k, f in repo._file_nodes.items()
                if f.flow_instance_id != instance_id
            }
            repo._documents = {
                k: d
                for k, d in repo._documents.items()
                if d.instance_id != instance_id
            }
        repo._instances.update(self._staged)
        self._staged.clear()
        self._deleted.clear()
