"""Repository abstraction for flow-instance persistence."""

from __future__ import annotations

from typing import Any, AsyncContextManager, List, Optional, Protocol, Tuple

from ..contracts import (
    FileNode,
    FlowDocument,
    FlowInstance,
    FlowTemplate,
    LogEntry,
    Project,
)

Attachments = Tuple[List[FileNode], List[FlowDocument]]


class FlowSession(Protocol):
    """Operations available inside a single transaction."""

    async def get_instance(self, instance_id: str) -> FlowInstance | None:
        """Load an instance, seeing writes made earlier in this transaction."""

    async def create_instance(self, instance: FlowInstance) -> FlowInstance:
        """Insert a new instance."""

    async def update_instance(self, instance_id: str, **changes: Any) -> FlowInstance:
        """Apply a partial update and return the resulting instance."""

    async def append_log(self, instance_id: str, entry: LogEntry) -> FlowInstance:
        """Push ``entry`` onto the instance's log."""

    async def delete_instance(self, instance_id: str) -> Attachments:
        """Remove the instance with its file nodes and documents.

        Returns the removed dependent records so callers can clean up blobs.
        """

    async def get_template(self, template_id: str) -> FlowTemplate | None:
        """Retrieve a flow template by id."""

    async def get_project(self, project_id: str) -> Project | None:
        """Retrieve a project by id."""


class FlowRepository(Protocol):
    """Protocol for flow-instance persistence backends."""

    def transaction(self) -> AsyncContextManager[FlowSession]:
        """Open a unit of work committed on exit and discarded on error."""

    async def get_instance(self, instance_id: str) -> FlowInstance | None:
        """Retrieve the committed instance by id."""

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[FlowInstance]:
        """Return instances, newest first, optionally filtered."""

    async def add_project(self, project: Project) -> Project:
        """Persist a project record."""

    async def add_template(self, template: FlowTemplate) -> FlowTemplate:
        """Persist a flow template record."""

    async def add_file_node(self, file_node: FileNode) -> FileNode:
        """Attach an uploaded file to an instance."""

    async def add_document(self, document: FlowDocument) -> FlowDocument:
        """Attach a generated document to an instance."""
