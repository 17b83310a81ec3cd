"""SQL implementation of the flow repository (SQLite or PostgreSQL)."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from ..contracts import (
    FileNode,
    FlowDocument,
    FlowInstance,
    FlowTemplate,
    LogEntry,
    Project,
    utcnow,
)
from ..db import (
    FileNodeRecord,
    FlowDB,
    FlowDocumentRecord,
    FlowInstanceRecord,
    FlowTemplateRecord,
    ProjectRecord,
)
from ..errors import NotFoundError
from .repository import Attachments, FlowRepository

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_FIELDS = (
    "context",
    "nodes",
    "edges",
    "node_data",
    "node_states",
    "node_context",
    "logs",
)


def _to_model(model_cls: Type[ModelT], record: SQLModel) -> ModelT:
    return model_cls.model_validate(
        {name: getattr(record, name) for name in model_cls.model_fields}
    )


def _instance_values(instance: FlowInstance) -> dict[str, Any]:
    values = instance.model_dump()
    as_json = instance.model_dump(mode="json", by_alias=True)
    for name in JSON_FIELDS:
        values[name] = as_json[to_camel(name)]
    values["status"] = instance.status.value
    return values


class SQLFlowRepository(FlowRepository):
    """Persist flow state through SQLModel on an async SQLAlchemy engine."""

    def __init__(self, database_url: str) -> None:
        self.db = FlowDB(database_url)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_SQLSession"]:
        async with self.db.session() as session:
            async with session.begin():
                yield _SQLSession(session)

    async def get_instance(self, instance_id: str) -> FlowInstance | None:
        async with self.db.session() as session:
            record = await session.get(FlowInstanceRecord, instance_id)
            return _to_model(FlowInstance, record) if record else None

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[FlowInstance]:
        query = select(FlowInstanceRecord)
        if project_id is not None:
            query = query.where(FlowInstanceRecord.project_id == project_id)
        if status is not None:
            query = query.where(FlowInstanceRecord.status == status)
        query = query.order_by(FlowInstanceRecord.created_at.desc())
        async with self.db.session() as session:
            result = await session.execute(query)
            return [_to_model(FlowInstance, r) for r in result.scalars().all()]

    async def _add(self, record: SQLModel) -> None:
        async with self.db.session() as session:
            session.add(record)
            await session.commit()

    async def add_project(self, project: Project) -> Project:
        await self._add(ProjectRecord(**project.model_dump()))
        return project

    async def add_template(self, template: FlowTemplate) -> FlowTemplate:
        await self._add(FlowTemplateRecord(**template.model_dump(mode="json")))
        return template

    async def add_file_node(self, file_node: FileNode) -> FileNode:
        await self._add(FileNodeRecord(**file_node.model_dump()))
        return file_node

    async def add_document(self, document: FlowDocument) -> FlowDocument:
        await self._add(FlowDocumentRecord(**document.model_dump()))
        return document

    async def dispose(self) -> None:
        await self.db.dispose()


class _SQLSession:
    """Session operations bound to one open SQLAlchemy transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _require(self, instance_id: str) -> FlowInstanceRecord:
        record = await self._session.get(FlowInstanceRecord, instance_id)
        if record is None:
            raise NotFoundError("flow instance", instance_id)
        return record

    async def get_instance(self, instance_id: str) -> FlowInstance | None:
        record = await self._session.get(FlowInstanceRecord, instance_id)
        return _to_model(FlowInstance, record) if record else None

    async def create_instance(self, instance: FlowInstance) -> FlowInstance:
        self._session.add(FlowInstanceRecord(**_instance_values(instance)))
        await self._session.flush()
        return instance

    async def update_instance(self, instance_id: str, **changes: Any) -> FlowInstance:
        record = await self._require(instance_id)
        data = _to_model(FlowInstance, record).model_dump()
        data.update(changes)
        data["updated_at"] = utcnow()
        updated = FlowInstance.model_validate(data)
        # JSON columns are reassigned wholesale so the change is detected
        for name, value in _instance_values(updated).items():
            if name != "id":
                setattr(record, name, value)
        await self._session.flush()
        return updated

    async def append_log(self, instance_id: str, entry: LogEntry) -> FlowInstance:
        record = await self._require(instance_id)
        logs = [*(record.logs or []), entry.to_json_dict()]
        return await self.update_instance(instance_id, logs=logs)

    async def delete_instance(self, instance_id: str) -> Attachments:
        record = await self._require(instance_id)
        file_rows = (
            await self._session.execute(
                select(FileNodeRecord).where(
                    FileNodeRecord.flow_instance_id == instance_id
                )
            )
        ).scalars().all()
        document_rows = (
            await self._session.execute(
                select(FlowDocumentRecord).where(
                    FlowDocumentRecord.instance_id == instance_id
                )
            )
        ).scalars().all()
        files = [_to_model(FileNode, row) for row in file_rows]
        documents = [_to_model(FlowDocument, row) for row in document_rows]
        for row in [*file_rows, *document_rows]:
            await self._session.delete(row)
        # dependents must be gone before the instance row
        await self._session.flush()
        await self._session.delete(record)
        await self._session.flush()
        return files, documents

    async def get_template(self, template_id: str) -> FlowTemplate | None:
        record = await self._session.get(FlowTemplateRecord, template_id)
        return _to_model(FlowTemplate, record) if record else None

    async def get_project(self, project_id: str) -> Project | None:
        record = await self._session.get(ProjectRecord, project_id)
        return _to_model(Project, record) if record else None
