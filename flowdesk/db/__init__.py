from .models import (
    FileNodeRecord,
    FlowDocumentRecord,
    FlowInstanceRecord,
    FlowTemplateRecord,
    ProjectRecord,
)
from .flow_db import FlowDB, to_async_url

__all__ = [
    "FlowInstanceRecord",
    "ProjectRecord",
    "FlowTemplateRecord",
    "FileNodeRecord",
    "FlowDocumentRecord",
    "FlowDB",
    "to_async_url",
]
