"""Export executor describing the file a node's data is exported to."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..contracts import ExecutionContext, ResolvedNode, utcnow

logger = logging.getLogger(__name__)

EXPORT_EXTENSIONS = {
    "csv": "csv",
    "excel": "xlsx",
    "pdf": "pdf",
    "json": "json",
}


async def execute_export(
    node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
) -> Dict[str, Any]:
    export_type = node.data.get("exportType")
    file_name = node.data.get("fileName")
    logger.info(f"Running export node {node.id}: {export_type} {file_name}")

    extension = EXPORT_EXTENSIONS.get(export_type)
    if extension is None:
        raise ValueError(f"unsupported export type: {export_type}")
    final_name = file_name or f"export.{extension}"
    return {
        **input,
        "exportResult": {
            "type": export_type,
            "fileName": final_name,
            "url": f"/exports/{final_name}",
            "timestamp": utcnow().isoformat(),
        },
    }
