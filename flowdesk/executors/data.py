"""Data source and transformation executors."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List

from ..contracts import ExecutionContext, ResolvedNode

logger = logging.getLogger(__name__)


async def execute_data_source(
    node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
) -> Dict[str, Any]:
    source_type = node.data.get("sourceType")
    dataset_id = node.data.get("datasetId")
    logger.info(f"Running data source node {node.id}: {source_type} {dataset_id}")

    if source_type == "dataset":
        if not dataset_id:
            raise ValueError("missing required datasetId for dataset source")
        return {"dataset": {"id": dataset_id, "columns": [], "rows": []}}
    raise ValueError(f"unsupported data source type: {source_type}")


def _rows(input: Dict[str, Any]) -> List[Dict[str, Any]]:
    dataset = input.get("dataset") or {}
    return list(dataset.get("rows") or [])


async def execute_transformation(
    node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
) -> Dict[str, Any]:
    """Filter rows by equality conditions or count them per group."""
    transformation_type = node.data.get("transformationType")
    logger.info(f"Running transformation node {node.id}: {transformation_type}")

    if transformation_type == "filter":
        conditions = node.data.get("conditions") or {}
        rows = [
            row
            for row in _rows(input)
            if all(row.get(col) == value for col, value in conditions.items())
        ]
        return {**input, "rows": rows, "filtered": True}
    if transformation_type == "aggregate":
        group_by = node.data.get("groupBy")
        counts = (
            Counter(str(row.get(group_by)) for row in _rows(input)) if group_by else {}
        )
        return {**input, "groups": dict(counts), "aggregated": True}
    raise ValueError(f"unsupported transformation type: {transformation_type}")
