"""Visualization executor producing chart configurations."""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..contracts import ExecutionContext, ResolvedNode

logger = logging.getLogger(__name__)

CHART_TITLES = {
    "bar": "Bar chart",
    "line": "Line chart",
    "scatter": "Scatter chart",
    "pie": "Pie chart",
}


def chart_config(chart_type: str, input: Dict[str, Any], node_data: Dict[str, Any]):
    options = node_data.get("options") or {
        "responsive": True,
        "plugins": {
            "legend": {"position": "top"},
            "title": {
                "display": True,
                "text": node_data.get("title") or CHART_TITLES[chart_type],
            },
        },
    }
    return {"type": chart_type, "data": input.get("dataset"), "options": options}


async def execute_visualization(
    node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
) -> Dict[str, Any]:
    visualization_type = node.data.get("visualizationType")
    logger.info(f"Running visualization node {node.id}: {visualization_type}")

    if visualization_type not in CHART_TITLES:
        raise ValueError(f"unsupported visualization type: {visualization_type}")
    return {**input, "chartConfig": chart_config(visualization_type, input, node.data)}
