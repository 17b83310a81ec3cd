from __future__ import annotations

import logging
from typing import Any, Dict

from ..contracts import ExecutionContext, ResolvedNode, utcnow

logger = logging.getLogger(__name__)


async def execute_complaint_selector(
    node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
) -> Dict[str, Any]:
    """Confirm the selected complaint so downstream nodes can use it."""
    complaint_id = input.get("complaintId")
    if not complaint_id:
        raise ValueError("missing required complaintId")

    logger.info(f"Complaint selector node {node.id} selected {complaint_id}")
    return {
        "complaintId": complaint_id,
        "complaintDetail": input.get("complaintDetail"),
        "processedAt": utcnow().isoformat(),
        "status": "processed",
        "message": f"complaint {complaint_id} processed",
    }
