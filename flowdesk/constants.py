"""Shared constants for flowdesk."""

from __future__ import annotations

DELETABLE_STATUSES = ("draft", "failed")
ADMIN_ROLES = ("ADMIN", "SUPERADMIN")

COMPLAINT_SELECTOR_TYPE = "ComplaintSelectorNode"
# Legacy records only carry the visible label of the selector node.
COMPLAINT_SELECTOR_LABELS = ("客訴單號選擇器", "Complaint Selector")

# Domain fields always carried forward into persisted node data.
CARRIED_NODE_FIELDS = ("complaintId", "complaintDetail")

DEFAULT_EXTERNAL_API_URL = "http://localhost:8000"
DEFAULT_EXTERNAL_API_TIMEOUT = 30.0

MSG_INSTANCE_CREATED = "flow instance created"
MSG_INSTANCE_UPDATED = "flow instance updated"
MSG_INSTANCE_STARTED = "flow instance started"
MSG_INSTANCE_PAUSED = "flow instance paused"
MSG_INSTANCE_RESUMED = "flow instance resumed"
MSG_INSTANCE_STOPPED = "flow instance stopped"
MSG_INSTANCE_COMPLETED = "flow instance completed"
MSG_INSTANCE_FAILED = "flow instance failed"

SUGGEST_UNSUPPORTED = (
    "This node type is not supported, please contact the system administrator"
)
SUGGEST_MISSING_FIELD = "Please make sure all required input is supplied"
SUGGEST_CONNECTION = (
    "Cannot reach the external service, please check network connectivity"
)
SUGGEST_DEFAULT = "Please check the input data and retry"
