"""Domain errors raised by the flow-instance core."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class FlowdeskError(Exception):
    """Base class for errors surfaced to callers as structured payloads."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(FlowdeskError):
    status_code = 404
    error_code = "not_found"

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            f"{kind} {identifier} not found", {"kind": kind, "id": identifier}
        )
        self.kind = kind
        self.identifier = identifier


class InvalidTransitionError(FlowdeskError):
    """A status guard was violated."""

    status_code = 400
    error_code = "invalid_transition"

    def __init__(self, action: str, current: str, required: Iterable[str]):
        required = tuple(required)
        super().__init__(
            f"cannot {action} a flow instance in status '{current}'; "
            f"requires {' or '.join(required)}",
            {"action": action, "status": current, "required": list(required)},
        )
        self.action = action
        self.current = current
        self.required = required


class InvalidInputError(FlowdeskError):
    status_code = 400
    error_code = "invalid_input"


class UnsupportedNodeTypeError(InvalidInputError):
    error_code = "unsupported_node_type"

    def __init__(self, node_type: Optional[str]):
        super().__init__(
            f"unsupported node type: {node_type}", {"node_type": node_type}
        )
        self.node_type = node_type


class UnauthorizedDeleteError(FlowdeskError):
    status_code = 403
    error_code = "forbidden"


class ExternalServiceError(FlowdeskError):
    """Raised by executors when the external analysis API call fails."""

    status_code = 502
    error_code = "external_service_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, {"code": code, "status": status})
        self.code = code
        self.status = status


class NodeExecutionError(FlowdeskError):
    """An executor raised while running a node.

    Never surfaced as a failed call: the coordinator records it into the
    node state and returns the instance.
    """

    status_code = 200
    error_code = "node_execution_failed"

    def __init__(
        self,
        message: str,
        suggestion: str,
        error_details: Dict[str, Any],
    ):
        super().__init__(message, error_details)
        self.suggestion = suggestion
        self.error_details = error_details
