"""Flowdesk: flow-instance lifecycle and node execution for analysis projects."""

from .config import FlowdeskConfig, load_config
from .contracts import FlowInstance, InstanceStatus, LogEntry, NodeState, User
from .coordinator import NodeExecutionCoordinator
from .errors import FlowdeskError
from .executors import NodeExecutorRegistry, build_default_registry
from .persistence import get_repository
from .service import FlowInstanceService, create_service
from .state import FlowInstanceStateMachine

__version__ = "0.1.0"
__all__ = [
    "FlowInstance",
    "FlowInstanceService",
    "FlowInstanceStateMachine",
    "FlowdeskConfig",
    "FlowdeskError",
    "InstanceStatus",
    "LogEntry",
    "NodeExecutionCoordinator",
    "NodeExecutorRegistry",
    "NodeState",
    "User",
    "build_default_registry",
    "create_service",
    "get_repository",
    "load_config",
]
