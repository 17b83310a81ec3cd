"""Type-keyed dispatch of nodes to executor functions."""

from __future__ import annotations

import errno
import logging
import traceback
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from ..constants import (
    COMPLAINT_SELECTOR_LABELS,
    COMPLAINT_SELECTOR_TYPE,
    SUGGEST_CONNECTION,
    SUGGEST_DEFAULT,
    SUGGEST_MISSING_FIELD,
    SUGGEST_UNSUPPORTED,
)
from ..contracts import ExecutionContext, ResolvedNode
from ..errors import NodeExecutionError, UnsupportedNodeTypeError

logger = logging.getLogger(__name__)


class NodeExecutor(Protocol):
    """Stateless async handler performing the work of one node type."""

    def __call__(
        self, node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
    ) -> Awaitable[Any]: ...


ResolutionStrategy = Callable[
    [ResolvedNode, Mapping[str, NodeExecutor]], Optional[NodeExecutor]
]

# (type fragment, data.category value, registered type key)
CATEGORY_ROUTES = (
    ("DataSource", "dataSource", "DataSourceNode"),
    ("Transform", "transformation", "TransformationNode"),
    ("Analysis", "analysis", "AnalysisNode"),
    ("Visualization", "visualization", "VisualizationNode"),
    ("Export", "export", "ExportNode"),
)


def match_sentinel(
    node: ResolvedNode, executors: Mapping[str, NodeExecutor]
) -> Optional[NodeExecutor]:
    """The complaint selector wins whenever its label or type is present."""
    if node.label in COMPLAINT_SELECTOR_LABELS or node.type == COMPLAINT_SELECTOR_TYPE:
        return executors.get(COMPLAINT_SELECTOR_TYPE)
    return None


def match_exact_type(
    node: ResolvedNode, executors: Mapping[str, NodeExecutor]
) -> Optional[NodeExecutor]:
    return executors.get(node.type) if node.type else None


def match_type_fragment(
    node: ResolvedNode, executors: Mapping[str, NodeExecutor]
) -> Optional[NodeExecutor]:
    if not node.type:
        return None
    for fragment, _, key in CATEGORY_ROUTES:
        if fragment in node.type:
            return executors.get(key)
    return None


def match_category(
    node: ResolvedNode, executors: Mapping[str, NodeExecutor]
) -> Optional[NodeExecutor]:
    for _, category, key in CATEGORY_ROUTES:
        if node.category == category:
            return executors.get(key)
    return None


DEFAULT_STRATEGIES: Sequence[ResolutionStrategy] = (
    match_sentinel,
    match_exact_type,
    match_type_fragment,
    match_category,
)


def error_code(exc: BaseException) -> Optional[str]:
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        return code
    if isinstance(exc, ConnectionRefusedError) or (
        isinstance(exc, OSError) and exc.errno == errno.ECONNREFUSED
    ):
        return "ECONNREFUSED"
    return None


def classify_suggestion(exc: BaseException) -> str:
    """Pick a remediation hint for a failed node from its error."""
    message = str(exc).lower()
    if isinstance(exc, UnsupportedNodeTypeError) or "unsupported node type" in message:
        return SUGGEST_UNSUPPORTED
    if "missing required" in message:
        return SUGGEST_MISSING_FIELD
    if (
        error_code(exc) == "ECONNREFUSED"
        or "econnrefused" in message
        or "connection refused" in message
    ):
        return SUGGEST_CONNECTION
    return SUGGEST_DEFAULT


def describe_error(exc: BaseException) -> Dict[str, Any]:
    return {
        "message": str(exc),
        "stack": "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        ),
        "code": error_code(exc),
        "name": type(exc).__name__,
    }


class NodeExecutorRegistry:
    """Maps node type keys to executors.

    Built once at startup and handed to the coordinator. Resolution walks
    ``strategies`` in order and takes the first match, so nodes that carry
    only a label or a category still find a handler.
    """

    def __init__(self, strategies: Optional[Sequence[ResolutionStrategy]] = None):
        self._executors: Dict[str, NodeExecutor] = {}
        self._strategies: List[ResolutionStrategy] = list(
            strategies or DEFAULT_STRATEGIES
        )

    def register(self, type_key: str, executor: NodeExecutor) -> None:
        """Associate ``type_key`` with ``executor``; the last call wins."""
        self._executors[type_key] = executor

    def registered_types(self) -> List[str]:
        return sorted(self._executors)

    def resolve(self, node: ResolvedNode) -> NodeExecutor:
        for strategy in self._strategies:
            executor = strategy(node, self._executors)
            if executor is not None:
                logger.debug(
                    f"Resolved node {node.id} ({node.type}) via {strategy.__name__}"
                )
                return executor
        raise UnsupportedNodeTypeError(node.type)

    async def execute(
        self, node: ResolvedNode, input: Dict[str, Any], context: ExecutionContext
    ) -> Any:
        """Resolve and run the executor for ``node``.

        Raises:
            NodeExecutionError: wrapping whatever the resolution or the
                executor raised, with a suggestion and diagnostic detail.
        """
        try:
            executor = self.resolve(node)
            return await executor(node, input, context)
        except Exception as exc:
            logger.error(f"Executor for node {node.id} ({node.type}) failed: {exc}")
            raise NodeExecutionError(
                str(exc), classify_suggestion(exc), describe_error(exc)
            ) from exc
