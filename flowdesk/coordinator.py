"""Execution of a single node of a flow instance."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional

from pydantic_core import to_jsonable_python

from .constants import (
    CARRIED_NODE_FIELDS,
    COMPLAINT_SELECTOR_LABELS,
    COMPLAINT_SELECTOR_TYPE,
)
from .contracts import (
    ErrorDetails,
    ExecutionContext,
    FlowInstance,
    NodeContextEntry,
    NodeState,
    NodeStatus,
    ResolvedNode,
    utcnow,
)
from .errors import InvalidInputError, NodeExecutionError, NotFoundError
from .execution_log import ExecutionLog, node_entry
from .executors import NodeExecutorRegistry
from .persistence import FlowRepository

logger = logging.getLogger(__name__)


def resolve_node(
    instance: FlowInstance,
    node_id: str,
    working_input: Dict[str, Any],
    stored: Optional[Dict[str, Any]] = None,
) -> ResolvedNode:
    """Build the canonical node for ``node_id``.

    The type comes from ``nodeType`` in the merged input or the type kept in
    the stored node data, then from the instance's graph snapshot, then from
    the legacy selector label. A plain ``type`` input field is node
    configuration (e.g. a chart type), never the node type.
    """
    raw = instance.find_node(node_id)
    snapshot = ResolvedNode.from_raw(raw) if raw else None

    node_type = working_input.get("nodeType") or (stored or {}).get("type")
    if not node_type and snapshot is not None:
        node_type = snapshot.type
    label = working_input.get("label") or (snapshot.label if snapshot else None)
    if not node_type and label in COMPLAINT_SELECTOR_LABELS:
        node_type = COMPLAINT_SELECTOR_TYPE
    if not node_type:
        raise InvalidInputError(
            f"cannot determine node type for node {node_id}", {"node_id": node_id}
        )

    defaults = snapshot.data if snapshot else {}
    return ResolvedNode(
        id=node_id,
        type=node_type,
        label=label,
        category=working_input.get("category")
        or (snapshot.category if snapshot else None),
        data={**defaults, **working_input},
    )


class NodeExecutionCoordinator:
    """Runs exactly one node and records its state on the instance.

    The whole call is one transaction. An executor failure is recorded in
    ``node_states`` and does not change the instance status; the caller gets
    the updated instance back in both cases.
    """

    def __init__(
        self,
        repository: FlowRepository,
        registry: NodeExecutorRegistry,
        execution_log: Optional[ExecutionLog] = None,
    ) -> None:
        self._repository = repository
        self._registry = registry
        self._log = execution_log or ExecutionLog()

    async def execute_node(
        self, instance_id: str, node_id: str, input: Optional[Mapping[str, Any]]
    ) -> FlowInstance:
        if not instance_id:
            raise InvalidInputError("missing flow instance id")
        if not node_id:
            raise InvalidInputError("missing node id")
        if not isinstance(input, Mapping) or not input:
            raise InvalidInputError("node input must not be empty")

        logger.info(f"Executing node {node_id} of flow instance {instance_id}")
        logger.debug(f"Node {node_id} input: {dict(input)}")

        async with self._repository.transaction() as session:
            instance = await session.get_instance(instance_id)
            if instance is None:
                raise NotFoundError("flow instance", instance_id)

            stored = dict(instance.node_data.get(node_id) or {})
            working = {**stored, **input}
            node = resolve_node(instance, node_id, working, stored)

            previous = instance.node_states.get(node_id)
            running = NodeState(
                status=NodeStatus.RUNNING,
                start_time=utcnow(),
                retry_count=(previous.retry_count if previous else 0) + 1,
            )
            node_data = {
                **instance.node_data,
                node_id: {**stored, **input, "type": node.type},
            }
            instance = await session.update_instance(
                instance_id,
                node_states={**instance.node_states, node_id: running},
                node_data=node_data,
            )

            started = time.perf_counter()
            try:
                output = await self._registry.execute(
                    node, working, ExecutionContext(flow_instance=instance)
                )
            except NodeExecutionError as exc:
                execution_time = time.perf_counter() - started
                logger.warning(f"Node {node_id} failed: {exc.message}")
                failed = running.model_copy(
                    update={
                        "status": NodeStatus.FAILED,
                        "end_time": utcnow(),
                        "execution_time": execution_time,
                        "error": exc.message,
                        "error_details": ErrorDetails(**exc.error_details),
                        "suggestion": exc.suggestion,
                    }
                )
                await session.update_instance(
                    instance_id,
                    node_states={**instance.node_states, node_id: failed},
                    node_data=node_data,
                )
                return await self._log.append(
                    session,
                    instance_id,
                    node_entry(node_id, f"node {node_id} failed: {exc.message}"),
                )

            execution_time = time.perf_counter() - started
            # stored as JSON by the SQL backend
            output = to_jsonable_python(output, fallback=str)
            completed = running.model_copy(
                update={
                    "status": NodeStatus.COMPLETED,
                    "end_time": utcnow(),
                    "execution_time": execution_time,
                }
            )
            if isinstance(output, Mapping):
                carried = {
                    key: output[key]
                    for key in CARRIED_NODE_FIELDS
                    if output.get(key) is not None
                }
                node_data[node_id] = {**node_data[node_id], **carried}
            await session.update_instance(
                instance_id,
                node_states={**instance.node_states, node_id: completed},
                node_context={
                    **instance.node_context,
                    node_id: NodeContextEntry(
                        input=working, output=output, execution_time=execution_time
                    ),
                },
                node_data=node_data,
            )
            logger.info(f"Node {node_id} completed in {execution_time:.3f}s")
            return await self._log.append(
                session,
                instance_id,
                node_entry(
                    node_id, f"node {node_id} completed in {execution_time:.3f}s"
                ),
            )
