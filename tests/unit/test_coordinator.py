import pytest

from flowdesk.contracts import FlowInstance, InstanceStatus, LogType, NodeStatus
from flowdesk.coordinator import NodeExecutionCoordinator, resolve_node
from flowdesk.errors import InvalidInputError, NotFoundError
from flowdesk.executors import NodeExecutorRegistry
from flowdesk.executors.visualization import execute_visualization
from flowdesk.persistence import InMemoryFlowRepository, SQLFlowRepository

NODES = [
    {"id": "A", "type": "EchoNode", "data": {"label": "Echo", "threshold": 3}},
    {"id": "B", "type": "RemoteNode", "data": {"label": "Remote"}},
    {"id": "C", "data": {"label": "客訴單號選擇器"}},
    {"id": "D", "data": {"label": "Unknown"}},
]


async def _echo(node, input, context):
    return dict(input)


async def _refused(node, input, context):
    raise ConnectionRefusedError("connect ECONNREFUSED 127.0.0.1:8000")


async def _complaint(node, input, context):
    return {"complaintId": input["complaintId"], "complaintDetail": {"title": "noise"}}


def _registry() -> NodeExecutorRegistry:
    registry = NodeExecutorRegistry()
    registry.register("EchoNode", _echo)
    registry.register("RemoteNode", _refused)
    registry.register("ComplaintSelectorNode", _complaint)
    return registry


async def _setup(status=InstanceStatus.RUNNING):
    repo = InMemoryFlowRepository()
    instance = FlowInstance(
        project_id="p1", template_id="t1", status=status, nodes=NODES
    )
    async with repo.transaction() as session:
        await session.create_instance(instance)
    return repo, NodeExecutionCoordinator(repo, _registry()), instance


def test_resolve_node_prefers_node_type_then_snapshot_then_label():
    instance = FlowInstance(project_id="p1", template_id="t1", nodes=NODES)

    assert resolve_node(instance, "A", {"nodeType": "RemoteNode"}).type == "RemoteNode"
    assert resolve_node(instance, "A", {"type": "bar"}).type == "EchoNode"
    assert (
        resolve_node(instance, "A", {"x": 1}, stored={"type": "RemoteNode"}).type
        == "RemoteNode"
    )
    node = resolve_node(instance, "A", {"x": 1})
    assert node.type == "EchoNode"
    assert node.data == {"label": "Echo", "threshold": 3, "x": 1}
    assert resolve_node(instance, "C", {"x": 1}).type == "ComplaintSelectorNode"

    with pytest.raises(InvalidInputError, match="cannot determine node type"):
        resolve_node(instance, "D", {"x": 1})


@pytest.mark.asyncio
async def test_successful_execution_records_state_and_context():
    repo, coordinator, instance = await _setup()

    result = await coordinator.execute_node(instance.id, "A", {"complaintId": "C-100"})

    state = result.node_states["A"]
    assert state.status == NodeStatus.COMPLETED
    assert state.retry_count == 1
    assert state.end_time is not None
    assert state.execution_time >= 0
    assert result.node_context["A"].output == {"complaintId": "C-100"}
    assert result.node_data["A"]["complaintId"] == "C-100"
    assert result.node_data["A"]["type"] == "EchoNode"
    assert result.logs[-1].type == LogType.NODE
    assert result.logs[-1].node_id == "A"
    assert await repo.get_instance(instance.id) == result


@pytest.mark.asyncio
async def test_empty_input_is_rejected_without_mutation():
    repo, coordinator, instance = await _setup()

    with pytest.raises(InvalidInputError):
        await coordinator.execute_node(instance.id, "B", {})
    with pytest.raises(InvalidInputError):
        await coordinator.execute_node(instance.id, "", {"a": 1})

    assert await repo.get_instance(instance.id) == instance


@pytest.mark.asyncio
async def test_missing_instance_is_not_found():
    _, coordinator, _ = await _setup()
    with pytest.raises(NotFoundError):
        await coordinator.execute_node("missing", "A", {"a": 1})


@pytest.mark.asyncio
async def test_failed_node_keeps_instance_status():
    repo, coordinator, instance = await _setup()

    result = await coordinator.execute_node(instance.id, "B", {"query": "x"})

    state = result.node_states["B"]
    assert state.status == NodeStatus.FAILED
    assert "ECONNREFUSED" in state.error
    assert "network connectivity" in state.suggestion
    assert state.error_details.name == "ConnectionRefusedError"
    assert state.error_details.code == "ECONNREFUSED"
    assert "B" not in result.node_context
    assert result.node_data["B"] == {"query": "x", "type": "RemoteNode"}
    assert result.status == InstanceStatus.RUNNING
    assert (await repo.get_instance(instance.id)).status == InstanceStatus.RUNNING


@pytest.mark.asyncio
async def test_repeated_execution_merges_node_data_and_counts_attempts():
    _, coordinator, instance = await _setup()

    await coordinator.execute_node(instance.id, "A", {"a": 1, "shared": "first"})
    result = await coordinator.execute_node(instance.id, "A", {"b": 2, "shared": "second"})

    assert result.node_data["A"] == {
        "a": 1,
        "b": 2,
        "shared": "second",
        "type": "EchoNode",
    }
    assert result.node_states["A"].retry_count == 2
    assert result.node_context["A"].input["a"] == 1


@pytest.mark.asyncio
async def test_execution_does_not_depend_on_instance_status():
    _, coordinator, instance = await _setup(status=InstanceStatus.DRAFT)
    result = await coordinator.execute_node(instance.id, "A", {"a": 1})
    assert result.node_states["A"].status == NodeStatus.COMPLETED
    assert result.status == InstanceStatus.DRAFT


@pytest.mark.asyncio
async def test_selector_output_fields_are_carried_into_node_data():
    _, coordinator, instance = await _setup()

    result = await coordinator.execute_node(instance.id, "C", {"complaintId": "C-7"})

    assert result.node_data["C"]["type"] == "ComplaintSelectorNode"
    assert result.node_data["C"]["complaintDetail"] == {"title": "noise"}


@pytest.mark.asyncio
async def test_unknown_type_from_input_fails_node_not_call():
    _, coordinator, instance = await _setup()

    result = await coordinator.execute_node(
        instance.id, "A", {"nodeType": "MysteryNode"}
    )

    state = result.node_states["A"]
    assert state.status == NodeStatus.FAILED
    assert "unsupported node type" in state.error
    assert "administrator" in state.suggestion


@pytest.mark.asyncio
async def test_chart_type_input_does_not_replace_node_type():
    repo = InMemoryFlowRepository()
    instance = FlowInstance(
        project_id="p1",
        template_id="t1",
        nodes=[
            {"id": "V", "type": "VisualizationNode", "data": {"visualizationType": "bar"}}
        ],
    )
    async with repo.transaction() as session:
        await session.create_instance(instance)
    registry = NodeExecutorRegistry()
    registry.register("VisualizationNode", execute_visualization)
    coordinator = NodeExecutionCoordinator(repo, registry)

    result = await coordinator.execute_node(
        instance.id, "V", {"type": "bar", "dataset": {"rows": []}}
    )

    assert result.node_states["V"].status == NodeStatus.COMPLETED
    assert result.node_data["V"]["type"] == "VisualizationNode"
    assert result.node_context["V"].output["chartConfig"]["type"] == "bar"


class _Reading:
    def __str__(self):
        return "reading 42.5"


async def _reading(node, input, context):
    return {"reading": _Reading(), "count": 1}


@pytest.mark.asyncio
async def test_non_json_output_is_stored_by_sql_repository(tmp_path):
    repo = SQLFlowRepository(f"sqlite://{tmp_path / 'flows.db'}")
    instance = FlowInstance(
        project_id="p1",
        template_id="t1",
        status=InstanceStatus.RUNNING,
        nodes=[{"id": "S", "type": "SensorNode", "data": {"label": "Sensor"}}],
    )
    async with repo.transaction() as session:
        await session.create_instance(instance)
    registry = NodeExecutorRegistry()
    registry.register("SensorNode", _reading)
    coordinator = NodeExecutionCoordinator(repo, registry)

    result = await coordinator.execute_node(instance.id, "S", {"line": "L1"})

    assert result.node_states["S"].status == NodeStatus.COMPLETED
    assert result.node_context["S"].output == {"reading": "reading 42.5", "count": 1}
    stored = await repo.get_instance(instance.id)
    assert stored.node_context["S"].output == {"reading": "reading 42.5", "count": 1}
    await repo.dispose()
