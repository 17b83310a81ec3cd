from datetime import datetime, timezone

import pytest

from flowdesk.contracts import (
    FileNode,
    FlowDocument,
    FlowInstance,
    FlowTemplate,
    InstanceStatus,
    NodeState,
    NodeStatus,
    Project,
)
from flowdesk.db import to_async_url
from flowdesk.execution_log import system_entry
from flowdesk.persistence import InMemoryFlowRepository, SQLFlowRepository


def _instance(**kwargs) -> FlowInstance:
    return FlowInstance(
        project_id="p1",
        template_id="t1",
        nodes=[{"id": "A", "type": "DataSourceNode", "data": {"label": "Source"}}],
        **kwargs,
    )


@pytest.mark.parametrize(
    "url, expected",
    [
        ("sqlite:///tmp/x.db", "sqlite+aiosqlite:////tmp/x.db"),
        ("sqlite://flow.db", "sqlite+aiosqlite:///flow.db"),
        ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
        ("postgres://u:p@db/flows", "postgresql+asyncpg://u:p@db/flows"),
        ("postgresql://u:p@db/flows", "postgresql+asyncpg://u:p@db/flows"),
    ],
)
def test_to_async_url(url, expected):
    assert to_async_url(url) == expected


def test_to_async_url_rejects_unknown_scheme():
    with pytest.raises(ValueError):
        to_async_url("mysql://db/flows")


@pytest.mark.asyncio
async def test_inmemory_transaction_commits_on_success():
    repo = InMemoryFlowRepository()
    instance = _instance()

    async with repo.transaction() as session:
        await session.create_instance(instance)
        await session.append_log(instance.id, system_entry("created"))
        assert await repo.get_instance(instance.id) is None

    stored = await repo.get_instance(instance.id)
    assert stored is not None
    assert [e.message for e in stored.logs] == ["created"]


@pytest.mark.asyncio
async def test_inmemory_transaction_rolls_back_on_error():
    repo = InMemoryFlowRepository()
    instance = _instance()
    async with repo.transaction() as session:
        await session.create_instance(instance)

    with pytest.raises(RuntimeError):
        async with repo.transaction() as session:
            await session.update_instance(instance.id, status=InstanceStatus.RUNNING)
            raise RuntimeError("storage failure")

    stored = await repo.get_instance(instance.id)
    assert stored.status == InstanceStatus.DRAFT


@pytest.mark.asyncio
async def test_inmemory_returns_copies():
    repo = InMemoryFlowRepository()
    instance = _instance()
    async with repo.transaction() as session:
        await session.create_instance(instance)

    fetched = await repo.get_instance(instance.id)
    fetched.nodes.append({"id": "B"})
    assert len((await repo.get_instance(instance.id)).nodes) == 1


@pytest.mark.asyncio
async def test_inmemory_delete_removes_attachments():
    repo = InMemoryFlowRepository()
    instance = _instance()
    async with repo.transaction() as session:
        await session.create_instance(instance)
    await repo.add_file_node(
        FileNode(flow_instance_id=instance.id, file_name="a.csv", storage_path="a.csv")
    )
    await repo.add_document(
        FlowDocument(instance_id=instance.id, title="Report", storage_path="r.pdf")
    )

    async with repo.transaction() as session:
        files, documents = await session.delete_instance(instance.id)

    assert [f.file_name for f in files] == ["a.csv"]
    assert [d.title for d in documents] == ["Report"]
    assert await repo.get_instance(instance.id) is None
    assert repo._file_nodes == {}
    assert repo._documents == {}


@pytest.mark.asyncio
async def test_list_instances_filters_and_orders_newest_first():
    repo = InMemoryFlowRepository()
    first = _instance(created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    second = _instance(
        status=InstanceStatus.RUNNING,
        created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
    )
    other = FlowInstance(project_id="p2", template_id="t1")
    async with repo.transaction() as session:
        for inst in (first, second, other):
            await session.create_instance(inst)

    ids = [i.id for i in await repo.list_instances(project_id="p1")]
    assert ids == [second.id, first.id]
    running = await repo.list_instances(status="running")
    assert [i.id for i in running] == [second.id]


@pytest.mark.asyncio
async def test_sql_repository_crud(tmp_path):
    repo = SQLFlowRepository(f"sqlite://{tmp_path / 'flows.db'}")
    await repo.add_project(Project(id="p1", name="Line audit"))
    await repo.add_template(
        FlowTemplate(id="t1", name="Audit", nodes=[{"id": "A"}], edges=[])
    )

    instance = _instance(context={"dataset": "d1"})
    async with repo.transaction() as session:
        assert (await session.get_project("p1")).name == "Line audit"
        assert (await session.get_template("t1")).nodes == [{"id": "A"}]
        await session.create_instance(instance)
        await session.update_instance(
            instance.id,
            node_states={"A": NodeState(status=NodeStatus.RUNNING, retry_count=1)},
            node_data={"A": {"complaintId": "C-1"}},
        )
        await session.append_log(instance.id, system_entry("created"))

    stored = await repo.get_instance(instance.id)
    assert stored is not None
    assert stored.context == {"dataset": "d1"}
    assert stored.nodes[0]["data"] == {"label": "Source"}
    assert stored.node_states["A"].status == NodeStatus.RUNNING
    assert stored.node_states["A"].retry_count == 1
    assert stored.node_data == {"A": {"complaintId": "C-1"}}
    assert [e.message for e in stored.logs] == ["created"]

    listed = await repo.list_instances(project_id="p1", status="draft")
    assert [i.id for i in listed] == [instance.id]
    await repo.dispose()


@pytest.mark.asyncio
async def test_sql_repository_rolls_back_on_error(tmp_path):
    repo = SQLFlowRepository(f"sqlite://{tmp_path / 'flows.db'}")
    instance = _instance()
    async with repo.transaction() as session:
        await session.create_instance(instance)

    with pytest.raises(RuntimeError):
        async with repo.transaction() as session:
            await session.update_instance(instance.id, status=InstanceStatus.RUNNING)
            await session.append_log(instance.id, system_entry("started"))
            raise RuntimeError("storage failure")

    stored = await repo.get_instance(instance.id)
    assert stored.status == InstanceStatus.DRAFT
    assert stored.logs == []
    await repo.dispose()


@pytest.mark.asyncio
async def test_sql_repository_delete_with_attachments(tmp_path):
    repo = SQLFlowRepository(f"sqlite://{tmp_path / 'flows.db'}")
    instance = _instance()
    async with repo.transaction() as session:
        await session.create_instance(instance)
    await repo.add_file_node(
        FileNode(flow_instance_id=instance.id, file_name="a.csv", storage_path="a.csv")
    )
    await repo.add_document(FlowDocument(instance_id=instance.id, title="Report"))

    async with repo.transaction() as session:
        files, documents = await session.delete_instance(instance.id)

    assert [f.storage_path for f in files] == ["a.csv"]
    assert [d.title for d in documents] == ["Report"]
    assert await repo.get_instance(instance.id) is None
    await repo.dispose()
