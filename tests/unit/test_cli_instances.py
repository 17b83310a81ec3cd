import asyncio

from typer.testing import CliRunner

import flowdesk.persistence as persistence
from flowdesk.cli import app
from flowdesk.contracts import FlowInstance, InstanceStatus
from flowdesk.persistence import InMemoryFlowRepository

CATALOG = """
projects:
  - id: p1
    name: Line audit
templates:
  - id: t1
    name: Complaint review
    nodes:
      - id: A
        data:
          label: 客訴單號選擇器
      - id: B
        type: ExportNode
        data:
          exportType: csv
    edges:
      - id: e1
        source: A
        target: B
"""


def _setup_repo(monkeypatch, tmp_path) -> InMemoryFlowRepository:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FLOWDESK_CONFIG", raising=False)
    repo = InMemoryFlowRepository()
    persistence._repository_instance = repo
    return repo


def _load_catalog(runner: CliRunner, tmp_path) -> None:
    catalog = tmp_path / "catalog.yaml"
    catalog.write_text(CATALOG, encoding="utf-8")
    result = runner.invoke(app, ["catalog", "load", str(catalog)])
    assert result.exit_code == 0, result.stdout


def test_create_start_and_show_instance(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    runner = CliRunner()
    _load_catalog(runner, tmp_path)

    result = runner.invoke(
        app, ["instance", "create", "p1", "t1", "--context", '{"line": "L1"}']
    )
    assert result.exit_code == 0, result.stdout
    instances = asyncio.run(repo.list_instances())
    assert len(instances) == 1
    instance_id = instances[0].id
    assert instance_id in result.stdout

    result = runner.invoke(app, ["instance", "start", instance_id])
    assert result.exit_code == 0, result.stdout
    assert "running" in result.stdout

    result = runner.invoke(app, ["instance", "list", "--status", "running"])
    assert instance_id in result.stdout

    result = runner.invoke(app, ["instance", "show", instance_id])
    assert result.exit_code == 0
    assert f"Flow instance {instance_id}: running" in result.stdout


def test_execute_node_and_logs(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    runner = CliRunner()
    _load_catalog(runner, tmp_path)
    runner.invoke(app, ["instance", "create", "p1", "t1"])
    instance_id = asyncio.run(repo.list_instances())[0].id

    result = runner.invoke(
        app,
        ["instance", "execute", instance_id, "A", "--input", '{"complaintId": "C-100"}'],
    )
    assert result.exit_code == 0, result.stdout
    assert "Node A: completed" in result.stdout
    assert "C-100" in result.stdout

    result = runner.invoke(
        app, ["instance", "execute", instance_id, "B", "--input", '{"exportType": "docx"}']
    )
    assert result.exit_code == 0, result.stdout
    assert "Node B: failed" in result.stdout
    assert "Suggestion" in result.stdout

    result = runner.invoke(app, ["instance", "logs", instance_id, "--node", "B"])
    assert result.exit_code == 0
    assert "NODE" in result.stdout
    assert "SYSTEM" not in result.stdout


def test_errors_exit_with_code_one(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    runner = CliRunner()

    result = runner.invoke(app, ["instance", "show", "missing-id"])
    assert result.exit_code == 1
    assert "flow instance missing-id not found" in result.stdout

    instance = FlowInstance(
        project_id="p1", template_id="t1", status=InstanceStatus.RUNNING
    )

    async def seed():
        async with repo.transaction() as session:
            await session.create_instance(instance)

    asyncio.run(seed())
    result = runner.invoke(app, ["instance", "execute", instance.id, "A", "--input", "{}"])
    assert result.exit_code == 1
    assert "must not be empty" in result.stdout

    result = runner.invoke(app, ["instance", "start", instance.id])
    assert result.exit_code == 1
    assert "requires draft" in result.stdout

    result = runner.invoke(app, ["instance", "execute", instance.id, "A", "--input", "[1]"])
    assert result.exit_code == 1
    assert "JSON object" in result.stdout


def test_delete_requires_force_for_running_instance(monkeypatch, tmp_path):
    repo = _setup_repo(monkeypatch, tmp_path)
    instance = FlowInstance(
        project_id="p1",
        template_id="t1",
        status=InstanceStatus.RUNNING,
        created_by="u1",
    )

    async def seed():
        async with repo.transaction() as session:
            await session.create_instance(instance)

    asyncio.run(seed())
    runner = CliRunner()

    result = runner.invoke(app, ["instance", "delete", instance.id, "--user", "u2"])
    assert result.exit_code == 1

    result = runner.invoke(
        app, ["instance", "delete", instance.id, "--force", "--user", "u2"]
    )
    assert result.exit_code == 1
    assert "administrator" in result.stdout

    result = runner.invoke(
        app,
        ["instance", "delete", instance.id, "--force", "--user", "u2", "--role", "ADMIN"],
    )
    assert result.exit_code == 0, result.stdout
    assert asyncio.run(repo.get_instance(instance.id)) is None
