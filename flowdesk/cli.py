"""Command line interface for managing flow instances."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import typer
import yaml

from flowdesk.contracts import (
    FileNode,
    FlowDocument,
    FlowInstance,
    FlowTemplate,
    Project,
    User,
)
from flowdesk.errors import FlowdeskError
from flowdesk.persistence import get_repository
from flowdesk.service import FlowInstanceService, create_service

T = TypeVar("T")

app = typer.Typer(help="CLI for Flowdesk flow instances")

# Command groups
catalog_app = typer.Typer(help="Commands for loading projects and templates")
instance_app = typer.Typer(help="Commands for managing flow instances")

app.add_typer(catalog_app, name="catalog")
app.add_typer(instance_app, name="instance")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Flowdesk CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _service() -> FlowInstanceService:
    return create_service(repository=get_repository())


def _run(coro: Awaitable[T]) -> T:
    try:
        return asyncio.run(coro)
    except FlowdeskError as exc:
        typer.secho(f"Error: {exc.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _call(fn: Callable[[FlowInstanceService], Awaitable[T]]) -> T:
    """Run ``fn`` against a fresh service and close it afterwards."""

    async def runner() -> T:
        service = _service()
        try:
            return await fn(service)
        finally:
            await service.aclose()

    return _run(runner())


def _user(user_id: Optional[str], roles: Optional[List[str]] = None) -> Optional[User]:
    if not user_id:
        return None
    return User(id=user_id, roles=roles or [])


def _parse_json(value: Optional[str], option: str) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON for {option}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(parsed, dict):
        typer.secho(f"{option} must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return parsed


def _print_instance(instance: FlowInstance) -> None:
    typer.echo(f"Flow instance {instance.id}: {instance.status.value}")
    typer.echo(f"Project: {instance.project_id}  Template: {instance.template_id}")
    if instance.context:
        typer.echo(f"Context: {json.dumps(instance.context)}")
    for node_id, state in instance.node_states.items():
        line = f"- {node_id}: {state.status.value}"
        if state.execution_time is not None:
            line += f" ({state.execution_time:.3f}s)"
        if state.error:
            line += f" error: {state.error}"
        typer.echo(line)
        if state.suggestion:
            typer.echo(f"  Suggestion: {state.suggestion}")


@catalog_app.command("load")
def catalog_load(path: Path) -> None:
    """
    Load projects, templates and attachments from a YAML file.

    The file may contain ``projects``, ``templates``, ``files`` and
    ``documents`` lists whose items use the same fields as the API.

    Example:
        flowdesk catalog load ./catalog.yaml
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    repo = get_repository()

    async def load() -> None:
        for item in data.get("projects") or []:
            project = await repo.add_project(Project.model_validate(item))
            typer.echo(f"Project {project.id} - {project.name}")
        for item in data.get("templates") or []:
            template = await repo.add_template(FlowTemplate.model_validate(item))
            typer.echo(f"Template {template.id} - {template.name}")
        for item in data.get("files") or []:
            await repo.add_file_node(FileNode.model_validate(item))
        for item in data.get("documents") or []:
            await repo.add_document(FlowDocument.model_validate(item))

    _run(load())


@instance_app.command("list")
def instance_list(
    project: Optional[str] = typer.Option(None, help="Only list this project's instances"),
    status: Optional[str] = typer.Option(None, help="Only list instances in this status"),
) -> None:
    """
    List flow instances, newest first.

    Example:
        flowdesk instance list --project p1 --status running
    """
    instances = _call(
        lambda s: s.list_instances(project_id=project, status=status)
    )
    if not instances:
        typer.echo("No flow instances found")
        return
    for instance in instances:
        typer.echo(f"{instance.id}\t{instance.status.value}\t{instance.project_id}")


@instance_app.command("show")
def instance_show(instance_id: str) -> None:
    """Show status and node states of a flow instance."""
    _print_instance(_call(lambda s: s.get_instance(instance_id)))


@instance_app.command("create")
def instance_create(
    project_id: str,
    template_id: str,
    context: Optional[str] = typer.Option(None, help="JSON object with instance context"),
    user: Optional[str] = typer.Option(None, help="Acting user id"),
) -> None:
    """
    Create a draft flow instance from a template.

    Example:
        flowdesk instance create p1 t1 --context '{"dataset": "d1"}'
    """
    payload = _parse_json(context, "--context")
    instance = _call(
        lambda s: s.create_instance(
            project_id, template_id, user=_user(user), context=payload
        )
    )
    typer.echo(f"Created flow instance {instance.id}")


def _transition_command(action: str) -> None:
    def command(
        instance_id: str,
        user: Optional[str] = typer.Option(None, help="Acting user id"),
    ) -> None:
        instance = _call(
            lambda s: getattr(s, f"{action}_instance")(instance_id, user=_user(user))
        )
        typer.echo(f"Flow instance {instance.id}: {instance.status.value}")

    command.__doc__ = f"{action.capitalize()} a flow instance."
    instance_app.command(action)(command)


for _action in ("start", "pause", "resume", "stop", "complete", "fail"):
    _transition_command(_action)


@instance_app.command("delete")
def instance_delete(
    instance_id: str,
    force: bool = typer.Option(False, "--force", help="Delete regardless of status"),
    user: Optional[str] = typer.Option(None, help="Acting user id"),
    role: Optional[List[str]] = typer.Option(None, help="Role of the acting user"),
) -> None:
    """
    Delete a flow instance and its attached files and documents.

    Only draft or failed instances can be deleted, unless ``--force`` is given
    by the owner or an administrator.

    Example:
        flowdesk instance delete abc123 --force --user u1 --role ADMIN
    """
    _call(
        lambda s: s.delete_instance(instance_id, user=_user(user, role), force=force)
    )
    typer.echo(f"Deleted flow instance {instance_id}")


@instance_app.command("execute")
def instance_execute(
    instance_id: str,
    node_id: str,
    input: str = typer.Option(..., "--input", help="JSON object passed to the node"),
) -> None:
    """
    Execute one node of a flow instance.

    A failing node is reported with its suggestion; the command still exits
    successfully because the failure is recorded on the instance.

    Example:
        flowdesk instance execute abc123 node-1 --input '{"complaintId": "C-100"}'
    """
    payload = _parse_json(input, "--input")
    instance = _call(lambda s: s.execute_node(instance_id, node_id, payload))
    state = instance.node_states[node_id]
    typer.echo(f"Node {node_id}: {state.status.value}")
    if state.error:
        typer.secho(f"Error: {state.error}", fg=typer.colors.RED)
        typer.echo(f"Suggestion: {state.suggestion}")
    elif node_id in instance.node_context:
        output = instance.node_context[node_id].output
        typer.echo(f"Output: {json.dumps(output, default=str)}")


@instance_app.command("logs")
def instance_logs(
    instance_id: str,
    node: Optional[str] = typer.Option(None, help="Only show entries of this node"),
) -> None:
    """Show the execution log of a flow instance, oldest first."""
    if node:
        entries = _call(lambda s: s.get_node_logs(instance_id, node))
    else:
        entries = _call(lambda s: s.get_instance_logs(instance_id))
    if not entries:
        typer.echo("No log entries found")
        return
    for entry in entries:
        typer.echo(
            f"{entry.timestamp.isoformat()}\t{entry.type.value}\t{entry.message}"
        )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
