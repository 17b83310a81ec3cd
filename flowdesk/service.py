"""Flow-instance operations exposed to the HTTP layer and the CLI."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .auth import Authorizer, RoleAuthorizer
from .config import FlowdeskConfig, load_config
from .constants import DELETABLE_STATUSES, MSG_INSTANCE_CREATED, MSG_INSTANCE_UPDATED
from .contracts import FlowInstance, InstanceStatus, LogEntry, NodeState, User
from .coordinator import NodeExecutionCoordinator
from .errors import InvalidTransitionError, NotFoundError, UnauthorizedDeleteError
from .execution_log import ExecutionLog, system_entry
from .executors import ExternalApiClient, NodeExecutorRegistry, build_default_registry
from .persistence import FlowRepository, get_repository
from .state import FlowInstanceStateMachine
from .storage import BlobStore, LocalBlobStore, remove_blobs

logger = logging.getLogger(__name__)

LogLike = Union[LogEntry, Mapping[str, Any]]


def _user_id(user: Optional[User]) -> Optional[str]:
    return user.id if user else None


class FlowInstanceService:
    """Create, edit, transition, execute and delete flow instances.

    Every mutating call runs in a single repository transaction and returns
    the updated instance, or raises one of the :mod:`flowdesk.errors`.
    """

    def __init__(
        self,
        repository: FlowRepository,
        registry: NodeExecutorRegistry,
        authorizer: Optional[Authorizer] = None,
        state_machine: Optional[FlowInstanceStateMachine] = None,
        blob_store: Optional[BlobStore] = None,
        execution_log: Optional[ExecutionLog] = None,
        external_client: Optional[ExternalApiClient] = None,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.authorizer = authorizer or RoleAuthorizer()
        self.state_machine = state_machine or FlowInstanceStateMachine()
        self.blob_store = blob_store
        self.execution_log = execution_log or ExecutionLog()
        self.external_client = external_client
        self.coordinator = NodeExecutionCoordinator(
            repository, registry, self.execution_log
        )

    async def aclose(self) -> None:
        """Release the external API client owned by this service."""
        if self.external_client is not None:
            await self.external_client.aclose()

    # ------------------------------------------------------------------
    # Queries
    async def get_instance(self, instance_id: str) -> FlowInstance:
        instance = await self.repository.get_instance(instance_id)
        if instance is None:
            raise NotFoundError("flow instance", instance_id)
        return instance

    async def list_instances(
        self, project_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[FlowInstance]:
        return await self.repository.list_instances(project_id=project_id, status=status)

    async def get_instance_logs(self, instance_id: str) -> List[LogEntry]:
        instance = await self.get_instance(instance_id)
        return self.execution_log.query_all(instance)

    async def get_node_logs(self, instance_id: str, node_id: str) -> List[LogEntry]:
        instance = await self.get_instance(instance_id)
        return self.execution_log.query_by_node(instance, node_id)

    # ------------------------------------------------------------------
    # Lifecycle
    async def create_instance(
        self,
        project_id: str,
        template_id: str,
        user: Optional[User] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> FlowInstance:
        async with self.repository.transaction() as session:
            project = await session.get_project(project_id)
            if project is None:
                raise NotFoundError("project", project_id)
            template = await session.get_template(template_id)
            if template is None:
                raise NotFoundError("flow template", template_id)

            instance = FlowInstance(
                project_id=project_id,
                template_id=template_id,
                status=InstanceStatus.DRAFT,
                context=context or {},
                nodes=copy.deepcopy(template.nodes),
                edges=copy.deepcopy(template.edges),
                node_states={},
                logs=[system_entry(MSG_INSTANCE_CREATED)],
                created_by=_user_id(user),
                updated_by=_user_id(user),
            )
            await session.create_instance(instance)
        logger.info(f"Created flow instance {instance.id} from template {template_id}")
        return instance

    async def update_instance(
        self,
        instance_id: str,
        user: Optional[User] = None,
        *,
        context: Optional[Dict[str, Any]] = None,
        nodes: Optional[List[Dict[str, Any]]] = None,
        edges: Optional[List[Dict[str, Any]]] = None,
        node_data: Optional[Dict[str, Dict[str, Any]]] = None,
        node_states: Optional[Dict[str, Union[NodeState, Dict[str, Any]]]] = None,
        logs: Optional[Iterable[LogLike]] = None,
    ) -> FlowInstance:
        """Apply a structural and/or data-only update.

        Structural fields (``context``, ``nodes``, ``edges``) need a draft
        instance. ``node_data`` and ``node_states`` are merged per node id and
        ``logs`` are appended, in any status.
        """
        structural = any(v is not None for v in (context, nodes, edges))
        entries = [
            e if isinstance(e, LogEntry) else LogEntry.model_validate(e)
            for e in (logs or [])
        ]

        async with self.repository.transaction() as session:
            instance = await session.get_instance(instance_id)
            if instance is None:
                raise NotFoundError("flow instance", instance_id)
            if structural:
                self.state_machine.require_draft(instance)

            changes: Dict[str, Any] = {"updated_by": _user_id(user)}
            if context is not None:
                changes["context"] = context
            if nodes is not None:
                changes["nodes"] = nodes
            if edges is not None:
                changes["edges"] = edges
            if node_data is not None:
                changes["node_data"] = {**instance.node_data, **node_data}
            if node_states is not None:
                changes["node_states"] = {**instance.node_states, **node_states}
            updated = await session.update_instance(instance_id, **changes)

            for entry in entries or [system_entry(MSG_INSTANCE_UPDATED)]:
                updated = await self.execution_log.append(session, instance_id, entry)
        return updated

    async def _transition(
        self, instance_id: str, action: str, user: Optional[User]
    ) -> FlowInstance:
        async with self.repository.transaction() as session:
            instance = await session.get_instance(instance_id)
            if instance is None:
                raise NotFoundError("flow instance", instance_id)
            changes = self.state_machine.apply(instance, action)
            transition = self.state_machine.transition_for(action)
            await session.update_instance(
                instance_id, updated_by=_user_id(user), **changes
            )
            updated = await self.execution_log.append(
                session, instance_id, system_entry(transition.message)
            )
        logger.info(
            f"Flow instance {instance_id}: {instance.status.value} -> {updated.status.value}"
        )
        return updated

    async def start_instance(
        self, instance_id: str, user: Optional[User] = None
    ) -> FlowInstance:
        return await self._transition(instance_id, "start", user)

    async def pause_instance(
        self, instance_id: str, user: Optional[User] = None
    ) -> FlowInstance:
        return await self._transition(instance_id, "pause", user)

    async def resume_instance(
        self, instance_id: str, user: Optional[User] = None
    ) -> FlowInstance:
        return await self._transition(instance_id, "resume", user)

    async def stop_instance(
        self, instance_id: str, user: Optional[User] = None
    ) -> FlowInstance:
        return await self._transition(instance_id, "stop", user)

    async def complete_instance(
        self, instance_id: str, user: Optional[User] = None
    ) -> FlowInstance:
        return await self._transition(instance_id, "complete", user)

    async def fail_instance(
        self, instance_id: str, user: Optional[User] = None
    ) -> FlowInstance:
        return await self._transition(instance_id, "fail", user)

    def _check_delete(
        self, instance: FlowInstance, user: Optional[User], force: bool
    ) -> None:
        if instance.status.value in DELETABLE_STATUSES:
            return
        if not force:
            raise InvalidTransitionError(
                "delete", instance.status.value, DELETABLE_STATUSES
            )
        if self.authorizer.is_owner(instance, user) or self.authorizer.is_admin(user):
            return
        raise UnauthorizedDeleteError(
            "only the owner or an administrator can force-delete a flow instance",
            {"instance_id": instance.id, "status": instance.status.value},
        )

    async def delete_instance(
        self, instance_id: str, user: Optional[User] = None, force: bool = False
    ) -> None:
        async with self.repository.transaction() as session:
            instance = await session.get_instance(instance_id)
            if instance is None:
                raise NotFoundError("flow instance", instance_id)
            self._check_delete(instance, user, force)
            files, documents = await session.delete_instance(instance_id)
        logger.info(
            f"Deleted flow instance {instance_id} with {len(files)} files "
            f"and {len(documents)} documents"
        )
        if self.blob_store is not None:
            await remove_blobs(
                self.blob_store,
                [f.storage_path for f in files] + [d.storage_path for d in documents],
            )

    # ------------------------------------------------------------------
    async def execute_node(
        self, instance_id: str, node_id: str, input: Optional[Mapping[str, Any]]
    ) -> FlowInstance:
        return await self.coordinator.execute_node(instance_id, node_id, input)


def create_service(
    config: Optional[FlowdeskConfig] = None,
    repository: Optional[FlowRepository] = None,
    registry: Optional[NodeExecutorRegistry] = None,
) -> FlowInstanceService:
    """Wire a service from configuration."""

    config = config or load_config()
    client = None
    if registry is None:
        client = ExternalApiClient(config.external_api)
        registry = build_default_registry(config, client)
    return FlowInstanceService(
        repository=repository or get_repository(config=config),
        registry=registry,
        blob_store=LocalBlobStore(config.storage_root),
        external_client=client,
    )
