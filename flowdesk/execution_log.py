"""Append-only execution log attached to flow instances."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from .contracts import FlowInstance, LogEntry, LogType, utcnow

if TYPE_CHECKING:
    from .persistence.repository import FlowSession


def system_entry(message: str) -> LogEntry:
    return LogEntry(type=LogType.SYSTEM, message=message, timestamp=utcnow())


def node_entry(node_id: str, message: str) -> LogEntry:
    return LogEntry(
        type=LogType.NODE, node_id=node_id, message=message, timestamp=utcnow()
    )


class ExecutionLog:
    """Reads and appends entries of an instance's log.

    Appends go through the session of the transaction that performs the
    triggering mutation, so an entry is only visible once that mutation
    commits. Existing entries are never rewritten.
    """

    async def append(
        self, session: "FlowSession", instance_id: str, entry: LogEntry
    ) -> FlowInstance:
        return await session.append_log(instance_id, entry)

    def query_all(self, instance: FlowInstance) -> List[LogEntry]:
        """Return entries oldest first."""
        return list(instance.logs)

    def query_by_node(
        self, instance: FlowInstance, node_id: Optional[str]
    ) -> List[LogEntry]:
        return [entry for entry in instance.logs if entry.node_id == node_id]
