"""Status transitions of flow instances."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .constants import (
    MSG_INSTANCE_COMPLETED,
    MSG_INSTANCE_FAILED,
    MSG_INSTANCE_PAUSED,
    MSG_INSTANCE_RESUMED,
    MSG_INSTANCE_STARTED,
    MSG_INSTANCE_STOPPED,
)
from .contracts import FlowInstance, InstanceStatus, utcnow
from .errors import InvalidTransitionError


@dataclass(frozen=True)
class Transition:
    """Guard and effect of one status-changing action."""

    action: str
    sources: Tuple[InstanceStatus, ...]
    target: InstanceStatus
    message: str
    set_timestamp: Optional[str] = None
    clear_timestamp: Optional[str] = None


TRANSITIONS: Dict[str, Transition] = {
    t.action: t
    for t in (
        Transition(
            "start",
            (InstanceStatus.DRAFT,),
            InstanceStatus.RUNNING,
            MSG_INSTANCE_STARTED,
            set_timestamp="started_at",
        ),
        Transition(
            "pause",
            (InstanceStatus.RUNNING,),
            InstanceStatus.PAUSED,
            MSG_INSTANCE_PAUSED,
            set_timestamp="paused_at",
        ),
        Transition(
            "resume",
            (InstanceStatus.PAUSED,),
            InstanceStatus.RUNNING,
            MSG_INSTANCE_RESUMED,
            clear_timestamp="paused_at",
        ),
        Transition(
            "stop",
            (InstanceStatus.RUNNING,),
            InstanceStatus.STOPPED,
            MSG_INSTANCE_STOPPED,
            set_timestamp="ended_at",
        ),
        Transition(
            "complete",
            (InstanceStatus.RUNNING,),
            InstanceStatus.COMPLETED,
            MSG_INSTANCE_COMPLETED,
            set_timestamp="ended_at",
        ),
        Transition(
            "fail",
            (InstanceStatus.RUNNING,),
            InstanceStatus.FAILED,
            MSG_INSTANCE_FAILED,
            set_timestamp="ended_at",
        ),
    )
}


class FlowInstanceStateMachine:
    """Checks guards and computes the field changes of each transition.

    The machine is pure: it never persists anything. The service applies
    the returned changes and the log entry in one transaction.
    """

    def __init__(self, transitions: Optional[Dict[str, Transition]] = None):
        self._transitions = transitions or TRANSITIONS

    def transition_for(self, action: str) -> Transition:
        try:
            return self._transitions[action]
        except KeyError:
            raise ValueError(f"Unknown transition: {action}") from None

    def can(self, instance: FlowInstance, action: str) -> bool:
        return instance.status in self.transition_for(action).sources

    def guard(self, instance: FlowInstance, action: str) -> Transition:
        transition = self.transition_for(action)
        if instance.status not in transition.sources:
            raise InvalidTransitionError(
                action, instance.status.value, [s.value for s in transition.sources]
            )
        return transition

    def apply(
        self,
        instance: FlowInstance,
        action: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Return the changes ``action`` makes to ``instance``.

        Raises:
            InvalidTransitionError: when the instance is not in a source state.
        """
        transition = self.guard(instance, action)
        changes: Dict[str, Any] = {"status": transition.target}
        if transition.set_timestamp:
            changes[transition.set_timestamp] = now or utcnow()
        if transition.clear_timestamp:
            changes[transition.clear_timestamp] = None
        return changes

    def require_draft(self, instance: FlowInstance, action: str = "update") -> None:
        """Structural edits are only allowed before the instance starts."""
        if instance.status != InstanceStatus.DRAFT:
            raise InvalidTransitionError(
                action, instance.status.value, [InstanceStatus.DRAFT.value]
            )
