"""Authorization checks consumed by the instance service."""

from __future__ import annotations

from typing import Optional, Protocol

from .constants import ADMIN_ROLES
from .contracts import FlowInstance, User


class Authorizer(Protocol):
    """Decides ownership and admin rights; role storage lives elsewhere."""

    def is_owner(self, instance: FlowInstance, user: Optional[User]) -> bool:
        """Return ``True`` if ``user`` created ``instance``."""

    def is_admin(self, user: Optional[User]) -> bool:
        """Return ``True`` if ``user`` may force operations."""


class RoleAuthorizer(Authorizer):
    """Treats ``ADMIN`` and ``SUPERADMIN`` roles (any case) as admins."""

    def __init__(self, admin_roles: tuple[str, ...] = ADMIN_ROLES) -> None:
        self.admin_roles = {role.upper() for role in admin_roles}

    def is_owner(self, instance: FlowInstance, user: Optional[User]) -> bool:
        return user is not None and instance.created_by == user.id

    def is_admin(self, user: Optional[User]) -> bool:
        if user is None:
            return False
        return any(role.upper() in self.admin_roles for role in user.roles)
