"""Capability checks for back-office actions"""
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Optional

from domain.auth import User
from domain.enums import Capability, StaffRole
from domain.errors import PermissionDenied

ROLE_CAPABILITIES: Dict[StaffRole, FrozenSet[Capability]] = {
    StaffRole.ADMIN: frozenset(Capability),
    StaffRole.MANAGER: frozenset({
        Capability.CREATE_RESERVATION,
        Capability.MANAGE_RESERVATIONS,
        Capability.CANCEL_RESERVATION,
        Capability.RECORD_PAYMENT,
        Capability.PROCESS_REFUNDS,
        Capability.MANAGE_ROOM_SERVICE,
        Capability.MANAGE_HOUSEKEEPING,
    }),
    StaffRole.STAFF: frozenset({
        Capability.CREATE_RESERVATION,
        Capability.MANAGE_RESERVATIONS,
        Capability.RECORD_PAYMENT,
        Capability.MANAGE_ROOM_SERVICE,
        Capability.MANAGE_HOUSEKEEPING,
    }),
}


class PermissionChecker(ABC):
    """Decides whether an actor may perform an action"""

    @abstractmethod
    def has_permission(self, actor: Optional[User], capability: Capability,
                       subject: Any = None) -> bool:
        pass

    def require(self, actor: Optional[User], capability: Capability, subject: Any = None) -> None:
        """Raise PermissionDenied unless ``actor`` holds ``capability``"""
        if not self.has_permission(actor, capability, subject):
            raise PermissionDenied(
                f"Missing permission {capability.value}",
                capability=capability,
                user=actor.username if actor else None
            )


class RolePermissionChecker(PermissionChecker):
    """Maps staff roles to a fixed set of capabilities

    An actor of ``None`` is the system itself (the sweep job) and is always
    allowed.
    """

    def __init__(self, role_capabilities: Optional[Dict[StaffRole, FrozenSet[Capability]]] = None):
        self.role_capabilities = role_capabilities or ROLE_CAPABILITIES

    def has_permission(self, actor: Optional[User], capability: Capability,
                       subject: Any = None) -> bool:
        if actor is None:
            return True
        if actor.disabled:
            return False
        return capability in self.role_capabilities.get(actor.role, frozenset())
