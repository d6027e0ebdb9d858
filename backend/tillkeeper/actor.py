# Overview: Explicit "who is acting, where" context passed into every till operation.

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .validation import NotFoundError, PermissionDeniedError


class Capability(str, Enum):
    CAN_OPEN_ANY_LOCATION = "CAN_OPEN_ANY_LOCATION"
    CAN_OVERRIDE_COUNT = "CAN_OVERRIDE_COUNT"


ROLE_CAPABILITIES = {
    "admin": frozenset({Capability.CAN_OPEN_ANY_LOCATION, Capability.CAN_OVERRIDE_COUNT}),
    "manager": frozenset({Capability.CAN_OVERRIDE_COUNT}),
    "operator": frozenset(),
}


def capabilities_for_role(role: str | None) -> frozenset:
    """Unknown roles get no capabilities."""
    return ROLE_CAPABILITIES.get((role or "").lower(), frozenset())


@dataclass(frozen=True)
class ActorContext:
    """
    The operator performing an operation, their home location and tenant.

    location_id may be None for org-level staff; such actors can only
    touch a location when they hold CAN_OPEN_ANY_LOCATION.
    """
    operator_id: int
    location_id: int | None
    organization_id: int
    capabilities: frozenset = field(default_factory=frozenset)

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            raise PermissionDeniedError(
                "Permission denied",
                details={"required_capability": capability.value},
            )

    def require_location(self, location_id: int) -> None:
        """Work at another location needs CAN_OPEN_ANY_LOCATION."""
        if self.location_id == location_id:
            return
        if self.can(Capability.CAN_OPEN_ANY_LOCATION):
            return
        raise PermissionDeniedError(
            "Operator is not assigned to this location",
            details={"location_id": location_id, "required_capability": Capability.CAN_OPEN_ANY_LOCATION.value},
        )

    def require_org(self, org_id: int, what: str = "Location") -> None:
        # Foreign tenants look exactly like missing rows
        if org_id != self.organization_id:
            raise NotFoundError(f"{what} not found")


def actor_for_operator(operator) -> ActorContext:
    return ActorContext(
        operator_id=operator.id,
        location_id=operator.location_id,
        organization_id=operator.org_id,
        capabilities=capabilities_for_role(operator.role),
    )
