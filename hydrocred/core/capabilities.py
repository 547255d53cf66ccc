"""
Capability table.

One table keyed by role, one guard. Operations never test roles directly.
"""

from enum import Enum
from typing import Optional

from ..schemas import Identity, Role
from .errors import PermissionDenied


class Capability(str, Enum):
    ISSUE = "issue"
    TRANSFER = "transfer"
    RETIRE = "retire"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.CERTIFIER: frozenset({Capability.ISSUE, Capability.TRANSFER, Capability.RETIRE}),
    Role.PRODUCER: frozenset({Capability.TRANSFER, Capability.RETIRE}),
    Role.BUYER: frozenset({Capability.TRANSFER, Capability.RETIRE}),
    Role.ADMIN: frozenset({Capability.TRANSFER, Capability.RETIRE}),
    Role.REGULATOR: frozenset(),
}

# Addresses outside the catalog that received credits
EXTERNAL_HOLDER_CAPABILITIES: frozenset[Capability] = frozenset(
    {Capability.TRANSFER, Capability.RETIRE}
)


def capabilities_for(identity: Optional[Identity]) -> frozenset[Capability]:
    if identity is None:
        return EXTERNAL_HOLDER_CAPABILITIES
    return ROLE_CAPABILITIES.get(identity.role, frozenset())


def can(identity: Optional[Identity], capability: Capability) -> bool:
    return capability in capabilities_for(identity)


def require_capability(
    identity: Optional[Identity],
    capability: Capability,
    address: Optional[str] = None,
) -> None:
    """
    Raise PermissionDenied unless the identity holds the capability.

    identity=None means an external address; pass it as `address`
    for the error message.
    """
    if can(identity, capability):
        return

    if identity is not None:
        who = f"{identity.display_name} ({identity.role.value})"
    else:
        who = address or "unknown address"

    raise PermissionDenied(
        f"{who} is not allowed to {capability.value} credits"
    )
