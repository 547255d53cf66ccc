"""
Identity Registry

Fixed catalog of demo identities plus a pointer to the one acting next.
Switching identity never touches tokens or the transaction log.
"""

from typing import Optional, Sequence, Union

from ..schemas import Identity, Role, normalize_address
from .errors import NotFound


DEMO_IDENTITIES: tuple[Identity, ...] = (
    Identity(
        key="certifier",
        address="0x1234567890123456789012345678901234567890",
        role=Role.CERTIFIER,
        display_name="Certifier",
    ),
    Identity(
        key="producer1",
        address="0x2345678901234567890123456789012345678901",
        role=Role.PRODUCER,
        display_name="Producer 1",
    ),
    Identity(
        key="producer2",
        address="0x3456789012345678901234567890123456789012",
        role=Role.PRODUCER,
        display_name="Producer 2",
    ),
    Identity(
        key="buyer1",
        address="0x4567890123456789012345678901234567890123",
        role=Role.BUYER,
        display_name="Buyer 1",
    ),
    Identity(
        key="buyer2",
        address="0x5678901234567890123456789012345678901234",
        role=Role.BUYER,
        display_name="Buyer 2",
    ),
    Identity(
        key="regulator",
        address="0x6789012345678901234567890123456789012345",
        role=Role.REGULATOR,
        display_name="Regulator",
    ),
    Identity(
        key="admin",
        address="0x7890123456789012345678901234567890123456",
        role=Role.ADMIN,
        display_name="Admin",
    ),
)


IdentitySelector = Union[int, str]


class IdentityRegistry:
    """
    Catalog of identities and the currently active one.

    Identities are selected by catalog index, address (case-insensitive)
    or catalog key.
    """

    def __init__(
        self,
        identities: Sequence[Identity] = DEMO_IDENTITIES,
        active_address: Optional[str] = None,
    ):
        self._identities = tuple(identities)
        self._by_address = {
            normalize_address(identity.address): identity
            for identity in self._identities
        }
        self._by_key = {identity.key: identity for identity in self._identities}
        self._active: Optional[Identity] = None

        if active_address is not None:
            self.switch_active(active_address)

    def list_identities(self) -> list[Identity]:
        return list(self._identities)

    def find(self, address: str) -> Optional[Identity]:
        """Look up a catalog identity by address. None for external addresses."""
        return self._by_address.get(normalize_address(address))

    def resolve(self, selector: IdentitySelector) -> Identity:
        """
        Resolve an index, address or key to a catalog identity.

        Raises NotFound for anything outside the catalog.
        """
        if isinstance(selector, bool):
            raise NotFound(f"Unknown identity: {selector!r}")

        if isinstance(selector, int):
            if 0 <= selector < len(self._identities):
                return self._identities[selector]
            raise NotFound(
                f"Identity index {selector} out of range "
                f"(catalog has {len(self._identities)} identities)"
            )

        if isinstance(selector, str):
            identity = self._by_key.get(selector) or self.find(selector)
            if identity is not None:
                return identity

        raise NotFound(f"Unknown identity: {selector!r}")

    def switch_active(self, selector: IdentitySelector) -> Identity:
        """Make the selected identity the one that acts next."""
        identity = self.resolve(selector)
        self._active = identity
        return identity

    def clear_active(self) -> None:
        self._active = None

    def get_active(self) -> Optional[Identity]:
        return self._active

    @property
    def active_address(self) -> Optional[str]:
        return self._active.address if self._active else None

    def has_role(self, role: Role, address: str) -> bool:
        identity = self.find(address)
        return identity is not None and identity.role == role

    def is_certifier(self, address: str) -> bool:
        return self.has_role(Role.CERTIFIER, address)

    def addresses(self, role: Optional[Role] = None) -> list[str]:
        return [
            identity.address
            for identity in self._identities
            if role is None or identity.role == role
        ]
