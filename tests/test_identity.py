"""
Tests for demo identities and the capability table.
"""

import pytest
from pydantic import ValidationError

from hydrocred.core import (
    Capability,
    DEMO_IDENTITIES,
    IdentityRegistry,
    NotFound,
    PermissionDenied,
    ROLE_CAPABILITIES,
    can,
    capabilities_for,
    require_capability,
)
from hydrocred.schemas import Identity, Role, is_valid_address, normalize_address


CERTIFIER = "0x1234567890123456789012345678901234567890"
BUYER_A = "0x4567890123456789012345678901234567890123"


class TestAddresses:

    @pytest.mark.parametrize("address", [
        CERTIFIER,
        "0xABCDEFabcdef0123456789ABCDEFabcdef012345",
        "  0x1234567890123456789012345678901234567890 ",
    ])
    def test_valid(self, address):
        assert is_valid_address(address)

    @pytest.mark.parametrize("address", [
        "",
        "0x",
        "1234567890123456789012345678901234567890",
        "0x12345678901234567890123456789012345678901",
        "0xZZ34567890123456789012345678901234567890",
        None,
        42,
    ])
    def test_invalid(self, address):
        assert not is_valid_address(address)

    def test_normalize(self):
        assert normalize_address(" 0xABCDEF0000000000000000000000000000000000 ") == (
            "0xabcdef0000000000000000000000000000000000"
        )

    def test_identity_rejects_bad_address(self):
        with pytest.raises(ValidationError):
            Identity(key="x", address="0x12", role=Role.BUYER, display_name="X")


class TestIdentityRegistry:
    """Test the fixed identity catalog."""

    @pytest.fixture
    def registry(self):
        return IdentityRegistry()

    def test_catalog(self, registry):
        identities = registry.list_identities()
        assert [i.key for i in identities] == [
            "certifier", "producer1", "producer2", "buyer1", "buyer2", "regulator", "admin",
        ]
        assert identities[0].address == CERTIFIER
        assert identities[0].role == Role.CERTIFIER
        assert len({i.address for i in identities}) == len(identities)

    def test_no_active_identity_initially(self, registry):
        assert registry.get_active() is None
        assert registry.active_address is None

    def test_switch_by_index(self, registry):
        identity = registry.switch_active(3)
        assert identity.address == BUYER_A
        assert registry.active_address == BUYER_A

    def test_switch_by_key(self, registry):
        assert registry.switch_active("regulator").role == Role.REGULATOR

    def test_switch_by_address(self, registry):
        assert registry.switch_active(CERTIFIER).key == "certifier"

    def test_address_lookup_ignores_case(self):
        wallet = Identity(
            key="wallet",
            address="0xabcdefabcdefabcdefabcdefabcdefabcdefabcd",
            role=Role.BUYER,
            display_name="Wallet",
        )
        registry = IdentityRegistry([wallet])
        assert registry.resolve("0xABCDEFABCDEFABCDEFABCDEFABCDEFABCDEFABCD") == wallet

    @pytest.mark.parametrize("selector", [7, -1, "nobody", "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd", True])
    def test_unknown_identity(self, registry, selector):
        with pytest.raises(NotFound):
            registry.switch_active(selector)

    def test_failed_switch_keeps_active(self, registry):
        registry.switch_active("buyer1")
        with pytest.raises(NotFound):
            registry.switch_active(99)
        assert registry.get_active().key == "buyer1"

    def test_find_external_address(self, registry):
        assert registry.find("0xabcdefabcdefabcdefabcdefabcdefabcdefabcd") is None

    def test_roles(self, registry):
        assert registry.is_certifier(CERTIFIER)
        assert registry.has_role(Role.BUYER, BUYER_A)
        assert not registry.has_role(Role.PRODUCER, BUYER_A)
        assert registry.addresses(Role.PRODUCER) == [
            "0x2345678901234567890123456789012345678901",
            "0x3456789012345678901234567890123456789012",
        ]

    def test_initial_active_address(self):
        registry = IdentityRegistry(DEMO_IDENTITIES, active_address=BUYER_A)
        assert registry.get_active().key == "buyer1"


class TestCapabilities:
    """One table keyed by role, one guard."""

    def test_table_covers_every_role(self):
        assert set(ROLE_CAPABILITIES) == set(Role)

    def test_only_certifier_issues(self):
        issuers = [role for role, caps in ROLE_CAPABILITIES.items() if Capability.ISSUE in caps]
        assert issuers == [Role.CERTIFIER]

    def test_regulator_is_read_only(self):
        assert ROLE_CAPABILITIES[Role.REGULATOR] == frozenset()

    @pytest.mark.parametrize("key", ["producer1", "buyer2", "admin", "certifier"])
    def test_holders_transfer_and_retire(self, key):
        identity = IdentityRegistry().resolve(key)
        assert can(identity, Capability.TRANSFER)
        assert can(identity, Capability.RETIRE)

    def test_external_holder(self):
        assert capabilities_for(None) == frozenset({Capability.TRANSFER, Capability.RETIRE})

    def test_guard_raises(self):
        buyer = IdentityRegistry().resolve("buyer1")
        with pytest.raises(PermissionDenied, match="Buyer 1 \\(buyer\\) is not allowed to issue"):
            require_capability(buyer, Capability.ISSUE)

    def test_guard_passes(self):
        certifier = IdentityRegistry().resolve("certifier")
        require_capability(certifier, Capability.ISSUE)
