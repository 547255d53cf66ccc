"""
Canonical Identity Schema

Demo identities stand in for wallets.
Every ledger action is attributable to one of them (or to an
external address that received a credit).
"""

import re
from enum import Enum

from pydantic import BaseModel, Field, field_validator


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """Lowercase form used for every address comparison."""
    return address.strip().lower()


def is_valid_address(address: object) -> bool:
    """Check that a value looks like a 20-byte hex account address."""
    return isinstance(address, str) and bool(ADDRESS_PATTERN.match(address.strip()))


class Role(str, Enum):
    """
    Dashboard roles.
    Permissions per role live in the capability table, not here.
    """
    CERTIFIER = "certifier"   # Mints new credits
    PRODUCER = "producer"     # Receives and sells credits
    BUYER = "buyer"           # Buys and retires credits
    REGULATOR = "regulator"   # Read-only oversight
    ADMIN = "admin"           # Demo administration


class Identity(BaseModel):
    """
    A demo identity from the fixed catalog.
    """
    key: str = Field(
        ...,
        description="Stable catalog key, e.g. 'producer1'"
    )

    address: str = Field(
        ...,
        description="Hex account address (0x + 40 hex chars)"
    )

    role: Role = Field(
        ...,
        description="Permission role"
    )

    display_name: str = Field(
        ...,
        description="Name shown in the wallet switcher"
    )

    model_config = {"frozen": True}

    @field_validator("address")
    @classmethod
    def address_must_be_hex(cls, v: str) -> str:
        if not is_valid_address(v):
            raise ValueError(f"Invalid address: {v!r}")
        return v.strip()
