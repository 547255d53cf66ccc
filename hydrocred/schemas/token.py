"""
Canonical Token Schema

One token is one certified unit of green-hydrogen production.

Lifecycle:
    ACTIVE --transfer--> ACTIVE (owner changes)
    ACTIVE --retire----> RETIRED (terminal)

Tokens are frozen. A change of owner or retirement produces a new
Token instance; a retired token is never replaced again.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TokenStatus(str, Enum):
    ACTIVE = "active"
    RETIRED = "retired"


class Token(BaseModel):
    """
    A green-hydrogen credit certificate.
    """
    token_id: int = Field(
        ...,
        ge=1,
        description="Sequential identifier, assigned at issuance"
    )

    owner: str = Field(
        ...,
        description="Current holder address"
    )

    retired: bool = Field(
        default=False,
        description="True once the credit has been claimed as an offset"
    )

    retired_by: Optional[str] = Field(
        default=None,
        description="Address that retired the token"
    )

    retired_at: Optional[datetime] = Field(
        default=None,
        description="When the token was retired"
    )

    issued_at: datetime = Field(
        ...,
        description="When the token was minted"
    )

    issued_by: str = Field(
        ...,
        description="Certifier address that minted the token"
    )

    model_config = {"frozen": True}

    @property
    def status(self) -> TokenStatus:
        return TokenStatus.RETIRED if self.retired else TokenStatus.ACTIVE


def format_token_id(token_id: int) -> str:
    """Display form used by the dashboards: #0001."""
    return f"#{token_id:04d}"
