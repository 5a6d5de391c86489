"""
Pydantic schemas for JWT authentication
Project: Supply Ledger (healthcare supplies ERP)
"""

from datetime import datetime

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """
    Payload carried by a JWT.

    Attributes:
        sub: Subject - user id as a string
        role: User role
        exp: Expiration
        type: Token type ("access")
    """

    sub: str = Field(..., description="User id")
    role: str = Field(..., description="User role")
    exp: datetime = Field(..., description="Expiration")
    type: str = Field(..., description="Token type")


# Exported schemas
__all__ = [
    "TokenPayload",
]
