"""
Dependency injection for authentication
Project: Supply Ledger (healthcare supplies ERP)

Resolve the bearer token to a user row, then to the Actor and company id
every service operation receives explicitly.
"""

from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from supply_ledger.core.database import get_store
from supply_ledger.core.exceptions import StoreError
from supply_ledger.core.permissions import Actor, require
from supply_ledger.core.security import decode_token
from supply_ledger.store.base import LedgerStore

# OAuth2 scheme - reads the token from the Authorization header
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/token",
    auto_error=False,
)


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    store: LedgerStore = Depends(get_store),
) -> dict[str, Any]:
    """
    Dependency returning the user row of the JWT subject.

    Raises:
        HTTPException 401: missing, invalid or expired token, unknown or inactive user
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = decode_token(token)

    if token_data.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Only access tokens are accepted",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = UUID(token_data.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id in token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        users = await store.select("users", filters={"id": user_id}, limit=1)
    except StoreError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User directory unavailable",
        )

    if not users:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = users[0]
    if not user.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User deactivated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_current_actor(
    user: Annotated[dict[str, Any], Depends(get_current_user)],
) -> Actor:
    """The authenticated user as an Actor."""
    return Actor(id=user["id"], role=user.get("role") or "viewer")


async def get_company_id(
    user: Annotated[dict[str, Any], Depends(get_current_user)],
) -> UUID:
    """
    Company the user works for. Every request is scoped to it.

    Raises:
        HTTPException 403: the user is not attached to a company
    """
    if user.get("company_id") is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not attached to a company",
        )
    return user["company_id"]


def require_capability(code: str):
    """
    Factory for a dependency that checks one capability.

    Example:
        @router.delete("/{payment_id}")
        async def delete_payment(actor: Actor = Depends(require_capability(DELETE_PAYMENT))):
            ...
    """
    async def capability_checker(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        require(actor, code)
        return actor

    return capability_checker


# Type aliases for common use
Store = Annotated[LedgerStore, Depends(get_store)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
CompanyId = Annotated[UUID, Depends(get_company_id)]


# Exports
__all__ = [
    "get_current_user",
    "get_current_actor",
    "get_company_id",
    "require_capability",
    "oauth2_scheme",
    "Store",
    "CurrentActor",
    "CompanyId",
]
