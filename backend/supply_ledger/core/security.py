"""
JWT security module
Project: Supply Ledger (healthcare supplies ERP)

Access tokens are issued by the identity provider shared with the other
company services; this backend only verifies them. create_access_token is
kept for tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from supply_ledger.core.config import settings
from supply_ledger.schemas.token import TokenPayload


def create_access_token(user_id: str, role: str, expires_minutes: Optional[int] = None) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User id
        role: User role
        expires_minutes: Lifetime (default: settings.access_token_expire_minutes)

    Returns:
        Encoded JWT
    """
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )

    payload = {
        "sub": user_id,
        "role": role,
        "exp": expire,
        "type": "access",
    }

    return jwt.encode(
        payload,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> TokenPayload:
    """
    Decode and validate a JWT.

    Args:
        token: Encoded JWT

    Returns:
        TokenPayload with the token data

    Raises:
        HTTPException: The token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenPayload(
        sub=payload.get("sub"),
        role=payload.get("role") or "",
        exp=datetime.fromtimestamp(payload.get("exp"), tz=timezone.utc),
        type=payload.get("type"),
    )


# Exported functions
__all__ = [
    "create_access_token",
    "decode_token",
]
