"""JWT token generation and validation utilities.

Tokens carry the acting participant: the user id in the standard 'sub'
claim plus a custom 'role' claim (customer, provider, runner, admin).
Issuing tokens at login is handled by the identity service; this module
only needs to mint them for tooling and tests and to verify them.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from mekacash.lib.settings import settings


def create_access_token(
    user_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user.

    Args:
        user_id: Identifier of the user (stored in 'sub' claim)
        role: Role of the user (customer, provider, runner, admin)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    now = datetime.now(timezone.utc)

    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }

    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Raises:
        jwt.InvalidTokenError: If token is invalid, expired, or signature doesn't match
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def get_actor_from_token(token: str) -> tuple[str, str]:
    """Extract (user_id, role) from a token.

    Raises:
        jwt.InvalidTokenError: If token is invalid
        KeyError: If required claims are missing
    """
    payload = verify_token(token)
    return payload["sub"], payload["role"]
