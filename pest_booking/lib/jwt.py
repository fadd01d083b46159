"""JWT token generation and validation utilities.

Tokens are issued by the identity service and carry the standard claims
(exp, iat, sub) plus custom `role` and `email` claims used to build the
request actor.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from pest_booking.lib.settings import settings


def create_access_token(
    user_id: str,
    role: str,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user.

    Args:
        user_id: UUID of the user (stored in 'sub' claim)
        role: Role of the user (customer, technician, staff, admin)
        email: Optional email claim, used for customer booking ownership
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token("123e4567-e89b-12d3-a456-426614174000", "customer")
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    payload = {
        "sub": user_id,  # Subject: user ID
        "role": role,  # Custom claim for authorization
        "iat": now,  # Issued at
        "exp": expire,  # Expiration time
    }
    if email:
        payload["email"] = email

    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Args:
        token: JWT token string to verify

    Returns:
        Decoded token payload with claims

    Raises:
        InvalidTokenError: If token is invalid, expired, or signature doesn't match
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["exp", "sub"]},
    )
