"""
API dependencies for FastAPI dependency injection.

Provides database sessions, the request actor resolved from the bearer
token, role guards, and the workflow services.
"""
from typing import Callable, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt.exceptions import InvalidTokenError
from sqlalchemy import select
from sqlalchemy.orm import Session

from pest_booking.lib.db import get_db as get_db_session
from pest_booking.lib.errors import AuthenticationError, AuthorizationError
from pest_booking.lib.jwt import verify_token
from pest_booking.models.users import User, UserRole
from pest_booking.services.booking_service import BookingService
from pest_booking.services.contact_service import ContactService
from pest_booking.services.notification_service import Notifier, get_notifier as build_notifier
from pest_booking.services.scope import Actor


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme; missing credentials are reported by
# get_current_actor so the response uses the application error shape
security = HTTPBearer(auto_error=False)


def _resolve_actor(token: str, db: Session) -> Actor:
    try:
        payload = verify_token(token)
    except InvalidTokenError as exc:
        raise AuthenticationError("Invalid or expired token") from exc

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as exc:
        raise AuthenticationError("Invalid authentication token") from exc

    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    # The stored role is authoritative; the token claim may be stale
    return Actor(id=user.id, role=user.role, email=user.email)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Actor:
    """
    Dependency to get the authenticated caller.

    Raises:
        AuthenticationError: 401 if the token is missing, invalid, or the user is unknown
    """
    if credentials is None:
        raise AuthenticationError()
    return _resolve_actor(credentials.credentials, db)


def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[Actor]:
    """
    Dependency to get the caller if authenticated, None otherwise.

    Used by public endpoints that link records to a signed-in customer.
    """
    if credentials is None:
        return None
    try:
        return _resolve_actor(credentials.credentials, db)
    except AuthenticationError:
        return None


def require_roles(*roles: UserRole) -> Callable[..., Actor]:
    """Dependency factory restricting an endpoint to the given roles."""

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise AuthorizationError("Insufficient permissions")
        return actor

    return dependency


def get_notifier() -> Notifier:
    """Overridden in tests with a recording fake."""
    return build_notifier()


def get_booking_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> BookingService:
    return BookingService(db, notifier=notifier)


def get_contact_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> ContactService:
    return ContactService(db, notifier=notifier)
