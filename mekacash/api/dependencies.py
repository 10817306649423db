"""
API dependencies for FastAPI dependency injection.

Provides database sessions, the acting participant, booking services and
the realtime connection registry.
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt import InvalidTokenError
from pydantic import BaseModel
from sqlalchemy.orm import Session

from mekacash.api.middleware.error_handler import UnauthorizedException
from mekacash.lib.db import get_db as get_db_session
from mekacash.lib.jwt import get_actor_from_token
from mekacash.services.booking_service import BookingService
from mekacash.services.notification_service import (
    NotificationDispatcher,
    get_notification_dispatcher as _get_dispatcher,
)
from mekacash.services.realtime import (
    ConnectionRegistry,
    get_connection_registry as _get_registry,
)


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer()


class Actor(BaseModel):
    """Authenticated participant making the request."""
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    """
    Resolve the acting participant from the bearer token.

    Raises:
        UnauthorizedException: the token is invalid or lacks sub/role claims
    """
    try:
        user_id, role = get_actor_from_token(credentials.credentials)
    except (InvalidTokenError, KeyError) as e:
        raise UnauthorizedException(f"Could not validate credentials: {str(e)}")
    return Actor(user_id=user_id, role=role)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_notification_dispatcher() -> NotificationDispatcher:
    return _get_dispatcher()


def get_connection_registry() -> ConnectionRegistry:
    return _get_registry()
