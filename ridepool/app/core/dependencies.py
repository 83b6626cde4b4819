"""
FastAPI dependencies.

Authentication only establishes who is calling; whether the caller acts as
driver or passenger is decided per ride by the engine.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ridepool.app.core.config import settings
from ridepool.app.core.jwt import decode_access_token
from ridepool.app.core.redis_client import redis_client
from ridepool.app.db.session import get_session_factory
from ridepool.app.domain.rides.container import RideServices, build_ride_services
from ridepool.app.services.clock import SystemClock
from ridepool.app.services.identity import DatabaseIdentityProvider
from ridepool.app.services.notification_service import InAppNotificationSink
from ridepool.app.services.sequence_allocator import DatabaseSequenceAllocator, RedisSequenceAllocator

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Returns:
        Decoded token payload containing ``user_id``

    Raises:
        HTTPException: 401 if the token is invalid or carries no user id
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


@lru_cache
def default_ride_services() -> RideServices:
    session_factory = get_session_factory()
    if settings.ride_sequence_backend == "database":
        sequence = DatabaseSequenceAllocator(session_factory)
    else:
        sequence = RedisSequenceAllocator(redis_client)

    return build_ride_services(
        clock=SystemClock(),
        identity=DatabaseIdentityProvider(session_factory),
        sequence=sequence,
        sink=InAppNotificationSink(session_factory),
    )


def get_ride_services() -> RideServices:
    """FastAPI dependency returning the process-wide ride engine."""
    return default_ride_services()
