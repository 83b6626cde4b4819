"""
FastAPI Application Entry Point.

This is the main application file for the Ridepool Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from ridepool.app.core.config import settings
from ridepool.app.api.v1.router import router as api_v1_router
from ridepool.app.core.observability import ObservabilityMiddleware, configure_logging
from ridepool.app.core.redis_client import ping_redis
from ridepool.app.db.session import engine, Base
from ridepool.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from ridepool.app.models.ride import Ride
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.models.ride_rating import RideRating
from ridepool.app.models.ride_sequence import RideIdSequence
from ridepool.app.models.user_profile import UserProfile
from ridepool.app.models.notification import Notification
from ridepool.app.models.audit_log import AuditLog

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Ride sharing backend: ride lifecycle and seat booking",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and redis reachability
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": redis_ok,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")
