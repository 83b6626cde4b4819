"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from ridepool.app.api.v1.endpoints import notifications, ride_requests, rides

router = APIRouter()

router.include_router(rides.router)
router.include_router(ride_requests.router)
router.include_router(notifications.router)
