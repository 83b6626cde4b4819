"""
Ride request schemas.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from ridepool.app.models.ride_enums import RideRequestStatus
from ridepool.app.schemas.ride import RideResponse


class RideRequestCreate(BaseModel):
    """Schema for booking seats on a ride."""
    seats: int = Field(1, ge=1)
    selected_waypoint: Optional[int] = Field(None, ge=0)


class RideRequestResponse(BaseModel):
    """Schema for ride request response."""
    id: int
    ride_id: int
    passenger_id: int
    requested_seats: int
    status: RideRequestStatus
    is_waitlisted: bool
    selected_waypoint: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class RideRequestActionResponse(BaseModel):
    """Response after any request transition."""
    request: RideRequestResponse
    ride: RideResponse
    seats_freed: int = 0
    promotable_request_id: Optional[int] = None
    all_checked_out: bool = False


class RideRequestListResponse(BaseModel):
    ride_id: int
    requests: List[RideRequestResponse]


class RatingCreate(BaseModel):
    """Overall score for the driver after check-out."""
    overall: int = Field(..., ge=1, le=5)
