"""
Ride schemas.

Schemas for ride creation, lifecycle actions and visibility.
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime

from ridepool.app.models.enums import RequiredGender, Weekday
from ridepool.app.models.ride_enums import RideStatus
from ridepool.app.services.clock import to_naive_utc


class Waypoint(BaseModel):
    """A pickup point along the route."""
    address: str = Field(..., min_length=1, max_length=500)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RideCreate(BaseModel):
    """Schema for publishing a ride offer."""
    origin_address: str = Field(..., min_length=1, max_length=500)
    origin_latitude: Optional[float] = Field(None, ge=-90, le=90)
    origin_longitude: Optional[float] = Field(None, ge=-180, le=180)
    destination_address: str = Field(..., min_length=1, max_length=500)
    destination_latitude: Optional[float] = Field(None, ge=-90, le=90)
    destination_longitude: Optional[float] = Field(None, ge=-180, le=180)
    waypoints: List[Waypoint] = []
    scheduled_at: datetime
    is_recurring: bool = False
    recurring_days: List[Weekday] = []
    total_seats: int = Field(..., gt=0)
    required_gender: RequiredGender = RequiredGender.ANY
    no_smoking: bool = False
    no_children: bool = False
    no_music: bool = False

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class RideResponse(BaseModel):
    """Schema for ride response."""
    id: int
    driver_id: int
    origin_address: str
    origin_latitude: Optional[float]
    origin_longitude: Optional[float]
    destination_address: str
    destination_latitude: Optional[float]
    destination_longitude: Optional[float]
    waypoints: List[Waypoint] = []
    scheduled_at: datetime
    is_recurring: bool
    recurring_days: List[Weekday] = []
    previous_occurrence_id: Optional[int]
    total_seats: int
    seats_taken: int
    required_gender: RequiredGender
    no_smoking: bool
    no_children: bool
    no_music: bool
    status: RideStatus
    version: int
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    class Config:
        from_attributes = True


class RideFinishRequest(BaseModel):
    """Driver's answer to "repeat this ride next week?" (None: decide later)."""
    repeat: Optional[bool] = None


class RideFinishResponse(BaseModel):
    """Response after finishing a ride."""
    ride: RideResponse
    recurrence_offered: bool
    next_ride: Optional[RideResponse] = None
    regeneration_failed: bool = False


class ConflictCheckRequest(BaseModel):
    """Candidate departure for the caller's schedule."""
    scheduled_at: datetime
    exclude_ride_id: Optional[int] = None

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class ConflictCheckResponse(BaseModel):
    scheduled_at: datetime
    has_conflict: bool
    min_gap_minutes: int


class AuditEntryResponse(BaseModel):
    id: int
    actor_id: Optional[int]
    action: str
    ride_id: Optional[int]
    request_id: Optional[int]
    meta_data: Optional[dict]
    timestamp: datetime

    class Config:
        from_attributes = True
