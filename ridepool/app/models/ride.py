"""
Ride database model.

A ride is an offer published by a driver with a fixed seat capacity.
``version`` is the compare-and-swap revision: every change to status or
seats goes through RideStore.commit_ride_mutation, which bumps it.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Float, JSON, CheckConstraint

from ridepool.app.db.session import Base
from ridepool.app.models.enums import RequiredGender
from ridepool.app.models.ride_enums import RideStatus

class Ride(Base):
    """
    Ride model.

    Immutable after creation: addresses, waypoints, schedule, capacity and
    rules. Mutable: status, seats_taken, lifecycle timestamps.
    """
    __tablename__ = "rides"

    # Allocated by the SequenceAllocator, never by the database
    id = Column(Integer, primary_key=True, autoincrement=False)

    driver_id = Column(Integer, nullable=False, index=True)

    # Route
    origin_address = Column(String(500), nullable=False)
    origin_latitude = Column(Float, nullable=True)
    origin_longitude = Column(Float, nullable=True)
    destination_address = Column(String(500), nullable=False)
    destination_latitude = Column(Float, nullable=True)
    destination_longitude = Column(Float, nullable=True)
    waypoints = Column(JSON, nullable=False, default=list)  # [{address, latitude, longitude}]

    # Schedule
    scheduled_at = Column(DateTime, nullable=False, index=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_days = Column(JSON, nullable=False, default=list)  # informational weekday names
    previous_occurrence_id = Column(Integer, nullable=True, unique=True)

    # Capacity
    total_seats = Column(Integer, nullable=False)
    seats_taken = Column(Integer, default=0, nullable=False)

    # Rules
    required_gender = Column(Enum(RequiredGender), default=RequiredGender.ANY, nullable=False)
    no_smoking = Column(Boolean, default=False, nullable=False)
    no_children = Column(Boolean, default=False, nullable=False)
    no_music = Column(Boolean, default=False, nullable=False)

    # State
    status = Column(Enum(RideStatus), default=RideStatus.AVAILABLE, nullable=False, index=True)
    version = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("total_seats > 0", name="ck_rides_total_seats_positive"),
        CheckConstraint("seats_taken >= 0 AND seats_taken <= total_seats", name="ck_rides_seats_taken_range"),
    )

    @property
    def seats_free(self) -> int:
        return self.total_seats - self.seats_taken

    def __repr__(self):
        return f"<Ride(id={self.id}, driver_id={self.driver_id}, status='{self.status.value}', seats={self.seats_taken}/{self.total_seats})>"
