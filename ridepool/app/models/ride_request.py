"""
Ride request database model.

A passenger's claim on seats of a ride. Rows are never modified once they
reach a terminal status.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Boolean, DateTime, Enum, ForeignKey, CheckConstraint, Index

from ridepool.app.db.session import Base
from ridepool.app.models.ride_enums import RideRequestStatus

class RideRequest(Base):
    """Ride request model."""
    __tablename__ = "ride_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False, index=True)
    passenger_id = Column(Integer, nullable=False, index=True)

    requested_seats = Column(Integer, nullable=False, default=1)
    status = Column(Enum(RideRequestStatus), default=RideRequestStatus.WAITING, nullable=False, index=True)
    is_waitlisted = Column(Boolean, default=False, nullable=False)

    # Pickup point: index into Ride.waypoints
    selected_waypoint = Column(Integer, nullable=True)

    # created_at comes from the engine clock and defines waitlist order
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("requested_seats >= 1", name="ck_ride_requests_seats_positive"),
        Index("ix_ride_requests_ride_status", "ride_id", "status"),
    )

    def __repr__(self):
        return f"<RideRequest(id={self.id}, ride_id={self.ride_id}, passenger_id={self.passenger_id}, status='{self.status.value}')>"
