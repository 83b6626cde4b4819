"""
Notification Database Model.

In-app inbox written by the default NotificationSink.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Enum
from sqlalchemy.sql import func
from ridepool.app.db.session import Base
import enum


class NotificationKind(str, enum.Enum):
    REQUEST_SUBMITTED = "REQUEST_SUBMITTED"
    REQUEST_ACCEPTED = "REQUEST_ACCEPTED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    SEAT_AVAILABLE = "SEAT_AVAILABLE"
    PASSENGER_CHECKED_IN = "PASSENGER_CHECKED_IN"
    PASSENGER_CHECKED_OUT = "PASSENGER_CHECKED_OUT"
    ALL_PASSENGERS_CHECKED_OUT = "ALL_PASSENGERS_CHECKED_OUT"
    RATING_UNLOCKED = "RATING_UNLOCKED"
    RATING_RECEIVED = "RATING_RECEIVED"
    RIDE_STARTED = "RIDE_STARTED"
    RIDE_COMPLETED = "RIDE_COMPLETED"
    RIDE_CANCELLED = "RIDE_CANCELLED"
    RECURRENCE_OFFERED = "RECURRENCE_OFFERED"
    NEXT_OCCURRENCE_CREATED = "NEXT_OCCURRENCE_CREATED"


class Notification(Base):
    """
    In-App Notification.
    Stores messages for users.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    user_id = Column(Integer, nullable=False, index=True)

    # Content
    kind = Column(Enum(NotificationKind), nullable=False)
    ride_id = Column(Integer, nullable=True, index=True)
    payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, kind='{self.kind.value}')>"
