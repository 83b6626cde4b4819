"""
Ride rating receipt.

One row per checked-out request that has been rated. The rating content
beyond the overall score belongs to the rating service.
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from ridepool.app.db.session import Base


class RideRating(Base):
    __tablename__ = "ride_ratings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    request_id = Column(Integer, ForeignKey("ride_requests.id"), nullable=False, unique=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False, index=True)
    driver_id = Column(Integer, nullable=False, index=True)
    passenger_id = Column(Integer, nullable=False, index=True)
    overall = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("overall >= 1 AND overall <= 5", name="ck_ride_ratings_overall_range"),
    )

    def __repr__(self):
        return f"<RideRating(request_id={self.request_id}, overall={self.overall})>"
