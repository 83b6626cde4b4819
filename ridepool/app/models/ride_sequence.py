"""
Ride id sequence table.

Each allocation inserts one row; the autoincrement key is the new ride id.
"""

from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.sql import func
from ridepool.app.db.session import Base


class RideIdSequence(Base):
    __tablename__ = "ride_id_sequence"

    id = Column(Integer, primary_key=True, autoincrement=True)
    allocated_at = Column(DateTime, server_default=func.now(), nullable=False)
