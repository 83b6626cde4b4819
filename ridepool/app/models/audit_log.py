"""
Audit Log Database Model.

Tracks who moved which ride or request through which transition.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from ridepool.app.db.session import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    ride_id = Column(Integer, index=True, nullable=True)
    request_id = Column(Integer, index=True, nullable=True)

    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, ride={self.ride_id})>"
