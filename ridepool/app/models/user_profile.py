"""
User profile database model.

Only the fields the ride engine consults. Accounts and credentials live in
the identity service.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from ridepool.app.db.session import Base
from ridepool.app.models.enums import Gender


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=False)
    display_name = Column(String(100), nullable=True)
    gender = Column(Enum(Gender), default=Gender.UNSPECIFIED, nullable=False)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<UserProfile(id={self.id}, gender='{self.gender.value}')>"
