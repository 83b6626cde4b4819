"""
Identity provider: answers "what gender did this user declare?".

Used only by the booking eligibility check.
"""

from typing import Dict, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ridepool.app.models.enums import Gender
from ridepool.app.models.user_profile import UserProfile


class IdentityProvider(Protocol):
    async def gender_of(self, user_id: int) -> Gender:
        ...


class DatabaseIdentityProvider:
    """Reads the declared gender from the user_profiles table."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def gender_of(self, user_id: int) -> Gender:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserProfile.gender).where(UserProfile.id == user_id)
            )
            gender = result.scalar_one_or_none()
        return gender or Gender.UNSPECIFIED


class StaticIdentityProvider:
    """In-memory identity provider; unknown users are UNSPECIFIED."""

    def __init__(self, genders: Dict[int, Gender] = None):
        self.genders = dict(genders or {})

    async def gender_of(self, user_id: int) -> Gender:
        return self.genders.get(user_id, Gender.UNSPECIFIED)
