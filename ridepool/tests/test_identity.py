"""
Identity provider tests.
"""

import pytest

from ridepool.app.models.enums import Gender, RequiredGender
from ridepool.app.models.user_profile import UserProfile
from ridepool.app.services.identity import DatabaseIdentityProvider, StaticIdentityProvider


@pytest.mark.asyncio
async def test_database_provider_reads_declared_gender(session_factory, db_session):
    db_session.add(UserProfile(id=5, display_name="Alex", gender=Gender.FEMALE))
    await db_session.commit()
    provider = DatabaseIdentityProvider(session_factory)

    assert await provider.gender_of(5) == Gender.FEMALE
    assert await provider.gender_of(6) == Gender.UNSPECIFIED


@pytest.mark.asyncio
async def test_static_provider_defaults_to_unspecified():
    provider = StaticIdentityProvider({1: Gender.MALE})

    assert await provider.gender_of(1) == Gender.MALE
    assert await provider.gender_of(2) == Gender.UNSPECIFIED


@pytest.mark.parametrize("required, gender, admitted", [
    (RequiredGender.ANY, Gender.UNSPECIFIED, True),
    (RequiredGender.ANY, Gender.FEMALE, True),
    (RequiredGender.FEMALE, Gender.FEMALE, True),
    (RequiredGender.FEMALE, Gender.MALE, False),
    (RequiredGender.MALE, Gender.UNSPECIFIED, False),
])
def test_required_gender_admits(required, gender, admitted):
    assert required.admits(gender) is admitted
