"""
Ride Store Tests.

Compare-and-swap semantics of commit_ride_mutation.
"""

import pytest

from ridepool.app.core.exceptions import ConflictError, ResourceNotFoundError
from ridepool.app.domain.rides.ride_store import RideStore
from ridepool.app.models.ride_enums import RideStatus


@pytest.mark.asyncio
async def test_mutation_bumps_version(db_session, make_ride):
    ride = await make_ride(total_seats=2)
    store = RideStore()

    updated = await store.commit_ride_mutation(db_session, ride.id, 0, {"seats_taken": 2, "status": RideStatus.FULL})
    await db_session.commit()

    assert updated.version == 1
    assert updated.seats_taken == 2
    assert updated.status == RideStatus.FULL


@pytest.mark.asyncio
async def test_empty_mutation_still_bumps_version(db_session, make_ride):
    ride = await make_ride()
    store = RideStore()

    touched = await store.commit_ride_mutation(db_session, ride.id, 0, {})

    assert touched.version == 1
    assert touched.seats_taken == 0
    assert touched.status == RideStatus.AVAILABLE


@pytest.mark.asyncio
async def test_stale_version_is_refused(db_session, make_ride):
    ride = await make_ride()
    ride_id = ride.id
    store = RideStore()

    await store.commit_ride_mutation(db_session, ride_id, 0, {"seats_taken": 1})
    await db_session.commit()

    with pytest.raises(ConflictError) as exc_info:
        await store.commit_ride_mutation(db_session, ride_id, 0, {"seats_taken": 2})
    assert exc_info.value.expected_version == 0
    await db_session.rollback()

    current = await store.get_ride(db_session, ride_id)
    assert current.version == 1
    assert current.seats_taken == 1


@pytest.mark.asyncio
async def test_missing_ride(db_session):
    store = RideStore()

    with pytest.raises(ResourceNotFoundError):
        await store.get_ride(db_session, 424242)
    with pytest.raises(ResourceNotFoundError):
        await store.commit_ride_mutation(db_session, 424242, 0, {})


@pytest.mark.asyncio
async def test_immutable_fields_cannot_be_mutated(db_session, make_ride):
    ride = await make_ride()

    with pytest.raises(ValueError):
        await RideStore().commit_ride_mutation(db_session, ride.id, 0, {"total_seats": 10})
