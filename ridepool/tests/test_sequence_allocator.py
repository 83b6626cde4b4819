"""
Ride id allocation tests.
"""

import asyncio

import pytest

from ridepool.app.services.sequence_allocator import DatabaseSequenceAllocator, RedisSequenceAllocator


@pytest.mark.asyncio
async def test_redis_allocator_increments(redis_mock):
    allocator = RedisSequenceAllocator(redis_mock, key="test:ride_id")

    ids = [await allocator.next_ride_id() for _ in range(3)]

    assert ids == [1, 2, 3]
    assert redis_mock.store["test:ride_id"] == 3


@pytest.mark.asyncio
async def test_database_allocator_never_repeats(session_factory):
    allocator = DatabaseSequenceAllocator(session_factory)

    ids = []
    for _ in range(5):
        ids.append(await allocator.next_ride_id())

    assert ids == sorted(ids)
    assert len(set(ids)) == 5


@pytest.mark.asyncio
async def test_database_allocator_concurrent_callers(session_factory):
    allocator = DatabaseSequenceAllocator(session_factory)

    ids = await asyncio.gather(*(allocator.next_ride_id() for _ in range(5)))

    assert len(set(ids)) == 5
