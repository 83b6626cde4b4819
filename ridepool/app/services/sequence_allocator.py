"""
Ride id allocation.

Ride ids are a global, strictly increasing sequence. Both allocators rely on
an atomic primitive (Redis INCR, database autoincrement) so two concurrent
ride creations can never receive the same id.
"""

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import async_sessionmaker

from ridepool.app.core.config import settings
from ridepool.app.models.ride_sequence import RideIdSequence

logger = logging.getLogger(__name__)


class SequenceAllocator(Protocol):
    async def next_ride_id(self) -> int:
        ...


class RedisSequenceAllocator:
    """Allocates ride ids with INCR on a single Redis key."""

    def __init__(self, redis_client, key: str = None):
        self.redis = redis_client
        self.key = key or settings.ride_sequence_key

    async def next_ride_id(self) -> int:
        ride_id = int(await self.redis.incr(self.key))
        logger.debug("Allocated ride id %s from redis key %s", ride_id, self.key)
        return ride_id


class DatabaseSequenceAllocator:
    """
    Allocates ride ids from the ride_id_sequence table.

    Runs in its own short transaction so the id is durable even if the
    caller's transaction later rolls back (gaps are fine, reuse is not).
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def next_ride_id(self) -> int:
        async with self.session_factory() as session:
            row = RideIdSequence()
            session.add(row)
            await session.commit()
            logger.debug("Allocated ride id %s from sequence table", row.id)
            return row.id
