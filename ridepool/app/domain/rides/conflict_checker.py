"""
Conflict Checker.

Decides whether a candidate departure collides with one of the driver's
scheduled rides. Two departures collide when they are less than the minimum
gap apart, in either direction. This is a buffer on start times, not an
interval-overlap test: ride durations are estimated for the schedule windows
but do not widen the check.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.domain.rides.ride_store import RideStore
from ridepool.app.models.ride import Ride
from ridepool.app.services.clock import to_naive_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverScheduleWindow:
    """Time a driver is expected to be busy with one ride."""
    driver_id: int
    ride_id: int
    start: datetime
    end: datetime

    @classmethod
    def for_ride(cls, ride: Ride, duration: timedelta) -> "DriverScheduleWindow":
        return cls(
            driver_id=ride.driver_id,
            ride_id=ride.id,
            start=ride.scheduled_at,
            end=ride.scheduled_at + duration,
        )

    def within_gap(self, candidate_start: datetime, min_gap: timedelta) -> bool:
        return abs(candidate_start - self.start) < min_gap


class ConflictChecker:

    def __init__(self, ride_store: RideStore, min_gap: timedelta, duration_estimate: timedelta):
        self.ride_store = ride_store
        self.min_gap = min_gap
        self.duration_estimate = duration_estimate

    async def driver_windows(
        self,
        db: AsyncSession,
        driver_id: int,
        exclude_ride_id: Optional[int] = None,
    ) -> List[DriverScheduleWindow]:
        rides = await self.ride_store.list_scheduled_rides(db, driver_id, exclude_ride_id=exclude_ride_id)
        return [DriverScheduleWindow.for_ride(ride, self.duration_estimate) for ride in rides]

    async def has_conflict(
        self,
        db: AsyncSession,
        driver_id: int,
        candidate_start: datetime,
        candidate_end: Optional[datetime] = None,
        exclude_ride_id: Optional[int] = None,
    ) -> bool:
        """
        Whether ``candidate_start`` is closer than the minimum gap to any of
        the driver's AVAILABLE, FULL or IN_PROGRESS rides.

        ``candidate_end`` is accepted for callers that know the duration; it
        does not affect the result.
        """
        candidate_start = to_naive_utc(candidate_start)
        for window in await self.driver_windows(db, driver_id, exclude_ride_id):
            if window.within_gap(candidate_start, self.min_gap):
                logger.info(
                    "Driver %s: %s is within %s of ride %s at %s",
                    driver_id, candidate_start, self.min_gap, window.ride_id, window.start
                )
                return True
        return False
