"""
Ride Store.

Persistence seam for rides and their requests. All changes to a ride's
status or seat count go through ``commit_ride_mutation``, a single
compare-and-swap UPDATE on the ride's version. Two callers that read the
same version cannot both commit: the loser gets ConflictError and must
re-read.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, exists
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.exceptions import ConflictError, ResourceNotFoundError
from ridepool.app.models.ride import Ride
from ridepool.app.models.ride_enums import RideRequestStatus, SCHEDULED_RIDE_STATUSES
from ridepool.app.models.ride_request import RideRequest

logger = logging.getLogger(__name__)

MUTABLE_RIDE_FIELDS = frozenset({
    "status",
    "seats_taken",
    "started_at",
    "completed_at",
    "cancelled_at",
})


class RideStore:

    async def get_ride(self, db: AsyncSession, ride_id: int) -> Ride:
        """
        Fresh snapshot of a ride.

        Raises:
            ResourceNotFoundError: if the ride does not exist
        """
        result = await db.execute(
            select(Ride)
            .where(Ride.id == ride_id)
            .execution_options(populate_existing=True)
        )
        ride = result.scalar_one_or_none()
        if ride is None:
            raise ResourceNotFoundError("Ride", ride_id)
        return ride

    async def commit_ride_mutation(
        self,
        db: AsyncSession,
        ride_id: int,
        expected_version: int,
        changes: Dict[str, Any],
    ) -> Ride:
        """
        Apply ``changes`` iff the ride is still at ``expected_version``.

        An empty ``changes`` only bumps the version, which serializes request
        transitions on the same ride.

        Returns:
            The ride as stored after the mutation

        Raises:
            ConflictError: the ride moved past ``expected_version``
            ResourceNotFoundError: the ride does not exist
        """
        unknown = set(changes) - MUTABLE_RIDE_FIELDS
        if unknown:
            raise ValueError(f"Immutable ride fields in mutation: {sorted(unknown)}")

        stmt = (
            update(Ride)
            .where(Ride.id == ride_id, Ride.version == expected_version)
            .values(**changes, version=Ride.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)

        if result.rowcount == 0:
            found = await db.execute(select(exists().where(Ride.id == ride_id)))
            if not found.scalar():
                raise ResourceNotFoundError("Ride", ride_id)
            raise ConflictError(ride_id, expected_version)

        logger.debug("Ride %s committed version %d -> %d: %s", ride_id, expected_version, expected_version + 1, changes)
        return await self.get_ride(db, ride_id)

    async def list_driver_rides(
        self,
        db: AsyncSession,
        driver_id: int,
        statuses: Optional[Iterable] = None,
        exclude_ride_id: Optional[int] = None,
    ) -> List[Ride]:
        """A driver's rides, soonest first."""
        query = select(Ride).where(Ride.driver_id == driver_id)
        if statuses is not None:
            query = query.where(Ride.status.in_(list(statuses)))
        if exclude_ride_id is not None:
            query = query.where(Ride.id != exclude_ride_id)
        query = query.order_by(Ride.scheduled_at, Ride.id)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_scheduled_rides(
        self,
        db: AsyncSession,
        driver_id: int,
        exclude_ride_id: Optional[int] = None,
    ) -> List[Ride]:
        """Rides that still occupy the driver's calendar."""
        return await self.list_driver_rides(
            db, driver_id, statuses=SCHEDULED_RIDE_STATUSES, exclude_ride_id=exclude_ride_id
        )

    async def find_next_occurrence(self, db: AsyncSession, ride_id: int) -> Optional[Ride]:
        """The ride regenerated from ``ride_id``, if any."""
        result = await db.execute(
            select(Ride).where(Ride.previous_occurrence_id == ride_id)
        )
        return result.scalar_one_or_none()


class RideRequestStore:

    async def get_request(self, db: AsyncSession, request_id: int) -> RideRequest:
        """
        Fresh snapshot of a request.

        Raises:
            ResourceNotFoundError: if the request does not exist
        """
        result = await db.execute(
            select(RideRequest)
            .where(RideRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise ResourceNotFoundError("Ride request", request_id)
        return request

    async def ride_id_of(self, db: AsyncSession, request_id: int) -> int:
        result = await db.execute(
            select(RideRequest.ride_id).where(RideRequest.id == request_id)
        )
        ride_id = result.scalar_one_or_none()
        if ride_id is None:
            raise ResourceNotFoundError("Ride request", request_id)
        return ride_id

    async def find_request(
        self,
        db: AsyncSession,
        ride_id: int,
        passenger_id: int,
        statuses: Iterable[RideRequestStatus],
    ) -> Optional[RideRequest]:
        result = await db.execute(
            select(RideRequest).where(
                RideRequest.ride_id == ride_id,
                RideRequest.passenger_id == passenger_id,
                RideRequest.status.in_(list(statuses)),
            ).order_by(RideRequest.created_at, RideRequest.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_ride(
        self,
        db: AsyncSession,
        ride_id: int,
        statuses: Optional[Iterable[RideRequestStatus]] = None,
    ) -> List[RideRequest]:
        """Requests on a ride in creation order (FIFO)."""
        query = select(RideRequest).where(RideRequest.ride_id == ride_id)
        if statuses is not None:
            query = query.where(RideRequest.status.in_(list(statuses)))
        query = query.order_by(RideRequest.created_at, RideRequest.id).execution_options(populate_existing=True)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_for_passenger(self, db: AsyncSession, passenger_id: int) -> List[RideRequest]:
        result = await db.execute(
            select(RideRequest)
            .where(RideRequest.passenger_id == passenger_id)
            .order_by(RideRequest.created_at.desc(), RideRequest.id.desc())
        )
        return list(result.scalars().all())
