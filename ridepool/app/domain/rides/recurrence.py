"""
Recurrence Regenerator.

Clones a completed recurring ride one interval (a week by default) forward
and re-invites its passengers with fresh WAITING requests. Nobody is
accepted automatically: the driver accepts the new requests as usual.
"""

import logging
from datetime import timedelta
from typing import Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.exceptions import InvalidTransitionError
from ridepool.app.domain.rides.outcomes import NotifyEffect, RegenerationOutcome
from ridepool.app.domain.rides.ride_store import RideRequestStore, RideStore
from ridepool.app.models.notification import NotificationKind
from ridepool.app.models.ride import Ride
from ridepool.app.models.ride_enums import PASSENGER_STATUSES, RideRequestStatus, RideStatus
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.services.clock import ClockSource
from ridepool.app.services.sequence_allocator import SequenceAllocator

logger = logging.getLogger(__name__)


class RecurrenceRegenerator:

    def __init__(
        self,
        ride_store: RideStore,
        request_store: RideRequestStore,
        sequence: SequenceAllocator,
        clock: ClockSource,
        interval: timedelta = timedelta(days=7),
    ):
        self.rides = ride_store
        self.requests = request_store
        self.sequence = sequence
        self.clock = clock
        self.interval = interval

    async def regenerate_next_occurrence(self, db: AsyncSession, completed_ride: Ride) -> RegenerationOutcome:
        """
        Create the next occurrence of ``completed_ride``.

        Raises:
            InvalidTransitionError: ride is not a completed recurring ride, or
                its next occurrence already exists
        """
        completed_ride = await self.rides.get_ride(db, completed_ride.id)
        if not completed_ride.is_recurring:
            raise InvalidTransitionError(
                "ride", completed_ride.status.value, "REGENERATED", "ride is not recurring"
            )
        if completed_ride.status != RideStatus.COMPLETED:
            raise InvalidTransitionError(
                "ride", completed_ride.status.value, "REGENERATED", "only completed rides regenerate"
            )
        if await self.rides.find_next_occurrence(db, completed_ride.id) is not None:
            raise InvalidTransitionError(
                "ride", completed_ride.status.value, "REGENERATED", "next occurrence already created"
            )

        passengers = self._unique_passengers(
            await self.requests.list_for_ride(db, completed_ride.id, PASSENGER_STATUSES)
        )
        next_ride_id = await self.sequence.next_ride_id()
        next_ride = self._clone(completed_ride, next_ride_id)
        db.add(next_ride)
        await db.flush()

        now = self.clock.now()
        new_requests = []
        for previous in passengers:
            request = RideRequest(
                ride_id=next_ride.id,
                passenger_id=previous.passenger_id,
                requested_seats=previous.requested_seats,
                status=RideRequestStatus.WAITING,
                is_waitlisted=False,
                selected_waypoint=previous.selected_waypoint,
                created_at=now,
            )
            db.add(request)
            new_requests.append(request)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidTransitionError(
                "ride", RideStatus.COMPLETED.value, "REGENERATED", "next occurrence already created"
            )

        payload = {
            "previous_ride_id": completed_ride.id,
            "scheduled_at": next_ride.scheduled_at.isoformat(),
        }
        effects = [NotifyEffect(next_ride.driver_id, NotificationKind.NEXT_OCCURRENCE_CREATED, next_ride.id, payload)]
        for request in new_requests:
            effects.append(NotifyEffect(
                request.passenger_id,
                NotificationKind.NEXT_OCCURRENCE_CREATED,
                next_ride.id,
                {**payload, "request_id": request.id},
            ))

        logger.info(
            "Ride %s regenerated as ride %s at %s with %d re-invited passenger(s)",
            completed_ride.id, next_ride.id, next_ride.scheduled_at, len(new_requests)
        )
        return RegenerationOutcome(
            source_ride=completed_ride,
            next_ride=next_ride,
            requests=new_requests,
            effects=effects,
        )

    def _clone(self, ride: Ride, new_id: int) -> Ride:
        return Ride(
            id=new_id,
            driver_id=ride.driver_id,
            origin_address=ride.origin_address,
            origin_latitude=ride.origin_latitude,
            origin_longitude=ride.origin_longitude,
            destination_address=ride.destination_address,
            destination_latitude=ride.destination_latitude,
            destination_longitude=ride.destination_longitude,
            waypoints=list(ride.waypoints or []),
            scheduled_at=ride.scheduled_at + self.interval,
            is_recurring=True,
            recurring_days=list(ride.recurring_days or []),
            previous_occurrence_id=ride.id,
            total_seats=ride.total_seats,
            seats_taken=0,
            required_gender=ride.required_gender,
            no_smoking=ride.no_smoking,
            no_children=ride.no_children,
            no_music=ride.no_music,
            status=RideStatus.AVAILABLE,
            version=0,
        )

    @staticmethod
    def _unique_passengers(requests: List[RideRequest]) -> List[RideRequest]:
        # Earliest request per passenger, FIFO order kept
        seen: Dict[int, RideRequest] = {}
        for request in requests:
            seen.setdefault(request.passenger_id, request)
        return list(seen.values())
