"""
Ride Lifecycle Controller.

Drives a ride through its own states on the driver's behalf:

    AVAILABLE <-> FULL -> IN_PROGRESS -> COMPLETED
    AVAILABLE | FULL -> CANCELLED

AVAILABLE <-> FULL is owned by the Admission Engine (it follows the seat
count); everything else happens here. COMPLETED and CANCELLED are final.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.config import settings
from ridepool.app.core.exceptions import InvalidRideError, InvalidTransitionError, ScheduleConflictError
from ridepool.app.core.guards import require_ride_driver
from ridepool.app.core.reliability import run_with_cas_retry
from ridepool.app.domain.rides.conflict_checker import ConflictChecker
from ridepool.app.domain.rides.outcomes import NotifyEffect, RegenerationOutcome, RideOutcome
from ridepool.app.domain.rides.recurrence import RecurrenceRegenerator
from ridepool.app.domain.rides.ride_store import RideRequestStore, RideStore
from ridepool.app.models.notification import NotificationKind
from ridepool.app.models.ride import Ride
from ridepool.app.models.ride_enums import (
    ACTIVE_REQUEST_STATUSES,
    PASSENGER_STATUSES,
    RIDE_TRANSITIONS,
    RideStatus,
)
from ridepool.app.schemas.ride import RideCreate
from ridepool.app.services.clock import ClockSource
from ridepool.app.services.sequence_allocator import SequenceAllocator

logger = logging.getLogger(__name__)


def check_ride_transition(ride: Ride, target: RideStatus, reason: str = None) -> None:
    if target not in RIDE_TRANSITIONS[ride.status]:
        raise InvalidTransitionError("ride", ride.status.value, target.value, reason)


class RideLifecycleController:

    def __init__(
        self,
        ride_store: RideStore,
        request_store: RideRequestStore,
        conflict_checker: ConflictChecker,
        regenerator: RecurrenceRegenerator,
        sequence: SequenceAllocator,
        clock: ClockSource,
        max_attempts: int = None,
        min_departure_lead: timedelta = None,
        max_seats: int = None,
    ):
        self.rides = ride_store
        self.requests = request_store
        self.conflicts = conflict_checker
        self.regenerator = regenerator
        self.sequence = sequence
        self.clock = clock
        self.max_attempts = max_attempts or settings.commit_max_attempts
        if min_departure_lead is None:
            min_departure_lead = timedelta(minutes=settings.min_departure_lead_minutes)
        self.min_departure_lead = min_departure_lead
        self.max_seats = max_seats or settings.max_ride_seats

    async def create_ride(self, db: AsyncSession, driver_id: int, draft: RideCreate) -> Ride:
        """
        Publish a new ride offer.

        Raises:
            InvalidRideError: departure too soon or seat count out of range
            ScheduleConflictError: another of the driver's rides departs too close
        """
        now = self.clock.now()
        if draft.scheduled_at <= now + self.min_departure_lead:
            raise InvalidRideError(
                f"Departure must be at least {int(self.min_departure_lead.total_seconds() // 60)} minutes from now",
                field="scheduled_at"
            )
        if draft.total_seats > self.max_seats:
            raise InvalidRideError(f"A ride cannot offer more than {self.max_seats} seats", field="total_seats")

        if await self.conflicts.has_conflict(
            db,
            driver_id,
            draft.scheduled_at,
            draft.scheduled_at + self.conflicts.duration_estimate,
        ):
            raise ScheduleConflictError(int(self.conflicts.min_gap.total_seconds() // 60))

        ride = Ride(
            id=await self.sequence.next_ride_id(),
            driver_id=driver_id,
            origin_address=draft.origin_address,
            origin_latitude=draft.origin_latitude,
            origin_longitude=draft.origin_longitude,
            destination_address=draft.destination_address,
            destination_latitude=draft.destination_latitude,
            destination_longitude=draft.destination_longitude,
            waypoints=[waypoint.model_dump() for waypoint in draft.waypoints],
            scheduled_at=draft.scheduled_at,
            is_recurring=draft.is_recurring,
            recurring_days=[day.value for day in draft.recurring_days],
            total_seats=draft.total_seats,
            seats_taken=0,
            required_gender=draft.required_gender,
            no_smoking=draft.no_smoking,
            no_children=draft.no_children,
            no_music=draft.no_music,
            status=RideStatus.AVAILABLE,
            version=0,
        )
        db.add(ride)
        await db.commit()

        logger.info("Driver %s published ride %s departing %s", driver_id, ride.id, ride.scheduled_at)
        return ride

    async def start_ride(self, db: AsyncSession, ride_id: int, driver_id: int) -> RideOutcome:
        """Depart. Not allowed before the scheduled time."""

        async def attempt() -> RideOutcome:
            ride = await self.rides.get_ride(db, ride_id)
            require_ride_driver(driver_id, ride)
            check_ride_transition(ride, RideStatus.IN_PROGRESS)
            now = self.clock.now()
            if now < ride.scheduled_at:
                raise InvalidTransitionError(
                    "ride", ride.status.value, RideStatus.IN_PROGRESS.value,
                    "scheduled departure time not reached"
                )

            ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, {
                "status": RideStatus.IN_PROGRESS,
                "started_at": now,
            })
            effects = await self._notify_passengers(db, ride, ACTIVE_REQUEST_STATUSES, NotificationKind.RIDE_STARTED)
            return RideOutcome(ride=ride, effects=effects)

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info("Ride %s started by driver %s", ride_id, driver_id)
        return outcome

    async def finish_ride(
        self,
        db: AsyncSession,
        ride_id: int,
        driver_id: int,
        repeat: Optional[bool] = None,
    ) -> RideOutcome:
        """
        Arrive. A recurring ride also offers the driver next week's occurrence:
        ``repeat=True`` creates it right away, ``None`` leaves the offer open
        for ``repeat_ride``, ``False`` declines.

        A failed regeneration never reopens the ride; it is reported through
        ``regeneration_failed``.
        """

        async def attempt() -> RideOutcome:
            ride = await self.rides.get_ride(db, ride_id)
            require_ride_driver(driver_id, ride)
            check_ride_transition(ride, RideStatus.COMPLETED)

            ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, {
                "status": RideStatus.COMPLETED,
                "completed_at": self.clock.now(),
            })
            effects = await self._notify_passengers(db, ride, PASSENGER_STATUSES, NotificationKind.RIDE_COMPLETED)

            recurrence_offered = ride.is_recurring and repeat is None
            if recurrence_offered:
                effects.append(NotifyEffect(
                    ride.driver_id,
                    NotificationKind.RECURRENCE_OFFERED,
                    ride.id,
                    {"next_scheduled_at": (ride.scheduled_at + self.regenerator.interval).isoformat()},
                ))
            return RideOutcome(ride=ride, effects=effects, recurrence_offered=recurrence_offered)

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info("Ride %s completed by driver %s", ride_id, driver_id)

        if outcome.ride.is_recurring and repeat:
            try:
                regeneration = await self.regenerator.regenerate_next_occurrence(db, outcome.ride)
            except Exception:
                logger.exception("Regeneration of ride %s failed; ride stays completed", ride_id)
                await db.rollback()
                outcome.ride = await self.rides.get_ride(db, ride_id)
                outcome.regeneration_failed = True
            else:
                outcome.next_ride = regeneration.next_ride
                outcome.effects.extend(regeneration.effects)
        return outcome

    async def repeat_ride(self, db: AsyncSession, ride_id: int, driver_id: int) -> RegenerationOutcome:
        """Driver confirms the recurrence offer after finishing."""
        ride = await self.rides.get_ride(db, ride_id)
        require_ride_driver(driver_id, ride)
        return await self.regenerator.regenerate_next_occurrence(db, ride)

    async def cancel_ride(self, db: AsyncSession, ride_id: int, driver_id: int) -> RideOutcome:
        """Driver calls the ride off before departure. Requests are left as they are."""

        async def attempt() -> RideOutcome:
            ride = await self.rides.get_ride(db, ride_id)
            require_ride_driver(driver_id, ride)
            check_ride_transition(ride, RideStatus.CANCELLED)

            ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, {
                "status": RideStatus.CANCELLED,
                "cancelled_at": self.clock.now(),
            })
            effects = await self._notify_passengers(db, ride, ACTIVE_REQUEST_STATUSES, NotificationKind.RIDE_CANCELLED)
            return RideOutcome(ride=ride, effects=effects)

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info("Ride %s cancelled by driver %s", ride_id, driver_id)
        return outcome

    async def has_conflict(
        self,
        db: AsyncSession,
        driver_id: int,
        candidate_start: datetime,
        exclude_ride_id: Optional[int] = None,
    ) -> bool:
        return await self.conflicts.has_conflict(
            db,
            driver_id,
            candidate_start,
            candidate_start + self.conflicts.duration_estimate,
            exclude_ride_id=exclude_ride_id,
        )

    async def _notify_passengers(self, db: AsyncSession, ride: Ride, statuses, kind: NotificationKind) -> List[NotifyEffect]:
        requests = await self.requests.list_for_ride(db, ride.id, statuses)
        notified = set()
        effects = []
        for request in requests:
            if request.passenger_id in notified:
                continue
            notified.add(request.passenger_id)
            effects.append(NotifyEffect(
                request.passenger_id,
                kind,
                ride.id,
                {"request_id": request.id, "status": ride.status.value},
            ))
        return effects
