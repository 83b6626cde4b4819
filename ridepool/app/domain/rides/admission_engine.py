"""
Admission Engine.

Owns the RideRequest state machine and the ride's seat ledger:

    WAITING    -> ACCEPTED | REJECTED | CANCELLED
    ACCEPTED   -> CHECKED_IN | CANCELLED
    CHECKED_IN -> CHECKED_OUT

Every operation is one transaction. It re-reads the ride and request,
validates, commits the ride through the store's compare-and-swap (an empty
mutation still bumps the version so request transitions on one ride are
serialized), and returns the notifications to emit once committed.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.config import settings
from ridepool.app.core.exceptions import (
    DuplicateRequestError,
    EligibilityDeniedError,
    InsufficientCapacityError,
    InsufficientPermissionsError,
    InvalidRideError,
    InvalidTransitionError,
    RideNotBookableError,
)
from ridepool.app.core.guards import RideRole, require_request_passenger, require_ride_driver, resolve_ride_role
from ridepool.app.core.reliability import run_with_cas_retry
from ridepool.app.domain.rides.outcomes import NotifyEffect, RequestOutcome
from ridepool.app.domain.rides.ride_store import RideRequestStore, RideStore
from ridepool.app.models.notification import NotificationKind
from ridepool.app.models.ride import Ride
from ridepool.app.models.ride_enums import (
    ACTIVE_REQUEST_STATUSES,
    BOOKABLE_RIDE_STATUSES,
    REQUEST_TRANSITIONS,
    SEAT_HOLDING_STATUSES,
    TERMINAL_RIDE_STATUSES,
    RideRequestStatus,
    RideStatus,
)
from ridepool.app.models.ride_rating import RideRating
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.services.clock import ClockSource
from ridepool.app.services.identity import IdentityProvider

logger = logging.getLogger(__name__)


def capacity_status(total_seats: int, seats_taken: int) -> RideStatus:
    """Status a bookable ride must have for a given seat count."""
    return RideStatus.FULL if seats_taken == total_seats else RideStatus.AVAILABLE


def check_request_transition(request: RideRequest, target: RideRequestStatus, reason: str = None) -> None:
    if target not in REQUEST_TRANSITIONS[request.status]:
        raise InvalidTransitionError("ride request", request.status.value, target.value, reason)


class AdmissionEngine:

    def __init__(
        self,
        ride_store: RideStore,
        request_store: RideRequestStore,
        identity: IdentityProvider,
        clock: ClockSource,
        max_attempts: int = None,
    ):
        self.rides = ride_store
        self.requests = request_store
        self.identity = identity
        self.clock = clock
        self.max_attempts = max_attempts or settings.commit_max_attempts

    async def submit_request(
        self,
        db: AsyncSession,
        ride_id: int,
        passenger_id: int,
        seats: int,
        waypoint: Optional[int] = None,
    ) -> RequestOutcome:
        """
        Create a WAITING request for ``seats`` seats.

        A ride without enough free seats still takes the request; it is
        flagged as waitlisted and the passenger hears back if seats free up.

        Raises:
            RideNotBookableError: ride is in progress or finished
            EligibilityDeniedError: passenger fails the gender requirement
            DuplicateRequestError: passenger already has an active request here
            InsufficientCapacityError: more seats than the ride will ever have
        """
        if seats < 1:
            raise InvalidRideError("At least one seat must be requested", field="seats")
        gender = await self.identity.gender_of(passenger_id)

        async def attempt() -> RequestOutcome:
            ride = await self.rides.get_ride(db, ride_id)
            if ride.status not in BOOKABLE_RIDE_STATUSES:
                raise RideNotBookableError(ride.id, ride.status.value)
            if ride.driver_id == passenger_id:
                raise InsufficientPermissionsError("Drivers cannot book their own ride")
            if not ride.required_gender.admits(gender):
                raise EligibilityDeniedError(ride.required_gender.value, gender.value)

            existing = await self.requests.find_request(db, ride.id, passenger_id, ACTIVE_REQUEST_STATUSES)
            if existing is not None:
                raise DuplicateRequestError(ride.id, existing.id)
            if seats > ride.total_seats:
                raise InsufficientCapacityError(seats, ride.seats_free)
            if waypoint is not None and not 0 <= waypoint < len(ride.waypoints or []):
                raise InvalidRideError("Selected pickup point is not on this ride", field="selected_waypoint")

            is_waitlisted = ride.seats_taken + seats > ride.total_seats
            ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, {})

            request = RideRequest(
                ride_id=ride.id,
                passenger_id=passenger_id,
                requested_seats=seats,
                status=RideRequestStatus.WAITING,
                is_waitlisted=is_waitlisted,
                selected_waypoint=waypoint,
                created_at=self.clock.now(),
            )
            db.add(request)
            await db.flush()

            effects = [
                NotifyEffect(
                    user_id=ride.driver_id,
                    kind=NotificationKind.REQUEST_SUBMITTED,
                    ride_id=ride.id,
                    payload={
                        "request_id": request.id,
                        "passenger_id": passenger_id,
                        "requested_seats": seats,
                        "is_waitlisted": is_waitlisted,
                    },
                )
            ]
            return RequestOutcome(ride=ride, request=request, effects=effects)

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info(
            "Passenger %s requested %d seat(s) on ride %s (request %s, waitlisted=%s)",
            passenger_id, seats, ride_id, outcome.request.id, outcome.request.is_waitlisted
        )
        return outcome

    async def accept_request(self, db: AsyncSession, request_id: int, driver_id: int) -> RequestOutcome:
        """
        Driver accepts a WAITING request, reserving its seats.

        Raises:
            InsufficientCapacityError: not enough free seats right now
            InvalidTransitionError: request is not WAITING
        """
        ride_id = await self.requests.ride_id_of(db, request_id)

        async def attempt() -> RequestOutcome:
            request = await self.requests.get_request(db, request_id)
            ride = await self.rides.get_ride(db, ride_id)
            require_ride_driver(driver_id, ride)
            check_request_transition(request, RideRequestStatus.ACCEPTED)
            if ride.status not in BOOKABLE_RIDE_STATUSES:
                raise RideNotBookableError(ride.id, ride.status.value)
            if request.requested_seats > ride.seats_free:
                raise InsufficientCapacityError(request.requested_seats, ride.seats_free)

            seats_taken = ride.seats_taken + request.requested_seats
            ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, {
                "seats_taken": seats_taken,
                "status": capacity_status(ride.total_seats, seats_taken),
            })
            request.status = RideRequestStatus.ACCEPTED
            await db.flush()

            effects = [
                NotifyEffect(
                    user_id=request.passenger_id,
                    kind=NotificationKind.REQUEST_ACCEPTED,
                    ride_id=ride.id,
                    payload={"request_id": request.id, "requested_seats": request.requested_seats},
                )
            ]
            return RequestOutcome(ride=ride, request=request, effects=effects)

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info(
            "Request %s accepted on ride %s (%d/%d seats, %s)",
            request_id, ride_id, outcome.ride.seats_taken, outcome.ride.total_seats, outcome.ride.status.value
        )
        return outcome

    async def cancel_or_reject(self, db: AsyncSession, request_id: int, actor_id: int) -> RequestOutcome:
        """
        End a request early.

        The passenger cancels their own request. The driver rejects a WAITING
        request or cancels an ACCEPTED one. Seats held by the request go back
        to the ride, and the oldest WAITING request that fits in the freed
        capacity is flagged to its passenger and the driver. It is not
        accepted automatically.
        """
        ride_id = await self.requests.ride_id_of(db, request_id)

        async def attempt() -> RequestOutcome:
            request = await self.requests.get_request(db, request_id)
            ride = await self.rides.get_ride(db, ride_id)

            role = resolve_ride_role(actor_id, ride, request)
            if role is None:
                raise InsufficientPermissionsError(
                    "Only the passenger or the driver can end this request",
                    details={"request_id": request.id}
                )
            if role is RideRole.DRIVER and request.status == RideRequestStatus.WAITING:
                target = RideRequestStatus.REJECTED
            else:
                target = RideRequestStatus.CANCELLED
            check_request_transition(request, target)

            ride_is_open = ride.status not in TERMINAL_RIDE_STATUSES
            seats_freed = request.requested_seats if request.status in SEAT_HOLDING_STATUSES and ride_is_open else 0

            if ride_is_open:
                changes = {}
                if seats_freed:
                    changes["seats_taken"] = ride.seats_taken - seats_freed
                    if ride.status == RideStatus.FULL:
                        changes["status"] = RideStatus.AVAILABLE
                ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, changes)

            request.status = target
            await db.flush()

            effects = self._end_request_effects(ride, request, role)
            promotable = None
            if seats_freed and ride.status in BOOKABLE_RIDE_STATUSES:
                promotable = await self._first_promotable(db, ride)
                if promotable is not None:
                    effects.extend(self._seat_available_effects(ride, promotable))

            return RequestOutcome(
                ride=ride,
                request=request,
                effects=effects,
                seats_freed=seats_freed,
                promotable_request=promotable,
            )

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info(
            "Request %s %s by user %s, %d seat(s) freed on ride %s",
            request_id, outcome.request.status.value.lower(), actor_id, outcome.seats_freed, ride_id
        )
        if outcome.promotable_request is not None:
            logger.info("Request %s can now be accepted on ride %s", outcome.promotable_request.id, ride_id)
        return outcome

    async def check_in(self, db: AsyncSession, request_id: int, passenger_id: int) -> RequestOutcome:
        """Passenger boards: ACCEPTED -> CHECKED_IN."""
        ride_id = await self.requests.ride_id_of(db, request_id)

        async def attempt() -> RequestOutcome:
            request = await self.requests.get_request(db, request_id)
            ride = await self.rides.get_ride(db, ride_id)
            require_request_passenger(passenger_id, request)
            if ride.status in TERMINAL_RIDE_STATUSES:
                raise InvalidTransitionError(
                    "ride request", request.status.value, RideRequestStatus.CHECKED_IN.value,
                    f"ride is {ride.status.value}"
                )
            check_request_transition(request, RideRequestStatus.CHECKED_IN)

            ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, {})
            request.status = RideRequestStatus.CHECKED_IN
            await db.flush()

            payload = {"request_id": request.id, "passenger_id": request.passenger_id}
            effects = [
                NotifyEffect(ride.driver_id, NotificationKind.PASSENGER_CHECKED_IN, ride.id, payload),
                NotifyEffect(request.passenger_id, NotificationKind.PASSENGER_CHECKED_IN, ride.id, payload),
            ]
            return RequestOutcome(ride=ride, request=request, effects=effects)

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info("Passenger %s checked in on ride %s", passenger_id, ride_id)
        return outcome

    async def check_out(self, db: AsyncSession, request_id: int, passenger_id: int) -> RequestOutcome:
        """
        Passenger disembarks: CHECKED_IN -> CHECKED_OUT.

        Unlocks rating for the passenger. When nobody holding a seat is left
        on an in-progress ride, the driver is told everyone has checked out.
        """
        ride_id = await self.requests.ride_id_of(db, request_id)

        async def attempt() -> RequestOutcome:
            request = await self.requests.get_request(db, request_id)
            ride = await self.rides.get_ride(db, ride_id)
            require_request_passenger(passenger_id, request)
            check_request_transition(request, RideRequestStatus.CHECKED_OUT)

            if ride.status not in TERMINAL_RIDE_STATUSES:
                ride = await self.rides.commit_ride_mutation(db, ride.id, ride.version, {})
            request.status = RideRequestStatus.CHECKED_OUT
            await db.flush()

            payload = {"request_id": request.id, "passenger_id": request.passenger_id}
            effects = [
                NotifyEffect(ride.driver_id, NotificationKind.PASSENGER_CHECKED_OUT, ride.id, payload),
                NotifyEffect(request.passenger_id, NotificationKind.RATING_UNLOCKED, ride.id, {"request_id": request.id}),
            ]

            all_checked_out = False
            if ride.status == RideStatus.IN_PROGRESS:
                still_aboard = await self.requests.list_for_ride(db, ride.id, SEAT_HOLDING_STATUSES)
                if not still_aboard:
                    all_checked_out = True
                    effects.append(
                        NotifyEffect(ride.driver_id, NotificationKind.ALL_PASSENGERS_CHECKED_OUT, ride.id, {})
                    )
            return RequestOutcome(ride=ride, request=request, effects=effects, all_checked_out=all_checked_out)

        outcome = await run_with_cas_retry(db, ride_id, attempt, self.max_attempts)
        logger.info("Passenger %s checked out of ride %s", passenger_id, ride_id)
        return outcome

    async def record_rating(
        self,
        db: AsyncSession,
        request_id: int,
        passenger_id: int,
        overall: int,
    ) -> RequestOutcome:
        """
        Record the passenger's rating of the driver, once per checked-out request.

        Raises:
            InvalidTransitionError: request is not CHECKED_OUT or already rated
        """
        if not 1 <= overall <= 5:
            raise InvalidRideError("Rating must be between 1 and 5", field="overall")

        request = await self.requests.get_request(db, request_id)
        ride = await self.rides.get_ride(db, request.ride_id)
        require_request_passenger(passenger_id, request)
        if request.status != RideRequestStatus.CHECKED_OUT:
            raise InvalidTransitionError(
                "ride request", request.status.value, "RATED", "only checked-out passengers can rate"
            )
        if await self._is_rated(db, request.id):
            raise InvalidTransitionError("ride request", request.status.value, "RATED", "already rated")

        current = request.status.value
        db.add(RideRating(
            request_id=request.id,
            ride_id=ride.id,
            driver_id=ride.driver_id,
            passenger_id=passenger_id,
            overall=overall,
        ))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidTransitionError("ride request", current, "RATED", "already rated")

        effects = [
            NotifyEffect(
                ride.driver_id,
                NotificationKind.RATING_RECEIVED,
                ride.id,
                {"request_id": request.id, "passenger_id": passenger_id, "overall": overall},
            )
        ]
        logger.info("Passenger %s rated ride %s: %d", passenger_id, ride.id, overall)
        return RequestOutcome(ride=ride, request=request, effects=effects)

    async def _is_rated(self, db: AsyncSession, request_id: int) -> bool:
        result = await db.execute(select(RideRating.id).where(RideRating.request_id == request_id))
        return result.scalar_one_or_none() is not None

    async def _first_promotable(self, db: AsyncSession, ride: Ride) -> Optional[RideRequest]:
        """Oldest WAITING request that fits in the ride's free seats."""
        for waiting in await self.requests.list_for_ride(db, ride.id, [RideRequestStatus.WAITING]):
            if waiting.requested_seats <= ride.seats_free:
                return waiting
        return None

    @staticmethod
    def _end_request_effects(ride: Ride, request: RideRequest, role: RideRole) -> List[NotifyEffect]:
        payload = {"request_id": request.id, "passenger_id": request.passenger_id}
        if role is RideRole.PASSENGER:
            return [NotifyEffect(ride.driver_id, NotificationKind.REQUEST_CANCELLED, ride.id, payload)]
        kind = (
            NotificationKind.REQUEST_REJECTED
            if request.status == RideRequestStatus.REJECTED
            else NotificationKind.REQUEST_CANCELLED
        )
        return [NotifyEffect(request.passenger_id, kind, ride.id, payload)]

    @staticmethod
    def _seat_available_effects(ride: Ride, waiting: RideRequest) -> List[NotifyEffect]:
        payload = {
            "request_id": waiting.id,
            "passenger_id": waiting.passenger_id,
            "requested_seats": waiting.requested_seats,
            "seats_free": ride.seats_free,
        }
        return [
            NotifyEffect(waiting.passenger_id, NotificationKind.SEAT_AVAILABLE, ride.id, payload),
            NotifyEffect(ride.driver_id, NotificationKind.SEAT_AVAILABLE, ride.id, payload),
        ]
