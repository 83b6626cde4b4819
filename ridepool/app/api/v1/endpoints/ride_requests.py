"""
Ride Request API Endpoints.

Transitions of a single booking request. The caller's role (driver of the
ride or passenger of the request) is checked by the admission engine.
"""

from typing import List

from fastapi import APIRouter, Body, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.dependencies import get_current_user, get_ride_services
from ridepool.app.db.session import get_db
from ridepool.app.domain.rides.container import RideServices
from ridepool.app.domain.rides.outcomes import RequestOutcome
from ridepool.app.models.ride_enums import RideRequestStatus
from ridepool.app.schemas.ride import RideResponse
from ridepool.app.schemas.ride_request import (
    RatingCreate,
    RideRequestActionResponse,
    RideRequestResponse,
)
from ridepool.app.services.audit import AuditAction, log_event

router = APIRouter(prefix="/ride-requests", tags=["Ride Requests"])


def _action_response(outcome: RequestOutcome) -> RideRequestActionResponse:
    promotable = outcome.promotable_request
    return RideRequestActionResponse(
        request=RideRequestResponse.model_validate(outcome.request),
        ride=RideResponse.model_validate(outcome.ride),
        seats_freed=outcome.seats_freed,
        promotable_request_id=promotable.id if promotable is not None else None,
        all_checked_out=outcome.all_checked_out,
    )


@router.get("/mine", response_model=List[RideRequestResponse])
async def list_my_requests(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """The caller's requests, newest first."""
    return await services.request_store.list_for_passenger(db, current_user["user_id"])


@router.post("/{request_id}/accept", response_model=RideRequestActionResponse)
async def accept_request(
    request_id: int = Path(..., description="Ride request ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Accept a waiting request and reserve its seats (driver only)."""
    driver_id = current_user["user_id"]
    outcome = await services.admission.accept_request(db, request_id, driver_id)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.REQUEST_ACCEPTED,
        actor_id=driver_id,
        ride_id=outcome.ride.id,
        request_id=request_id,
        metadata={
            "seats": outcome.request.requested_seats,
            "seats_taken": outcome.ride.seats_taken,
            "ride_status": outcome.ride.status.value,
        },
    )
    return _action_response(outcome)


@router.post("/{request_id}/cancel", response_model=RideRequestActionResponse)
async def cancel_request(
    request_id: int = Path(..., description="Ride request ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """
    End a request.

    The passenger cancels their own request; the driver rejects a waiting
    request or cancels an accepted one.
    """
    actor_id = current_user["user_id"]
    outcome = await services.admission.cancel_or_reject(db, request_id, actor_id)
    await services.notifier.dispatch(outcome.effects)

    action = (
        AuditAction.REQUEST_REJECTED
        if outcome.request.status == RideRequestStatus.REJECTED
        else AuditAction.REQUEST_CANCELLED
    )
    await log_event(
        db=db,
        action=action,
        actor_id=actor_id,
        ride_id=outcome.ride.id,
        request_id=request_id,
        metadata={
            "seats_freed": outcome.seats_freed,
            "promotable_request_id": outcome.promotable_request.id if outcome.promotable_request else None,
        },
    )
    return _action_response(outcome)


@router.post("/{request_id}/check-in", response_model=RideRequestActionResponse)
async def check_in(
    request_id: int = Path(..., description="Ride request ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Board the ride (passenger only)."""
    passenger_id = current_user["user_id"]
    outcome = await services.admission.check_in(db, request_id, passenger_id)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.REQUEST_CHECKED_IN,
        actor_id=passenger_id,
        ride_id=outcome.ride.id,
        request_id=request_id,
    )
    return _action_response(outcome)


@router.post("/{request_id}/check-out", response_model=RideRequestActionResponse)
async def check_out(
    request_id: int = Path(..., description="Ride request ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Leave the ride (passenger only). Unlocks rating."""
    passenger_id = current_user["user_id"]
    outcome = await services.admission.check_out(db, request_id, passenger_id)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.REQUEST_CHECKED_OUT,
        actor_id=passenger_id,
        ride_id=outcome.ride.id,
        request_id=request_id,
        metadata={"all_checked_out": outcome.all_checked_out},
    )
    return _action_response(outcome)


@router.post("/{request_id}/rating", response_model=RideRequestActionResponse)
async def rate_ride(
    request_id: int = Path(..., description="Ride request ID"),
    rating: RatingCreate = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Rate the driver once after checking out (passenger only)."""
    passenger_id = current_user["user_id"]
    outcome = await services.admission.record_rating(db, request_id, passenger_id, rating.overall)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.REQUEST_RATED,
        actor_id=passenger_id,
        ride_id=outcome.ride.id,
        request_id=request_id,
        metadata={"overall": rating.overall},
    )
    return _action_response(outcome)
