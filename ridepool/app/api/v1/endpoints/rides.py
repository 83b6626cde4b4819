"""
Ride API Endpoints.

Drivers publish rides and drive them through their lifecycle; passengers
book seats on them. Every state change is committed by the ride engine,
then its notifications are dispatched and the change is audited.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ridepool.app.core.dependencies import get_current_user, get_ride_services
from ridepool.app.core.guards import require_ride_driver
from ridepool.app.db.session import get_db
from ridepool.app.domain.rides.container import RideServices
from ridepool.app.schemas.ride import (
    AuditEntryResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    RideCreate,
    RideFinishRequest,
    RideFinishResponse,
    RideResponse,
)
from ridepool.app.schemas.ride_request import (
    RideRequestActionResponse,
    RideRequestCreate,
    RideRequestListResponse,
    RideRequestResponse,
)
from ridepool.app.services.audit import AuditAction, get_ride_audit_trail, log_event

router = APIRouter(prefix="/rides", tags=["Rides"])


@router.post("", response_model=RideResponse, status_code=status.HTTP_201_CREATED)
async def create_ride(
    draft: RideCreate = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """
    Publish a ride offer.

    Validates:
    - Departure is far enough in the future
    - Seat count is within limits
    - Driver has no other ride departing within the minimum gap
    """
    driver_id = current_user["user_id"]
    ride = await services.lifecycle.create_ride(db, driver_id, draft)

    await log_event(
        db=db,
        action=AuditAction.RIDE_CREATED,
        actor_id=driver_id,
        ride_id=ride.id,
        metadata={"scheduled_at": ride.scheduled_at.isoformat(), "total_seats": ride.total_seats},
    )
    return ride


@router.get("/mine", response_model=List[RideResponse])
async def list_my_rides(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Rides published by the caller, soonest first."""
    return await services.ride_store.list_driver_rides(db, current_user["user_id"])


@router.post("/conflicts/check", response_model=ConflictCheckResponse)
async def check_schedule_conflict(
    candidate: ConflictCheckRequest = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Would a ride departing at ``scheduled_at`` clash with the caller's schedule?"""
    has_conflict = await services.lifecycle.has_conflict(
        db,
        current_user["user_id"],
        candidate.scheduled_at,
        exclude_ride_id=candidate.exclude_ride_id,
    )
    return ConflictCheckResponse(
        scheduled_at=candidate.scheduled_at,
        has_conflict=has_conflict,
        min_gap_minutes=int(services.conflicts.min_gap.total_seconds() // 60),
    )


@router.get("/{ride_id}", response_model=RideResponse)
async def get_ride(
    ride_id: int = Path(..., description="Ride ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    return await services.ride_store.get_ride(db, ride_id)


@router.get("/{ride_id}/requests", response_model=RideRequestListResponse)
async def list_ride_requests(
    ride_id: int = Path(..., description="Ride ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """All requests on a ride in arrival order (driver only)."""
    ride = await services.ride_store.get_ride(db, ride_id)
    require_ride_driver(current_user["user_id"], ride)

    requests = await services.request_store.list_for_ride(db, ride_id)
    return RideRequestListResponse(
        ride_id=ride_id,
        requests=[RideRequestResponse.model_validate(r) for r in requests],
    )


@router.get("/{ride_id}/audit", response_model=List[AuditEntryResponse])
async def get_ride_audit(
    ride_id: int = Path(..., description="Ride ID"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Transition history of a ride (driver only)."""
    ride = await services.ride_store.get_ride(db, ride_id)
    require_ride_driver(current_user["user_id"], ride)
    return await get_ride_audit_trail(db, ride_id, limit=limit)


@router.post(
    "/{ride_id}/requests",
    response_model=RideRequestActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_ride_request(
    ride_id: int = Path(..., description="Ride ID"),
    body: RideRequestCreate = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """
    Request seats on a ride.

    The request starts WAITING. When the ride has fewer free seats than
    requested it is still recorded, flagged as waitlisted.
    """
    passenger_id = current_user["user_id"]
    outcome = await services.admission.submit_request(
        db, ride_id, passenger_id, body.seats, body.selected_waypoint
    )
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.REQUEST_SUBMITTED,
        actor_id=passenger_id,
        ride_id=ride_id,
        request_id=outcome.request.id,
        metadata={"seats": body.seats, "is_waitlisted": outcome.request.is_waitlisted},
    )
    return RideRequestActionResponse(
        request=RideRequestResponse.model_validate(outcome.request),
        ride=RideResponse.model_validate(outcome.ride),
    )


@router.post("/{ride_id}/start", response_model=RideResponse)
async def start_ride(
    ride_id: int = Path(..., description="Ride ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Depart (driver only, not before the scheduled time)."""
    driver_id = current_user["user_id"]
    outcome = await services.lifecycle.start_ride(db, ride_id, driver_id)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.RIDE_STARTED,
        actor_id=driver_id,
        ride_id=ride_id,
        metadata={"started_at": outcome.ride.started_at.isoformat()},
    )
    return outcome.ride


@router.post("/{ride_id}/finish", response_model=RideFinishResponse)
async def finish_ride(
    ride_id: int = Path(..., description="Ride ID"),
    body: Optional[RideFinishRequest] = Body(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """
    Arrive (driver only).

    For a recurring ride, ``repeat`` answers the "repeat next week?" offer.
    Leaving it out keeps the offer open for ``POST /rides/{id}/repeat``.
    """
    driver_id = current_user["user_id"]
    outcome = await services.lifecycle.finish_ride(db, ride_id, driver_id, repeat=body.repeat if body else None)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.RIDE_COMPLETED,
        actor_id=driver_id,
        ride_id=ride_id,
        metadata={
            "recurrence_offered": outcome.recurrence_offered,
            "regeneration_failed": outcome.regeneration_failed,
        },
    )
    if outcome.next_ride is not None:
        await log_event(
            db=db,
            action=AuditAction.RIDE_REGENERATED,
            actor_id=driver_id,
            ride_id=outcome.next_ride.id,
            metadata={"previous_ride_id": ride_id},
        )

    return RideFinishResponse(
        ride=RideResponse.model_validate(outcome.ride),
        recurrence_offered=outcome.recurrence_offered,
        next_ride=RideResponse.model_validate(outcome.next_ride) if outcome.next_ride else None,
        regeneration_failed=outcome.regeneration_failed,
    )


@router.post("/{ride_id}/repeat", response_model=RideResponse, status_code=status.HTTP_201_CREATED)
async def repeat_ride(
    ride_id: int = Path(..., description="Ride ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Create next week's occurrence of a completed recurring ride (driver only)."""
    driver_id = current_user["user_id"]
    outcome = await services.lifecycle.repeat_ride(db, ride_id, driver_id)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.RIDE_REGENERATED,
        actor_id=driver_id,
        ride_id=outcome.next_ride.id,
        metadata={"previous_ride_id": ride_id, "reinvited": len(outcome.requests)},
    )
    return outcome.next_ride


@router.post("/{ride_id}/cancel", response_model=RideResponse)
async def cancel_ride(
    ride_id: int = Path(..., description="Ride ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: RideServices = Depends(get_ride_services),
):
    """Call off a ride that has not departed (driver only)."""
    driver_id = current_user["user_id"]
    outcome = await services.lifecycle.cancel_ride(db, ride_id, driver_id)
    await services.notifier.dispatch(outcome.effects)

    await log_event(
        db=db,
        action=AuditAction.RIDE_CANCELLED,
        actor_id=driver_id,
        ride_id=ride_id,
        metadata={"notified": len(outcome.effects)},
    )
    return outcome.ride
