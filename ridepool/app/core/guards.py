"""
Role guards for ride operations.

Whether a caller acts as driver or passenger is decided per ride, by
comparing the caller's id with the ride's driver and the request's
passenger. Nothing here trusts a client-supplied role flag.
"""

import enum
from typing import Optional

from ridepool.app.core.exceptions import InsufficientPermissionsError
from ridepool.app.models.ride import Ride
from ridepool.app.models.ride_request import RideRequest


class RideRole(str, enum.Enum):
    DRIVER = "DRIVER"
    PASSENGER = "PASSENGER"


def resolve_ride_role(
    user_id: int,
    ride: Ride,
    request: Optional[RideRequest] = None
) -> Optional[RideRole]:
    """
    Role of ``user_id`` with respect to a ride (and optionally one request on it).

    Returns:
        DRIVER if the user published the ride, PASSENGER if the user owns the
        request, None otherwise
    """
    if ride.driver_id == user_id:
        return RideRole.DRIVER
    if request is not None and request.passenger_id == user_id:
        return RideRole.PASSENGER
    return None


def require_ride_driver(user_id: int, ride: Ride) -> None:
    """Raise 403 unless the user is the ride's driver."""
    if ride.driver_id != user_id:
        raise InsufficientPermissionsError(
            "Only the driver of this ride can do this",
            details={"ride_id": ride.id}
        )


def require_request_passenger(user_id: int, request: RideRequest) -> None:
    """Raise 403 unless the user owns the request."""
    if request.passenger_id != user_id:
        raise InsufficientPermissionsError(
            "Only the passenger who made this request can do this",
            details={"request_id": request.id}
        )
