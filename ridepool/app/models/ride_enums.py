"""
Ride-related enumerations and the transition tables built on them.
"""

import enum


class RideStatus(str, enum.Enum):
    """Ride status enumeration."""
    AVAILABLE = "AVAILABLE"  # Published, seats free
    FULL = "FULL"  # Every seat taken by accepted passengers
    IN_PROGRESS = "IN_PROGRESS"  # Driver has departed
    COMPLETED = "COMPLETED"  # Driver finished the ride
    CANCELLED = "CANCELLED"  # Driver cancelled before departure


class RideRequestStatus(str, enum.Enum):
    """Ride request status enumeration."""
    WAITING = "WAITING"  # Submitted, awaiting the driver's decision
    ACCEPTED = "ACCEPTED"  # Driver accepted, seats reserved
    REJECTED = "REJECTED"  # Driver declined
    CHECKED_IN = "CHECKED_IN"  # Passenger on board
    CHECKED_OUT = "CHECKED_OUT"  # Passenger disembarked
    CANCELLED = "CANCELLED"  # Withdrawn by passenger or removed by driver


TERMINAL_RIDE_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})
BOOKABLE_RIDE_STATUSES = frozenset({RideStatus.AVAILABLE, RideStatus.FULL})
SCHEDULED_RIDE_STATUSES = frozenset({RideStatus.AVAILABLE, RideStatus.FULL, RideStatus.IN_PROGRESS})

RIDE_TRANSITIONS = {
    RideStatus.AVAILABLE: frozenset({RideStatus.FULL, RideStatus.IN_PROGRESS, RideStatus.CANCELLED}),
    RideStatus.FULL: frozenset({RideStatus.AVAILABLE, RideStatus.IN_PROGRESS, RideStatus.CANCELLED}),
    RideStatus.IN_PROGRESS: frozenset({RideStatus.COMPLETED}),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATUSES = frozenset({
    RideRequestStatus.REJECTED,
    RideRequestStatus.CHECKED_OUT,
    RideRequestStatus.CANCELLED,
})
ACTIVE_REQUEST_STATUSES = frozenset({
    RideRequestStatus.WAITING,
    RideRequestStatus.ACCEPTED,
    RideRequestStatus.CHECKED_IN,
})
# Requests whose seats are counted in Ride.seats_taken
SEAT_HOLDING_STATUSES = frozenset({RideRequestStatus.ACCEPTED, RideRequestStatus.CHECKED_IN})
# Passengers who actually travelled (or were about to) on a ride
PASSENGER_STATUSES = frozenset({
    RideRequestStatus.ACCEPTED,
    RideRequestStatus.CHECKED_IN,
    RideRequestStatus.CHECKED_OUT,
})

REQUEST_TRANSITIONS = {
    RideRequestStatus.WAITING: frozenset({
        RideRequestStatus.ACCEPTED,
        RideRequestStatus.REJECTED,
        RideRequestStatus.CANCELLED,
    }),
    RideRequestStatus.ACCEPTED: frozenset({RideRequestStatus.CHECKED_IN, RideRequestStatus.CANCELLED}),
    RideRequestStatus.CHECKED_IN: frozenset({RideRequestStatus.CHECKED_OUT}),
    RideRequestStatus.REJECTED: frozenset(),
    RideRequestStatus.CHECKED_OUT: frozenset(),
    RideRequestStatus.CANCELLED: frozenset(),
}
