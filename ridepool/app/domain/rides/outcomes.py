"""
Side-effect descriptors and operation results.

Engine operations never talk to collaborators while a transaction is open.
They return an outcome carrying the committed entities plus the list of
notifications to emit, and the caller dispatches those after commit.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ridepool.app.models.notification import NotificationKind
from ridepool.app.models.ride import Ride
from ridepool.app.models.ride_request import RideRequest


@dataclass(frozen=True)
class NotifyEffect:
    """One fire-and-forget notification for NotificationSink.notify."""
    user_id: int
    kind: NotificationKind
    ride_id: int
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RequestOutcome:
    """Result of an Admission Engine operation."""
    ride: Ride
    request: RideRequest
    effects: List[NotifyEffect] = field(default_factory=list)
    seats_freed: int = 0
    promotable_request: Optional[RideRequest] = None
    all_checked_out: bool = False


@dataclass
class RideOutcome:
    """Result of a Ride Lifecycle Controller operation."""
    ride: Ride
    effects: List[NotifyEffect] = field(default_factory=list)
    recurrence_offered: bool = False
    next_ride: Optional[Ride] = None
    regeneration_failed: bool = False


@dataclass
class RegenerationOutcome:
    """Result of regenerating a recurring ride one interval forward."""
    source_ride: Ride
    next_ride: Ride
    requests: List[RideRequest] = field(default_factory=list)
    effects: List[NotifyEffect] = field(default_factory=list)
