"""
Wiring for the ride engine.

Builds the stores, engines and notification dispatcher from their
collaborators. The API builds one set per process; tests build their own
with fake clocks and sinks.
"""

from dataclasses import dataclass
from datetime import timedelta

from ridepool.app.core.config import settings
from ridepool.app.core.reliability import CircuitBreaker
from ridepool.app.domain.rides.admission_engine import AdmissionEngine
from ridepool.app.domain.rides.conflict_checker import ConflictChecker
from ridepool.app.domain.rides.lifecycle_controller import RideLifecycleController
from ridepool.app.domain.rides.recurrence import RecurrenceRegenerator
from ridepool.app.domain.rides.ride_store import RideRequestStore, RideStore
from ridepool.app.services.clock import ClockSource
from ridepool.app.services.identity import IdentityProvider
from ridepool.app.services.notification_service import NotificationDispatcher, NotificationSink
from ridepool.app.services.sequence_allocator import SequenceAllocator


@dataclass
class RideServices:
    ride_store: RideStore
    request_store: RideRequestStore
    conflicts: ConflictChecker
    admission: AdmissionEngine
    recurrence: RecurrenceRegenerator
    lifecycle: RideLifecycleController
    notifier: NotificationDispatcher
    clock: ClockSource


def build_ride_services(
    clock: ClockSource,
    identity: IdentityProvider,
    sequence: SequenceAllocator,
    sink: NotificationSink,
    max_attempts: int = None,
    breaker: CircuitBreaker = None,
) -> RideServices:
    ride_store = RideStore()
    request_store = RideRequestStore()
    max_attempts = max_attempts or settings.commit_max_attempts

    conflicts = ConflictChecker(
        ride_store,
        min_gap=timedelta(minutes=settings.conflict_min_gap_minutes),
        duration_estimate=timedelta(minutes=settings.ride_duration_estimate_minutes),
    )
    admission = AdmissionEngine(ride_store, request_store, identity, clock, max_attempts=max_attempts)
    recurrence = RecurrenceRegenerator(
        ride_store,
        request_store,
        sequence,
        clock,
        interval=timedelta(days=settings.recurrence_interval_days),
    )
    lifecycle = RideLifecycleController(
        ride_store,
        request_store,
        conflicts,
        recurrence,
        sequence,
        clock,
        max_attempts=max_attempts,
    )
    if breaker is None:
        breaker = CircuitBreaker(
            failure_threshold=settings.notification_failure_threshold,
            reset_timeout=settings.notification_reset_timeout_seconds,
        )

    return RideServices(
        ride_store=ride_store,
        request_store=request_store,
        conflicts=conflicts,
        admission=admission,
        recurrence=recurrence,
        lifecycle=lifecycle,
        notifier=NotificationDispatcher(sink, breaker),
        clock=clock,
    )
