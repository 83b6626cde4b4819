"""
Failure Injection Tests.

Validates that collaborator failures never undo a committed transition.
"""

import pytest

from ridepool.app.core.reliability import CircuitBreaker, CircuitOpenError
from ridepool.app.domain.rides.outcomes import NotifyEffect
from ridepool.app.models.notification import NotificationKind
from ridepool.app.models.ride_enums import RideRequestStatus
from ridepool.app.services.notification_service import (
    InAppNotificationSink,
    NotificationDispatcher,
    NotificationService,
)

from conftest import DRIVER, PASSENGER_1


class BrokenSink:
    def __init__(self):
        self.calls = 0

    async def notify(self, user_id, kind, ride_id, payload):
        self.calls += 1
        raise ConnectionError("push gateway down")


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_trial():
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=10)

    async def failing_func():
        raise ValueError("Boom")

    async def ok_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Trial call after the timeout fails: straight back to OPEN
    cb.last_failure_time -= 11
    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    cb.last_failure_time -= 11
    assert await cb.call(ok_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_dispatcher_swallows_sink_failures():
    sink = BrokenSink()
    dispatcher = NotificationDispatcher(sink, CircuitBreaker(failure_threshold=2, reset_timeout=60))
    effects = [NotifyEffect(DRIVER, NotificationKind.REQUEST_SUBMITTED, 1, {}) for _ in range(4)]

    delivered = await dispatcher.dispatch(effects)

    assert delivered == 0
    # The circuit opened after two failures; the rest were dropped without calling the sink
    assert sink.calls == 2


@pytest.mark.asyncio
async def test_transition_survives_notification_failure(services, db_session, make_ride):
    ride = await make_ride()
    services.notifier.sink = BrokenSink()

    outcome = await services.admission.submit_request(db_session, ride.id, PASSENGER_1, 1)
    delivered = await services.notifier.dispatch(outcome.effects)

    assert delivered == 0
    stored = await services.request_store.get_request(db_session, outcome.request.id)
    assert stored.status == RideRequestStatus.WAITING


@pytest.mark.asyncio
async def test_in_app_sink_persists_notifications(session_factory, db_session):
    sink = InAppNotificationSink(session_factory)

    await sink.notify(PASSENGER_1, NotificationKind.REQUEST_ACCEPTED, 7, {"request_id": 3})

    notifications = await NotificationService.list_for_user(db_session, PASSENGER_1)
    assert len(notifications) == 1
    assert notifications[0].kind == NotificationKind.REQUEST_ACCEPTED
    assert notifications[0].payload == {"request_id": 3}
    assert notifications[0].is_read is False
