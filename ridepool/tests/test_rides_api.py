"""
Ride API Tests.

End-to-end flows through the HTTP surface.
"""

import pytest
from starlette.requests import Request

from ridepool.app.core.config import settings
from ridepool.app.core.observability import ride_context
from ridepool.app.db.session import engine_options
from ridepool.app.models.notification import NotificationKind
from ridepool.app.services.notification_service import NotificationService

from conftest import DEPARTURE, DRIVER, PASSENGER_1, PASSENGER_2, token_for

RIDE_PAYLOAD = {
    "origin_address": "Kaiserstrasse 1, Karlsruhe",
    "destination_address": "Hauptbahnhof, Stuttgart",
    "scheduled_at": "2024-05-06T10:00:00",
    "total_seats": 2,
    "is_recurring": True,
    "recurring_days": ["MONDAY"],
}


async def _create_ride(client, **overrides):
    response = await client.post("/v1/rides", json={**RIDE_PAYLOAD, **overrides}, headers=token_for(DRIVER))
    assert response.status_code == 201, response.text
    return response.json()


async def _submit(client, ride_id, passenger_id, seats=1):
    response = await client.post(
        f"/v1/rides/{ride_id}/requests", json={"seats": seats}, headers=token_for(passenger_id)
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis"] is True
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_authentication_required(client):
    response = await client.get("/v1/rides/mine")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/rides/mine", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_create_and_read_ride(client):
    ride = await _create_ride(client)

    assert ride["status"] == "AVAILABLE"
    assert ride["driver_id"] == DRIVER
    assert ride["scheduled_at"] == "2024-05-06T10:00:00"

    response = await client.get(f"/v1/rides/{ride['id']}", headers=token_for(PASSENGER_1))
    assert response.status_code == 200
    assert response.json()["id"] == ride["id"]

    mine = await client.get("/v1/rides/mine", headers=token_for(DRIVER))
    assert [r["id"] for r in mine.json()] == [ride["id"]]


@pytest.mark.asyncio
async def test_schedule_conflict(client):
    await _create_ride(client)

    response = await client.post(
        "/v1/rides", json={**RIDE_PAYLOAD, "scheduled_at": "2024-05-06T10:10:00"}, headers=token_for(DRIVER)
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_SCHEDULE_001"

    check = await client.post(
        "/v1/rides/conflicts/check", json={"scheduled_at": "2024-05-06T10:20:00"}, headers=token_for(DRIVER)
    )
    assert check.status_code == 200
    assert check.json()["has_conflict"] is False
    assert check.json()["min_gap_minutes"] == 15

    await _create_ride(client, scheduled_at="2024-05-06T10:20:00")


@pytest.mark.asyncio
async def test_errors_use_standard_format(client):
    missing = await client.get("/v1/rides/999999", headers=token_for(DRIVER))
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "ERR_NOT_FOUND_001"

    invalid = await client.post(
        "/v1/rides", json={**RIDE_PAYLOAD, "total_seats": 0}, headers=token_for(DRIVER)
    )
    assert invalid.status_code == 422
    assert invalid.json()["error_code"] == "ERR_VALIDATION"

    too_soon = await client.post(
        "/v1/rides", json={**RIDE_PAYLOAD, "scheduled_at": "2024-05-06T08:10:00"}, headers=token_for(DRIVER)
    )
    assert too_soon.status_code == 422
    assert too_soon.json()["error_code"] == "ERR_RIDE_001"


@pytest.mark.asyncio
async def test_booking_flow(client, sink):
    ride = await _create_ride(client)
    ride_id = ride["id"]

    submitted = await _submit(client, ride_id, PASSENGER_1, seats=2)
    request_id = submitted["request"]["id"]
    assert submitted["request"]["status"] == "WAITING"
    assert NotificationKind.REQUEST_SUBMITTED in sink.kinds_for(DRIVER)

    duplicate = await client.post(f"/v1/rides/{ride_id}/requests", json={"seats": 1}, headers=token_for(PASSENGER_1))
    assert duplicate.status_code == 409
    assert duplicate.json()["error_code"] == "ERR_BOOKING_003"

    # Passengers cannot accept, nor see the driver's request list
    forbidden = await client.post(f"/v1/ride-requests/{request_id}/accept", headers=token_for(PASSENGER_1))
    assert forbidden.status_code == 403
    listing = await client.get(f"/v1/rides/{ride_id}/requests", headers=token_for(PASSENGER_1))
    assert listing.status_code == 403

    accepted = await client.post(f"/v1/ride-requests/{request_id}/accept", headers=token_for(DRIVER))
    assert accepted.status_code == 200
    body = accepted.json()
    assert body["request"]["status"] == "ACCEPTED"
    assert body["ride"]["status"] == "FULL"
    assert body["ride"]["seats_taken"] == 2

    waitlisted = await _submit(client, ride_id, PASSENGER_2)
    assert waitlisted["request"]["is_waitlisted"] is True

    cancelled = await client.post(f"/v1/ride-requests/{request_id}/cancel", headers=token_for(PASSENGER_1))
    assert cancelled.status_code == 200
    body = cancelled.json()
    assert body["request"]["status"] == "CANCELLED"
    assert body["ride"]["status"] == "AVAILABLE"
    assert body["seats_freed"] == 2
    assert body["promotable_request_id"] == waitlisted["request"]["id"]

    listing = await client.get(f"/v1/rides/{ride_id}/requests", headers=token_for(DRIVER))
    assert [r["passenger_id"] for r in listing.json()["requests"]] == [PASSENGER_1, PASSENGER_2]

    mine = await client.get("/v1/ride-requests/mine", headers=token_for(PASSENGER_2))
    assert [r["id"] for r in mine.json()] == [waitlisted["request"]["id"]]

    audit = await client.get(f"/v1/rides/{ride_id}/audit", headers=token_for(DRIVER))
    actions = [entry["action"] for entry in audit.json()]
    assert "RIDE_CREATED" in actions
    assert "REQUEST_ACCEPTED" in actions
    assert "REQUEST_CANCELLED" in actions


@pytest.mark.asyncio
async def test_ride_lifecycle_flow(client, clock, sink):
    ride = await _create_ride(client)
    ride_id = ride["id"]
    request_id = (await _submit(client, ride_id, PASSENGER_1))["request"]["id"]
    await client.post(f"/v1/ride-requests/{request_id}/accept", headers=token_for(DRIVER))

    early = await client.post(f"/v1/rides/{ride_id}/start", headers=token_for(DRIVER))
    assert early.status_code == 409
    assert early.json()["error_code"] == "ERR_STATE_001"

    clock.set(DEPARTURE)
    started = await client.post(f"/v1/rides/{ride_id}/start", headers=token_for(DRIVER))
    assert started.status_code == 200
    assert started.json()["status"] == "IN_PROGRESS"

    checked_in = await client.post(f"/v1/ride-requests/{request_id}/check-in", headers=token_for(PASSENGER_1))
    assert checked_in.json()["request"]["status"] == "CHECKED_IN"
    checked_out = await client.post(f"/v1/ride-requests/{request_id}/check-out", headers=token_for(PASSENGER_1))
    assert checked_out.json()["all_checked_out"] is True

    rating = await client.post(
        f"/v1/ride-requests/{request_id}/rating", json={"overall": 5}, headers=token_for(PASSENGER_1)
    )
    assert rating.status_code == 200

    finished = await client.post(f"/v1/rides/{ride_id}/finish", json={"repeat": True}, headers=token_for(DRIVER))
    assert finished.status_code == 200
    body = finished.json()
    assert body["ride"]["status"] == "COMPLETED"
    assert body["regeneration_failed"] is False
    assert body["next_ride"]["scheduled_at"] == "2024-05-13T10:00:00"
    assert body["next_ride"]["seats_taken"] == 0

    again = await client.post(f"/v1/rides/{ride_id}/repeat", headers=token_for(DRIVER))
    assert again.status_code == 409

    next_requests = await client.get(f"/v1/rides/{body['next_ride']['id']}/requests", headers=token_for(DRIVER))
    requests = next_requests.json()["requests"]
    assert [(r["passenger_id"], r["status"]) for r in requests] == [(PASSENGER_1, "WAITING")]
    assert NotificationKind.NEXT_OCCURRENCE_CREATED in sink.kinds_for(PASSENGER_1)


@pytest.mark.asyncio
async def test_finish_without_body_offers_repeat(client, clock):
    ride = await _create_ride(client)
    clock.set(DEPARTURE)
    await client.post(f"/v1/rides/{ride['id']}/start", headers=token_for(DRIVER))

    finished = await client.post(f"/v1/rides/{ride['id']}/finish", headers=token_for(DRIVER))
    assert finished.status_code == 200
    assert finished.json()["recurrence_offered"] is True
    assert finished.json()["next_ride"] is None

    repeated = await client.post(f"/v1/rides/{ride['id']}/repeat", headers=token_for(DRIVER))
    assert repeated.status_code == 201
    assert repeated.json()["previous_occurrence_id"] == ride["id"]


@pytest.mark.asyncio
async def test_cancel_ride(client):
    ride = await _create_ride(client, is_recurring=False, recurring_days=[])
    await _submit(client, ride["id"], PASSENGER_1)

    response = await client.post(f"/v1/rides/{ride['id']}/cancel", headers=token_for(DRIVER))
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    late = await client.post(f"/v1/rides/{ride['id']}/requests", json={"seats": 1}, headers=token_for(PASSENGER_2))
    assert late.status_code == 409
    assert late.json()["error_code"] == "ERR_BOOKING_001"


@pytest.mark.asyncio
async def test_notification_inbox(client, db_session):
    await NotificationService.create_notification(
        db_session, PASSENGER_1, NotificationKind.SEAT_AVAILABLE, ride_id=101, payload={"request_id": 1}
    )
    await NotificationService.create_notification(
        db_session, PASSENGER_1, NotificationKind.RIDE_STARTED, ride_id=101, payload={}
    )
    await db_session.commit()

    inbox = await client.get("/v1/notifications", headers=token_for(PASSENGER_1))
    assert inbox.status_code == 200
    items = inbox.json()
    assert len(items) == 2

    read = await client.patch(f"/v1/notifications/{items[0]['id']}/read", headers=token_for(PASSENGER_1))
    assert read.status_code == 200
    unread = await client.get("/v1/notifications", params={"unread_only": True}, headers=token_for(PASSENGER_1))
    assert len(unread.json()) == 1

    others = await client.patch(f"/v1/notifications/{items[1]['id']}/read", headers=token_for(PASSENGER_2))
    assert others.status_code == 404

    read_all = await client.patch("/v1/notifications/read-all", headers=token_for(PASSENGER_1))
    assert read_all.json()["count"] == 1


def test_ride_context_picks_route_ids():
    request = Request({"type": "http", "path_params": {"ride_id": 101, "notification_id": 3}})
    assert ride_context(request) == {"ride_id": 101}

    assert ride_context(Request({"type": "http"})) == {}


def test_engine_options_size_only_server_pools():
    server = engine_options("postgresql+asyncpg://user:password@db:5432/ridepool_db")
    assert server["pool_size"] == settings.db_pool_size
    assert server["pool_pre_ping"] is True

    local = engine_options("sqlite+aiosqlite:///./ridepool.db")
    assert "pool_size" not in local
    assert local["echo"] == settings.db_echo
