"""API tests: health, auth, bookings, capacity, availability and sessions over HTTP."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def booking_body(practice, slot_day, **overrides) -> dict:
    body = {"coach_id": practice.coach_id, "requested_date": slot_day.isoformat(), "requested_time": "10:00"}
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Health and auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_unauthenticated(client):
    resp = await client.get("/api/v1/bookings")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token(client):
    resp = await client.get("/api/v1/bookings", headers=auth("not-a-jwt"))
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_member_books_for_self(client, practice, slot_day):
    member = practice.members[0]
    resp = await client.post("/api/v1/bookings", headers=auth(member.token), json=booking_body(practice, slot_day))

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "confirmed"
    assert body["member_id"] == member.profile_id
    assert body["member"]["user_id"] == member.account_id
    assert body["coach"]["id"] == practice.coach_id
    assert body["session"]["status"] == "scheduled"


@pytest.mark.asyncio
async def test_member_cannot_book_for_someone_else(client, practice, slot_day):
    member, other = practice.members[0], practice.members[1]
    resp = await client.post(
        "/api/v1/bookings",
        headers=auth(member.token),
        json=booking_body(practice, slot_day, member_id=other.account_id),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_coach_books_for_member(client, practice, slot_day):
    member = practice.members[0]
    resp = await client.post(
        "/api/v1/bookings",
        headers=auth(practice.coach_token),
        json=booking_body(practice, slot_day, member_id=member.account_id),
    )
    assert resp.status_code == 201
    assert resp.json()["member_id"] == member.profile_id


@pytest.mark.asyncio
async def test_coach_cannot_book_other_coach(client, practice, slot_day):
    resp = await client.post(
        "/api/v1/bookings",
        headers=auth(practice.other_coach_token),
        json=booking_body(practice, slot_day, member_id=practice.members[0].account_id),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_coach_must_name_member(client, practice, slot_day):
    resp = await client.post("/api/v1/bookings", headers=auth(practice.coach_token), json=booking_body(practice, slot_day))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_booking_full_slot(client, practice, slot_day):
    for member in practice.members[:2]:
        resp = await client.post("/api/v1/bookings", headers=auth(member.token), json=booking_body(practice, slot_day))
        assert resp.status_code == 201

    resp = await client.post(
        "/api/v1/bookings", headers=auth(practice.members[2].token), json=booking_body(practice, slot_day)
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["rule"] == "slot_full"


@pytest.mark.asyncio
async def test_booking_outside_availability(client, practice, slot_day):
    resp = await client.post(
        "/api/v1/bookings",
        headers=auth(practice.members[0].token),
        json=booking_body(practice, slot_day, requested_time="19:00"),
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["rule"] == "outside_availability"


@pytest.mark.asyncio
async def test_booking_malformed_time(client, practice, slot_day):
    resp = await client.post(
        "/api/v1/bookings",
        headers=auth(practice.members[0].token),
        json=booking_body(practice, slot_day, requested_time="10am"),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_booking_without_profile(client, practice, slot_day):
    resp = await client.post("/api/v1/bookings", headers=auth(practice.orphan_token), json=booking_body(practice, slot_day))
    assert resp.status_code == 404
    assert resp.json()["detail"]["rule"] == "not_found"


@pytest.mark.asyncio
async def test_list_and_get_bookings(client, practice, slot_day):
    mine, theirs = practice.members[0], practice.members[1]
    own = (await client.post("/api/v1/bookings", headers=auth(mine.token), json=booking_body(practice, slot_day))).json()
    other = (
        await client.post(
            "/api/v1/bookings", headers=auth(theirs.token), json=booking_body(practice, slot_day, requested_time="11:00")
        )
    ).json()

    resp = await client.get("/api/v1/bookings", headers=auth(mine.token))
    assert [b["id"] for b in resp.json()] == [own["id"]]

    resp = await client.get(f"/api/v1/bookings/{own['id']}", headers=auth(mine.token))
    assert resp.status_code == 200

    resp = await client.get(f"/api/v1/bookings/{other['id']}", headers=auth(mine.token))
    assert resp.status_code == 403
    assert resp.json()["detail"]["rule"] == "forbidden"

    resp = await client.get("/api/v1/bookings", headers=auth(practice.coach_token))
    assert len(resp.json()) == 2


@pytest.mark.asyncio
async def test_cancel_booking(client, practice, slot_day):
    member = practice.members[0]
    booking = (
        await client.post("/api/v1/bookings", headers=auth(member.token), json=booking_body(practice, slot_day))
    ).json()

    resp = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth(member.token))
    assert resp.status_code == 204

    resp = await client.get(f"/api/v1/sessions/{booking['session_id']}", headers=auth(member.token))
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancellation_reason"] == "Booking cancelled"

    resp = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth(member.token))
    assert resp.status_code == 400
    assert resp.json()["detail"]["rule"] == "invalid_transition"


@pytest.mark.asyncio
async def test_cancel_booking_with_reason(client, practice, slot_day):
    booking = (
        await client.post(
            "/api/v1/bookings", headers=auth(practice.members[0].token), json=booking_body(practice, slot_day)
        )
    ).json()

    resp = await client.post(
        f"/api/v1/bookings/{booking['id']}/cancel", headers=auth(practice.coach_token), json={"reason": "Injury"}
    )
    assert resp.status_code == 204

    resp = await client.get(f"/api/v1/sessions/{booking['session_id']}", headers=auth(practice.coach_token))
    assert resp.json()["cancellation_reason"] == "Injury"


@pytest.mark.asyncio
async def test_pending_bookings_requires_coach(client, practice):
    resp = await client.get(f"/api/v1/bookings/pending/{practice.coach_id}", headers=auth(practice.members[0].token))
    assert resp.status_code == 403

    resp = await client.get(f"/api/v1/bookings/pending/{practice.coach_id}", headers=auth(practice.coach_token))
    assert resp.status_code == 200
    assert resp.json() == []


# ---------------------------------------------------------------------------
# Capacity and availability
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_capacity_endpoint(client, practice, slot_day):
    member = practice.members[0]
    params = {"coach_id": practice.coach_id, "date": slot_day.isoformat(), "time": "10:00"}

    resp = await client.get("/api/v1/bookings/capacity", headers=auth(member.token), params=params)
    assert resp.status_code == 200
    assert resp.json()["remaining_capacity"] == 2

    await client.post("/api/v1/bookings", headers=auth(member.token), json=booking_body(practice, slot_day))

    resp = await client.get("/api/v1/bookings/capacity", headers=auth(member.token), params=params)
    assert resp.json()["remaining_capacity"] == 1

    resp = await client.get(
        "/api/v1/bookings/capacity", headers=auth(member.token), params={**params, "time": "20:00"}
    )
    assert resp.json()["remaining_capacity"] == 0


@pytest.mark.asyncio
async def test_available_slots(client, practice, slot_day):
    params = {"start_date": slot_day.isoformat(), "end_date": slot_day.isoformat(), "duration": 60}
    resp = await client.get(
        f"/api/v1/availability/{practice.coach_id}/slots", headers=auth(practice.members[0].token), params=params
    )

    assert resp.status_code == 200
    slots = resp.json()
    # 09:00-17:00 with 60 minute sessions and the default 15 minute buffer
    assert [s["time"] for s in slots] == ["09:00", "10:15", "11:30", "12:45", "14:00", "15:15"]
    assert all(s["available_capacity"] == 2 for s in slots)


@pytest.mark.asyncio
async def test_available_slots_range_limit(client, practice, slot_day):
    params = {"start_date": slot_day.isoformat(), "end_date": (slot_day + timedelta(days=90)).isoformat()}
    resp = await client.get(
        f"/api/v1/availability/{practice.coach_id}/slots", headers=auth(practice.members[0].token), params=params
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_available_slots_reversed_range(client, practice, slot_day):
    params = {"start_date": slot_day.isoformat(), "end_date": (slot_day - timedelta(days=1)).isoformat()}
    resp = await client.get(
        f"/api/v1/availability/{practice.coach_id}/slots", headers=auth(practice.members[0].token), params=params
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "end_date is before start_date"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


async def _create_session(client, practice, slot_day, member) -> dict:
    resp = await client.post(
        "/api/v1/sessions",
        headers=auth(practice.coach_token),
        json={
            "coach_id": practice.coach_id,
            "member_id": member.profile_id,
            "scheduled_at": f"{slot_day.isoformat()}T10:00:00Z",
            "duration": 60,
            "type": "initial",
        },
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_member_cannot_create_session(client, practice, slot_day):
    member = practice.members[0]
    resp = await client.post(
        "/api/v1/sessions",
        headers=auth(member.token),
        json={
            "coach_id": practice.coach_id,
            "member_id": member.profile_id,
            "scheduled_at": f"{slot_day.isoformat()}T10:00:00Z",
        },
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_coach_notes_hidden_from_member(client, practice, slot_day):
    member = practice.members[0]
    session = await _create_session(client, practice, slot_day, member)

    resp = await client.post(
        f"/api/v1/sessions/{session['id']}/complete",
        headers=auth(practice.coach_token),
        json={"coach_notes": "Needs work on pacing", "outcomes": "5k in 28 min"},
    )
    assert resp.status_code == 200
    assert resp.json()["coach_notes"] == "Needs work on pacing"

    resp = await client.get(f"/api/v1/sessions/{session['id']}", headers=auth(member.token))
    assert resp.json()["status"] == "completed"
    assert resp.json()["coach_notes"] is None
    assert resp.json()["outcomes"] == "5k in 28 min"


@pytest.mark.asyncio
async def test_rate_session_once(client, practice, slot_day):
    member = practice.members[0]
    session = await _create_session(client, practice, slot_day, member)
    await client.post(f"/api/v1/sessions/{session['id']}/complete", headers=auth(practice.coach_token), json={})

    resp = await client.post(f"/api/v1/sessions/{session['id']}/rate", headers=auth(member.token), json={"rating": 6})
    assert resp.status_code == 422

    resp = await client.post(
        f"/api/v1/sessions/{session['id']}/rate", headers=auth(member.token), json={"rating": 5, "feedback": "Great"}
    )
    assert resp.status_code == 200
    assert resp.json()["rating"] == 5

    resp = await client.post(f"/api/v1/sessions/{session['id']}/rate", headers=auth(member.token), json={"rating": 1})
    assert resp.status_code == 400
    assert resp.json()["detail"]["rule"] == "already_rated"


@pytest.mark.asyncio
async def test_session_cancel_then_complete(client, practice, slot_day):
    session = await _create_session(client, practice, slot_day, practice.members[0])

    resp = await client.post(
        f"/api/v1/sessions/{session['id']}/cancel", headers=auth(practice.coach_token), json={"reason": "Weather"}
    )
    assert resp.status_code == 200
    assert resp.json()["calendar_event"]["status"] == "cancelled"

    resp = await client.post(f"/api/v1/sessions/{session['id']}/complete", headers=auth(practice.coach_token), json={})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_session_listings(client, practice, slot_day):
    member = practice.members[0]
    session = await _create_session(client, practice, slot_day, member)

    resp = await client.get("/api/v1/sessions/upcoming", headers=auth(member.token))
    assert [s["id"] for s in resp.json()] == [session["id"]]

    resp = await client.get(f"/api/v1/sessions/member/{member.profile_id}", headers=auth(practice.coach_token))
    assert [s["id"] for s in resp.json()] == [session["id"]]

    resp = await client.get(f"/api/v1/sessions/coach/{practice.coach_id}", headers=auth(practice.other_coach_token))
    assert resp.status_code == 403

    resp = await client.get("/api/v1/sessions", headers=auth(practice.other_coach_token))
    assert resp.json() == []


@pytest.mark.asyncio
async def test_notes_endpoints(client, practice, slot_day):
    member = practice.members[0]
    session = await _create_session(client, practice, slot_day, member)

    resp = await client.patch(
        f"/api/v1/sessions/{session['id']}/member-notes", headers=auth(member.token), json={"notes": "Running late"}
    )
    assert resp.status_code == 200
    assert resp.json()["member_notes"] == "Running late"

    resp = await client.patch(
        f"/api/v1/sessions/{session['id']}/coach-notes", headers=auth(member.token), json={"notes": "Sneaky"}
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_reschedule_session(client, practice, slot_day):
    session = await _create_session(client, practice, slot_day, practice.members[0])

    resp = await client.patch(
        f"/api/v1/sessions/{session['id']}",
        headers=auth(practice.coach_token),
        json={"scheduled_at": f"{slot_day.isoformat()}T13:00:00Z", "duration": 90},
    )
    assert resp.status_code == 200
    assert resp.json()["duration"] == 90
    assert resp.json()["scheduled_at"].startswith(f"{slot_day.isoformat()}T13:00")
