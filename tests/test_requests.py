"""
Trips, seat requests, ratings and blocking through the REST API.
"""
from datetime import timedelta

import pytest

from db import get_session
from factories import MADRID, VALENCIA, async_client, auth, make_request, make_trip, make_user
from geospatial import create_wkt
from models import Trip, TripRequest, User


def _trip(trip_id):
    with get_session() as session:
        return session.get(Trip, trip_id)


def _req(request_id):
    with get_session() as session:
        return session.get(TripRequest, request_id)


def _user(user_id):
    with get_session() as session:
        return session.get(User, user_id)


# ────────────────────────── trips ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_and_get_trip():
    driver = make_user("Driver")
    payload = {
        "origin": create_wkt(MADRID[1], MADRID[0]),
        "destination": create_wkt(VALENCIA[1], VALENCIA[0]),
        "originName": "Madrid",
        "destinationName": "Valencia",
        "departureAt": "2030-05-01T08:00:00Z",
        "vehicleType": "CAR",
        "capacity": 3,
        "pricePerSeat": 20,
    }
    async with async_client() as client:
        resp = await client.post("/api/trips", json=payload, headers=auth(driver))
        assert resp.status_code == 201
        trip_id = resp.json()["id"]
        got = await client.get(f"/api/trips/{trip_id}")
    body = got.json()
    assert body["publisherId"] == driver.id
    assert body["availableSeats"] == 3
    assert body["departureAt"].startswith("2030-05-01T08:00:00")
    assert body["pendingRequests"] == 0


@pytest.mark.asyncio
async def test_create_trip_rejects_bad_point_and_anonymous():
    driver = make_user("Driver")
    payload = {
        "origin": "POINT(500 500)",
        "destination": create_wkt(VALENCIA[1], VALENCIA[0]),
        "originName": "Nowhere",
        "destinationName": "Valencia",
        "departureAt": "2030-05-01T08:00:00Z",
        "vehicleType": "CAR",
        "capacity": 3,
        "pricePerSeat": 20,
    }
    async with async_client() as client:
        bad = await client.post("/api/trips", json=payload, headers=auth(driver))
        payload["origin"] = create_wkt(MADRID[1], MADRID[0])
        anon = await client.post("/api/trips", json=payload)
        garbled = await client.post("/api/trips", content=b"{nope", headers=auth(driver))
    assert bad.status_code == 400
    assert anon.status_code == 401
    assert garbled.status_code == 400


@pytest.mark.asyncio
async def test_get_missing_trip():
    async with async_client() as client:
        resp = await client.get("/api/trips/999")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Trip not found"}


@pytest.mark.asyncio
async def test_blocked_account_is_refused():
    user = make_user("Mallory", status="BLOCKED")
    async with async_client() as client:
        resp = await client.get("/api/chat", headers=auth(user))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_cancel_trip_cancels_open_requests():
    driver = make_user("Driver")
    rider = make_user("Rider")
    trip = make_trip(driver.id, booked_seats=1)
    accepted = make_request(trip.id, rider.id, status="ACCEPTED")
    async with async_client() as client:
        forbidden = await client.patch(f"/api/trips/{trip.id}/cancel", headers=auth(rider))
        resp = await client.patch(f"/api/trips/{trip.id}/cancel", headers=auth(driver))
        again = await client.patch(f"/api/trips/{trip.id}/complete", headers=auth(driver))
    assert forbidden.status_code == 403
    assert resp.json()["status"] == "CANCELLED"
    assert again.status_code == 400
    assert _req(accepted.id).status == "CANCELLED"


@pytest.mark.asyncio
async def test_complete_trip():
    driver = make_user("Driver")
    trip = make_trip(driver.id)
    async with async_client() as client:
        resp = await client.patch(f"/api/trips/{trip.id}/complete", headers=auth(driver))
    assert resp.status_code == 200
    assert _trip(trip.id).status == "COMPLETED"


# ────────────────────────── requests ────────────────────────────────────────

@pytest.mark.asyncio
async def test_request_lifecycle_updates_seats():
    driver = make_user("Driver")
    rider = make_user("Rider")
    trip = make_trip(driver.id, capacity=2)
    async with async_client() as client:
        created = await client.post("/api/requests", json={"tripId": trip.id}, headers=auth(rider))
        assert created.status_code == 201
        req_id = created.json()["id"]
        dup = await client.post("/api/requests", json={"tripId": trip.id}, headers=auth(rider))
        accepted = await client.patch(f"/api/requests/{req_id}/status", json={"status": "accepted"}, headers=auth(driver))
        assert _trip(trip.id).booked_seats == 1
        cancelled = await client.patch(f"/api/requests/{req_id}/status", json={"status": "CANCELLED"}, headers=auth(rider))
    assert dup.status_code == 409
    assert accepted.json()["status"] == "ACCEPTED"
    assert accepted.json()["trip"]["availableSeats"] == 1
    assert cancelled.json()["status"] == "CANCELLED"
    assert _trip(trip.id).booked_seats == 0


@pytest.mark.asyncio
async def test_request_rules():
    driver = make_user("Driver")
    rider = make_user("Rider")
    own = make_trip(driver.id)
    past = make_trip(driver.id, departure_in=timedelta(days=-1))
    full = make_trip(driver.id, capacity=1, booked_seats=1)
    async with async_client() as client:
        r_own = await client.post("/api/requests", json={"tripId": own.id}, headers=auth(driver))
        r_past = await client.post("/api/requests", json={"tripId": past.id}, headers=auth(rider))
        r_full = await client.post("/api/requests", json={"tripId": full.id}, headers=auth(rider))
        r_missing = await client.post("/api/requests", json={"tripId": 404}, headers=auth(rider))
    assert r_own.status_code == 400
    assert r_past.status_code == 400
    assert r_full.json() == {"error": "No available seats"}
    assert r_missing.status_code == 404


@pytest.mark.asyncio
async def test_filling_trip_cancels_other_pending():
    driver = make_user("Driver")
    first = make_user("First")
    second = make_user("Second")
    trip = make_trip(driver.id, capacity=1)
    r1 = make_request(trip.id, first.id)
    r2 = make_request(trip.id, second.id)
    async with async_client() as client:
        resp = await client.patch(f"/api/requests/{r1.id}/status", json={"status": "ACCEPTED"}, headers=auth(driver))
        late = await client.patch(f"/api/requests/{r2.id}/status", json={"status": "ACCEPTED"}, headers=auth(driver))
    assert resp.status_code == 200
    assert _req(r2.id).status == "CANCELLED"
    assert late.status_code == 400
    assert _trip(trip.id).booked_seats == 1


@pytest.mark.asyncio
async def test_only_publisher_accepts_or_rejects():
    driver = make_user("Driver")
    rider = make_user("Rider")
    trip = make_trip(driver.id)
    req = make_request(trip.id, rider.id)
    async with async_client() as client:
        self_accept = await client.patch(f"/api/requests/{req.id}/status", json={"status": "ACCEPTED"}, headers=auth(rider))
        bad_status = await client.patch(f"/api/requests/{req.id}/status", json={"status": "MAYBE"}, headers=auth(driver))
        rejected = await client.patch(f"/api/requests/{req.id}/status", json={"status": "REJECTED"}, headers=auth(driver))
    assert self_accept.status_code == 403
    assert bad_status.status_code == 400
    assert rejected.json()["status"] == "REJECTED"


@pytest.mark.asyncio
async def test_incoming_and_outgoing_lists():
    driver = make_user("Driver")
    rider = make_user("Rider")
    trip = make_trip(driver.id)
    make_request(trip.id, rider.id)
    async with async_client() as client:
        incoming = await client.get("/api/requests/incoming", headers=auth(driver))
        outgoing = await client.get("/api/requests/outgoing", headers=auth(rider))
        by_trip = await client.get("/api/requests", params={"tripId": trip.id}, headers=auth(driver))
        stranger = await client.get("/api/requests", headers=auth(make_user("Eve")))
    assert incoming.json()[0]["applicant"]["name"] == "Rider"
    assert outgoing.json()[0]["trip"]["id"] == trip.id
    assert len(by_trip.json()) == 1
    assert stranger.json() == []


@pytest.mark.asyncio
async def test_non_numeric_filters_are_rejected():
    rider = make_user("Rider")
    async with async_client() as client:
        by_trip = await client.get("/api/requests", params={"tripId": "abc"}, headers=auth(rider))
        by_user = await client.get("/api/ratings", params={"userId": "1.5"})
    assert by_trip.status_code == 400
    assert by_trip.json() == {"error": "tripId must be an integer"}
    assert by_user.status_code == 400


@pytest.mark.asyncio
async def test_requests_on_closed_trip_are_frozen():
    driver = make_user("Driver")
    rider = make_user("Rider")
    waiting = make_user("Waiting")
    trip = make_trip(driver.id, status="COMPLETED", booked_seats=1)
    accepted = make_request(trip.id, rider.id, status="ACCEPTED")
    pending = make_request(trip.id, waiting.id)
    async with async_client() as client:
        cancel = await client.patch(f"/api/requests/{accepted.id}/status", json={"status": "CANCELLED"}, headers=auth(rider))
        accept = await client.patch(f"/api/requests/{pending.id}/status", json={"status": "ACCEPTED"}, headers=auth(driver))
    assert cancel.status_code == 400
    assert accept.status_code == 400
    assert _req(accepted.id).status == "ACCEPTED"
    assert _trip(trip.id).booked_seats == 1


# ────────────────────────── ratings ─────────────────────────────────────────

def _rating(rated, reviewer, trip, value=5):
    return {"ratedUserId": rated.id, "reviewerUserId": reviewer.id, "tripId": trip.id, "value": value}


@pytest.mark.asyncio
async def test_rating_updates_aggregates():
    driver = make_user("Driver")
    a = make_user("A")
    b = make_user("B")
    trip = make_trip(driver.id, status="COMPLETED", departure_in=timedelta(days=-1))
    make_request(trip.id, a.id, status="ACCEPTED")
    make_request(trip.id, b.id, status="ACCEPTED")
    async with async_client() as client:
        for rater, value in ((a, 5), (b, 4)):
            resp = await client.post("/api/ratings", json=_rating(driver, rater, trip, value), headers=auth(rater))
            assert resp.status_code == 201
        dup = await client.post("/api/ratings", json=_rating(driver, a, trip, 1), headers=auth(a))
        listed = await client.get("/api/ratings", params={"userId": driver.id})
    assert dup.status_code == 409
    assert len(listed.json()) == 2
    with get_session() as session:
        rated = session.get(User, driver.id)
        assert rated.rating_count == 2
        assert rated.average_rating == 4.5


@pytest.mark.asyncio
async def test_rating_validation():
    driver = make_user("Driver")
    rider = make_user("Rider")
    trip = make_trip(driver.id, status="COMPLETED")
    make_request(trip.id, rider.id, status="ACCEPTED")
    async with async_client() as client:
        out_of_range = await client.post("/api/ratings", json=_rating(driver, rider, trip, 6), headers=auth(rider))
        self_rate = await client.post("/api/ratings", json=_rating(rider, rider, trip, 3), headers=auth(rider))
        impersonate = await client.post("/api/ratings", json={
            "ratedUserId": driver.id, "reviewerUserId": 999, "tripId": trip.id, "value": 3,
        }, headers=auth(rider))
    assert out_of_range.status_code == 400
    assert self_rate.status_code == 400
    assert impersonate.status_code == 403


@pytest.mark.asyncio
async def test_rating_requires_completed_trip():
    driver = make_user("Driver")
    rider = make_user("Rider")
    trip = make_trip(driver.id)
    make_request(trip.id, rider.id, status="ACCEPTED")
    async with async_client() as client:
        resp = await client.post("/api/ratings", json=_rating(driver, rider, trip), headers=auth(rider))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Can only rate completed trips"}
    assert _user(driver.id).rating_count == 0


@pytest.mark.asyncio
async def test_rating_requires_participation():
    driver = make_user("Driver")
    rider = make_user("Rider")
    rejected = make_user("Rejected")
    stranger = make_user("Stranger")
    trip = make_trip(driver.id, status="COMPLETED")
    make_request(trip.id, rider.id, status="ACCEPTED")
    make_request(trip.id, rejected.id, status="REJECTED")
    async with async_client() as client:
        outsider = await client.post("/api/ratings", json=_rating(driver, stranger, trip), headers=auth(stranger))
        not_accepted = await client.post("/api/ratings", json=_rating(driver, rejected, trip), headers=auth(rejected))
        wrong_target = await client.post("/api/ratings", json=_rating(stranger, driver, trip), headers=auth(driver))
        publisher = await client.post("/api/ratings", json=_rating(rider, driver, trip, 4), headers=auth(driver))
    assert outsider.status_code == 403
    assert outsider.json() == {"error": "You can only rate trips you participated in"}
    assert not_accepted.status_code == 403
    assert wrong_target.status_code == 400
    assert publisher.status_code == 201
    assert _user(rider.id).average_rating == 4.0


@pytest.mark.asyncio
async def test_pending_ratings_lists_unrated_completed_rides():
    driver = make_user("Driver")
    rider = make_user("Rider")
    older = make_trip(driver.id, status="COMPLETED", departure_in=timedelta(days=-3), destination_name="Toledo")
    newer = make_trip(driver.id, status="COMPLETED", departure_in=timedelta(days=-1))
    rated = make_trip(driver.id, status="COMPLETED", departure_in=timedelta(days=-2))
    open_trip = make_trip(driver.id)
    for trip in (older, newer, rated, open_trip):
        make_request(trip.id, rider.id, status="ACCEPTED")
    async with async_client() as client:
        done = await client.post("/api/ratings", json=_rating(driver, rider, rated), headers=auth(rider))
        assert done.status_code == 201
        resp = await client.get("/api/ratings/pending", headers=auth(rider))
        anonymous = await client.get("/api/ratings/pending")
        as_driver = await client.get("/api/ratings/pending", headers=auth(driver))
    assert resp.status_code == 200
    assert [t["id"] for t in resp.json()] == [newer.id, older.id]
    assert resp.json()[1]["destinationName"] == "Toledo"
    assert resp.json()[0]["publisher"]["name"] == "Driver"
    assert all(t["canRate"] for t in resp.json())
    assert anonymous.status_code == 401
    assert as_driver.json() == []


# ────────────────────────── blocking ────────────────────────────────────────

@pytest.mark.asyncio
async def test_block_and_unblock():
    me = make_user("Me")
    other = make_user("Other")
    async with async_client() as client:
        blocked = await client.post(f"/api/users/{other.id}/block", json={"reason": "spam"}, headers=auth(me))
        again = await client.post(f"/api/users/{other.id}/block", headers=auth(me))
        myself = await client.post(f"/api/users/{me.id}/block", headers=auth(me))
        listing = await client.get("/api/users/blocked", headers=auth(me))
        unblocked = await client.delete(f"/api/users/{other.id}/unblock", headers=auth(me))
        missing = await client.delete(f"/api/users/{other.id}/unblock", headers=auth(me))
    assert blocked.json()["blockedUser"]["id"] == other.id
    assert again.status_code == 400
    assert myself.status_code == 400
    assert listing.json()[0]["reason"] == "spam"
    assert unblocked.status_code == 200
    assert missing.status_code == 404
