"""
Service wrappers driven against the in-process app, plus the admin API they
front.
"""
import httpx
import pytest

import main
from db import get_session
from errors import ServiceError
from factories import MADRID, make_request, make_trip, make_user
from models import ContactSubmission, Trip
from services import (
    AdminService,
    ApiClient,
    ChatService,
    DriversService,
    NotificationsService,
    RatingsService,
    TripsService,
    UsersService,
)


def client_for(user=None):
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=main.app), base_url="http://testserver")
    return ApiClient(token=user.id if user else None, client=http), http


def mocked(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://testserver")
    return ApiClient(token=1, client=http), http


@pytest.fixture(autouse=True)
def no_push(monkeypatch):
    async def fake_broadcast(message):
        return None

    monkeypatch.setattr(main, "broadcast_message", fake_broadcast)


# ────────────────────────── trips ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_trips_search_returns_typed_response():
    driver = make_user("Driver")
    make_trip(driver.id, origin=MADRID)
    api, http = client_for()
    async with http:
        res = await TripsService(api).search({"originLat": MADRID[0], "originLng": MADRID[1], "q": None})
    assert res.metadata.search_mode == "proximity"
    assert res.metadata.search_level == "exact"
    assert len(res.trips) == 1


@pytest.mark.asyncio
async def test_trips_search_accepts_legacy_list():
    api, http = mocked(lambda request: httpx.Response(200, json=[{"id": 1}]))
    async with http:
        res = await TripsService(api).search()
    assert res.metadata.search_mode == "browse"
    assert res.trips == [{"id": 1}]


@pytest.mark.asyncio
async def test_trips_search_raises_on_http_error():
    api, http = mocked(lambda request: httpx.Response(500, json={"error": "boom"}))
    async with http:
        with pytest.raises(ServiceError) as info:
            await TripsService(api).search()
    assert info.value.status_code == 500


@pytest.mark.asyncio
async def test_wrappers_send_bearer_and_drop_empty_params():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": 3})

    api, http = mocked(handler)
    async with http:
        resp = await ChatService(api).between(1, 2, create=False)
    assert resp.json() == {"id": 3}
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer 1"
    assert request.url.path == "/api/chat/between"
    assert dict(request.url.params) == {"userAId": "1", "userBId": "2", "create": "0"}


@pytest.mark.asyncio
async def test_wrappers_hit_expected_routes():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, dict(request.url.params)))
        return httpx.Response(200, json={})

    api, http = mocked(handler)
    async with http:
        await UsersService(api).unblock(7)
        await UsersService(api).public(7)
        await RatingsService(api).pending()
        await DriversService(api).list({"page": 2, "vehicleType": "VAN", "search": ""})
        await DriversService(api).trusted()
        await NotificationsService(api).list()
        await NotificationsService(api).mark_all_read()
        await NotificationsService(api).mark_read(4)
    assert seen == [
        ("DELETE", "/api/users/7/unblock", {}),
        ("GET", "/api/users/7/public", {}),
        ("GET", "/api/ratings/pending", {}),
        ("GET", "/api/drivers", {"page": "2", "vehicleType": "VAN"}),
        ("GET", "/api/drivers/trusted", {}),
        ("GET", "/api/notifications", {}),
        ("PATCH", "/api/notifications", {}),
        ("PATCH", "/api/notifications/4/read", {}),
    ]


# ────────────────────────── chat ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_chat_service_roundtrip():
    a = make_user("A")
    b = make_user("B")
    api, http = client_for(a)
    async with http:
        chats = ChatService(api)
        chat_id = (await chats.between(a.id, b.id)).json()["id"]
        posted = await chats.post_message(chat_id, {"senderId": a.id, "content": "hola"})
        listed = await chats.messages(chat_id)
        inbox = await chats.list()
    assert posted.status_code == 201
    assert [m["content"] for m in listed.json()] == ["hola"]
    assert inbox.json()[0]["id"] == chat_id


# ────────────────────────── admin ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_admin_service_requires_admin_role():
    user = make_user("Plain")
    api, http = client_for(user)
    async with http:
        with pytest.raises(ServiceError) as info:
            await AdminService(api).get_users()
    assert info.value.status_code == 403


@pytest.mark.asyncio
async def test_admin_users_are_paginated_and_searchable():
    admin = make_user("Root", role="ADMIN")
    for i in range(4):
        make_user(f"Member{i}")
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        page = (await svc.get_users(page=2, limit=2)).json()
        found = (await svc.get_users(search="member3")).json()
    assert page["total"] == 5
    assert page["totalPages"] == 3
    assert len(page["items"]) == 2
    assert [u["name"] for u in found["items"]] == ["Member3"]


@pytest.mark.asyncio
async def test_admin_blocks_user():
    admin = make_user("Root", role="ADMIN")
    target = make_user("Target")
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        blocked = (await svc.block_user(target.id)).json()
        with pytest.raises(ServiceError):
            await svc.block_user(admin.id)
    assert blocked["status"] == "BLOCKED"


@pytest.mark.asyncio
async def test_admin_request_update_keeps_seats_in_step():
    admin = make_user("Root", role="ADMIN")
    driver = make_user("Driver")
    rider = make_user("Rider")
    trip = make_trip(driver.id, capacity=1)
    req = make_request(trip.id, rider.id)
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        await svc.update_request(req.id, {"status": "ACCEPTED"})
        with get_session() as session:
            assert session.get(Trip, trip.id).booked_seats == 1
        await svc.update_request(req.id, {"status": "REJECTED"})
        listed = (await svc.get_requests(status="rejected")).json()
    with get_session() as session:
        assert session.get(Trip, trip.id).booked_seats == 0
    assert [r["id"] for r in listed["items"]] == [req.id]


@pytest.mark.asyncio
async def test_admin_trip_status_and_listing():
    admin = make_user("Root", role="ADMIN")
    driver = make_user("Driver")
    trip = make_trip(driver.id, origin_name="Madrid", destination_name="Sevilla")
    make_trip(driver.id, origin_name="Toledo", destination_name="Segovia")
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        await svc.update_trip(trip.id, {"status": "CANCELLED"})
        cancelled = (await svc.get_trips(status="CANCELLED")).json()
        searched = (await svc.get_trips(search="sevilla")).json()
    assert [t["id"] for t in cancelled["items"]] == [trip.id]
    assert [t["id"] for t in searched["items"]] == [trip.id]


@pytest.mark.asyncio
async def test_admin_contact_response_resolves_open_ticket():
    admin = make_user("Root", role="ADMIN")
    with get_session() as session:
        ticket = ContactSubmission(name="Jane", email="jane@example.com", subject="Refund",
                                   category="BILLING", message="Where is my money?")
        session.add(ticket)
        session.commit()
        session.refresh(ticket)
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        updated = (await svc.update_contact_submission(ticket.id, {"response": "Refund issued"})).json()
        listed = (await svc.get_contact_submissions(status="resolved")).json()
    assert updated["status"] == "RESOLVED"
    assert updated["respondedAt"] is not None
    assert listed["total"] == 1


@pytest.mark.asyncio
async def test_admin_message_moderation():
    admin = make_user("Root", role="ADMIN")
    a = make_user("A")
    b = make_user("B")
    api_a, http_a = client_for(a)
    async with http_a:
        chats = ChatService(api_a)
        chat_id = (await chats.between(a.id, b.id)).json()["id"]
        message = (await chats.post_message(chat_id, {"senderId": a.id, "content": "buy cheap watches"})).json()
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        found = (await svc.get_messages(search="watches")).json()
        await svc.delete_message(message["id"])
        after = (await svc.get_messages(chat_id=chat_id)).json()
        with pytest.raises(ServiceError) as info:
            await svc.delete_message(message["id"])
    assert found["total"] == 1
    assert after["total"] == 0
    assert info.value.status_code == 404


@pytest.mark.asyncio
async def test_admin_request_update_refused_on_closed_trip():
    admin = make_user("Root", role="ADMIN")
    driver = make_user("Driver")
    rider = make_user("Rider")
    waiting = make_user("Waiting")
    done = make_trip(driver.id, status="COMPLETED", booked_seats=1)
    accepted = make_request(done.id, rider.id, status="ACCEPTED")
    pending = make_request(done.id, waiting.id)
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        with pytest.raises(ServiceError) as release:
            await svc.update_request(accepted.id, {"status": "CANCELLED"})
        with pytest.raises(ServiceError) as take:
            await svc.update_request(pending.id, {"status": "ACCEPTED"})
        # moves that leave the seat count alone are still allowed
        rejected = (await svc.update_request(pending.id, {"status": "REJECTED"})).json()
    assert release.value.status_code == 400
    assert take.value.status_code == 400
    assert rejected["status"] == "REJECTED"
    with get_session() as session:
        assert session.get(Trip, done.id).booked_seats == 1


@pytest.mark.asyncio
async def test_admin_filters_reject_non_numeric_ids():
    admin = make_user("Root", role="ADMIN")
    api, http = client_for(admin)
    async with http:
        svc = AdminService(api)
        with pytest.raises(ServiceError) as by_trip:
            await svc.get_requests(trip_id="abc")
        with pytest.raises(ServiceError) as by_chat:
            await svc.get_messages(chat_id="x1")
    assert by_trip.value.status_code == 400
    assert by_chat.value.status_code == 400
