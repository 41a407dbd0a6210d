import json
import logging
import time
from contextlib import asynccontextmanager

import socketio
from pydantic import ValidationError
from sqlalchemy import text
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

import admin
import bookings
import chat
import drivers
import notifications
import ratings
import users
from auth import current_user
from config import settings, configure_logging
from db import init_db, get_session
from errors import ApiError, BadRequest, NotFound
from models import Trip, TripRequest, User, VEHICLE_TYPES, utcnow
from realtime import SOCKETIO_PATH, broadcast_message, sio
from schemas import (
    BlockCreate,
    MessageCreate,
    RatingCreate,
    RequestCreate,
    StatusUpdate,
    TripCreate,
    message_out,
    rating_out,
    request_out,
    to_naive_utc,
    int_param,
    trip_out,
    user_out,
)
from search import TripFilters, find_trips_nearby, resolve_trips

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


def ensure_db():
    init_db()


@asynccontextmanager
async def lifespan(app):
    configure_logging()
    ensure_db()
    yield


async def _json(request: Request):
    try:
        return await request.json()
    except json.JSONDecodeError:
        raise BadRequest("Malformed JSON body")


# ---------------------------------------------------------------- trips

async def search_trips(request: Request):
    filters = TripFilters.from_query(request.query_params)
    with get_session() as session:
        result = resolve_trips(session, filters)
    return JSONResponse(result.to_json())


async def create_trip(request: Request):
    data = TripCreate.model_validate(await _json(request))
    with get_session() as session:
        user = current_user(request, session)
        trip = Trip(
            publisher_id=user.id,
            origin_geom=data.origin,
            destination_geom=data.destination,
            origin_name=data.origin_name,
            destination_name=data.destination_name,
            departure_at=to_naive_utc(data.departure_at),
            vehicle_type=data.vehicle_type,
            capacity=data.capacity,
            price_per_seat=data.price_per_seat,
        )
        session.add(trip)
        session.commit()
        session.refresh(trip)
        return JSONResponse(trip_out(trip, user), status_code=201)


async def nearby_trips(request: Request):
    params = request.query_params
    try:
        lon = float(params["lon"])
        lat = float(params["lat"])
        radius = float(params.get("radiusMeters") or 5000)
    except (KeyError, ValueError):
        raise BadRequest("lon and lat are required numbers")
    with get_session() as session:
        return JSONResponse(find_trips_nearby(session, lon, lat, radius))


async def get_trip(request: Request):
    trip_id = request.path_params["trip_id"]
    with get_session() as session:
        trip = session.get(Trip, trip_id)
        if not trip:
            raise NotFound("Trip not found")
        publisher = session.get(User, trip.publisher_id)
        reqs = session.query(TripRequest).filter(TripRequest.trip_id == trip.id).all()
        out = trip_out(trip, publisher)
        out["acceptedRequests"] = sum(1 for r in reqs if r.status == "ACCEPTED")
        out["pendingRequests"] = sum(1 for r in reqs if r.status == "PENDING")
        return JSONResponse(out)


async def complete_trip(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        trip = bookings.close_trip(session, user, request.path_params["trip_id"], "COMPLETED")
        return JSONResponse(trip_out(trip, user))


async def cancel_trip(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        trip = bookings.close_trip(session, user, request.path_params["trip_id"], "CANCELLED")
        return JSONResponse(trip_out(trip, user))


# ---------------------------------------------------------------- requests

async def create_request(request: Request):
    data = RequestCreate.model_validate(await _json(request))
    with get_session() as session:
        user = current_user(request, session)
        req = bookings.create_request(session, user, data.trip_id)
        return JSONResponse(request_out(req), status_code=201)


async def list_requests(request: Request):
    trip_id = int_param(request.query_params, "tripId")
    with get_session() as session:
        user = current_user(request, session)
        rows = bookings.list_requests(session, user, trip_id)
        return JSONResponse([request_out(r, trip, applicant) for r, trip, applicant in rows])


async def incoming_requests(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        rows = bookings.incoming_requests(session, user)
        return JSONResponse([request_out(r, trip, applicant) for r, trip, applicant in rows])


async def outgoing_requests(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        rows = bookings.outgoing_requests(session, user)
        return JSONResponse([request_out(r, trip) for r, trip in rows])


async def update_request_status(request: Request):
    data = StatusUpdate.model_validate(await _json(request))
    with get_session() as session:
        user = current_user(request, session)
        req = bookings.set_request_status(session, user, request.path_params["request_id"], data.status)
        trip = session.get(Trip, req.trip_id)
        return JSONResponse(request_out(req, trip))


# ---------------------------------------------------------------- chat

async def list_chats(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        return JSONResponse(chat.list_chats(session, user))


async def chat_between(request: Request):
    params = request.query_params
    try:
        a = int(params["userAId"])
        b = int(params["userBId"])
    except (KeyError, ValueError):
        raise BadRequest("Missing user IDs")
    create = params.get("create") == "1"
    with get_session() as session:
        user = current_user(request, session)
        found = chat.get_or_create_chat(session, user, a, b, create=create)
        return JSONResponse({"id": found.id})


async def get_messages(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        rows = chat.list_messages(session, user, request.path_params["chat_id"])
        return JSONResponse([message_out(m) for m in rows])


async def create_message(request: Request):
    data = MessageCreate.model_validate(await _json(request))
    with get_session() as session:
        user = current_user(request, session)
        message = chat.post_message(session, user, request.path_params["chat_id"], data.sender_id, data.content)
    await broadcast_message(message)
    return JSONResponse(message_out(message), status_code=201)


# ---------------------------------------------------------------- ratings

async def create_rating(request: Request):
    data = RatingCreate.model_validate(await _json(request))
    with get_session() as session:
        user = current_user(request, session)
        rating = ratings.create_rating(session, user, data)
        return JSONResponse(rating_out(rating), status_code=201)


async def list_ratings(request: Request):
    user_id = int_param(request.query_params, "userId")
    with get_session() as session:
        rows = ratings.list_ratings(session, user_id)
        return JSONResponse([rating_out(r) for r in rows])


async def pending_ratings(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        return JSONResponse(ratings.pending_ratings(session, user))


# ---------------------------------------------------------------- users

async def block_user(request: Request):
    body = await request.body()
    data = BlockCreate.model_validate(json.loads(body) if body else {})
    with get_session() as session:
        user = current_user(request, session)
        blocked = users.block_user(session, user, request.path_params["user_id"], data.reason)
        return JSONResponse({"message": "User blocked successfully", "blockedUser": user_out(blocked)})


async def unblock_user(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        users.unblock_user(session, user, request.path_params["user_id"])
        return JSONResponse({"message": "User unblocked successfully"})


async def blocked_users(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        rows = users.list_blocked(session, user)
        return JSONResponse([
            {"user": user_out(u), "reason": b.reason, "blockedAt": b.created_at.isoformat()}
            for b, u in rows
        ])


async def public_profile(request: Request):
    with get_session() as session:
        return JSONResponse(users.public_profile(session, request.path_params["user_id"]))


# ---------------------------------------------------------------- drivers

async def list_drivers(request: Request):
    params = request.query_params
    page = max(1, int_param(params, "page") or 1)
    limit = min(50, max(1, int_param(params, "limit") or drivers.DEFAULT_PAGE_SIZE))
    try:
        min_rating = float(params["minRating"]) if params.get("minRating") else None
    except ValueError:
        raise BadRequest("minRating must be a number")
    vehicle = params.get("vehicleType") or None
    if vehicle and vehicle not in VEHICLE_TYPES:
        raise BadRequest("Invalid query parameters")
    with get_session() as session:
        return JSONResponse(drivers.list_drivers(
            session, page, limit, search=params.get("search"), min_rating=min_rating, vehicle_type=vehicle,
        ))


async def trusted_drivers(request: Request):
    limit = min(50, max(1, int_param(request.query_params, "limit") or drivers.TRUSTED_LIMIT))
    with get_session() as session:
        return JSONResponse(drivers.trusted_drivers(session, limit))


# ---------------------------------------------------------------- notifications

async def list_notifications(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        return JSONResponse(notifications.list_notifications(session, user))


async def read_all_notifications(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        notifications.mark_all_read(session, user)
        return JSONResponse({"success": True})


async def read_notification(request: Request):
    with get_session() as session:
        user = current_user(request, session)
        notifications.mark_read(session, user, request.path_params["notification_id"])
        return JSONResponse({"success": True})


# ---------------------------------------------------------------- health

async def health(request: Request):
    try:
        with get_session() as session:
            session.exec(text("SELECT 1"))
    except Exception:
        logger.exception("health check failed")
        return JSONResponse({"status": "error", "error": "Database connection failed"}, status_code=503)
    return JSONResponse({
        "status": "ok",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "timestamp": utcnow().isoformat(),
    })


# ---------------------------------------------------------------- errors

async def api_error(request: Request, exc: ApiError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def validation_error(request: Request, exc: ValidationError):
    return JSONResponse({"error": "Validation error", "details": str(exc)}, status_code=400)


async def json_error(request: Request, exc: json.JSONDecodeError):
    return JSONResponse({"error": "Malformed JSON body"}, status_code=400)


async def server_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


routes = [
    Route("/api/trips", search_trips, methods=["GET"]),
    Route("/api/trips", create_trip, methods=["POST"]),
    Route("/api/trips/nearby", nearby_trips, methods=["GET"]),
    Route("/api/trips/{trip_id:int}", get_trip, methods=["GET"]),
    Route("/api/trips/{trip_id:int}/complete", complete_trip, methods=["PATCH"]),
    Route("/api/trips/{trip_id:int}/cancel", cancel_trip, methods=["PATCH"]),
    Route("/api/requests", create_request, methods=["POST"]),
    Route("/api/requests", list_requests, methods=["GET"]),
    Route("/api/requests/incoming", incoming_requests, methods=["GET"]),
    Route("/api/requests/outgoing", outgoing_requests, methods=["GET"]),
    Route("/api/requests/{request_id:int}/status", update_request_status, methods=["PATCH"]),
    Route("/api/chat", list_chats, methods=["GET"]),
    Route("/api/chat/between", chat_between, methods=["GET"]),
    Route("/api/chat/{chat_id:int}/messages", get_messages, methods=["GET"]),
    Route("/api/chat/{chat_id:int}/messages", create_message, methods=["POST"]),
    Route("/api/ratings", list_ratings, methods=["GET"]),
    Route("/api/ratings", create_rating, methods=["POST"]),
    Route("/api/ratings/pending", pending_ratings, methods=["GET"]),
    Route("/api/users/blocked", blocked_users, methods=["GET"]),
    Route("/api/users/{user_id:int}/block", block_user, methods=["POST"]),
    Route("/api/users/{user_id:int}/unblock", unblock_user, methods=["DELETE"]),
    Route("/api/users/{user_id:int}/public", public_profile, methods=["GET"]),
    Route("/api/drivers", list_drivers, methods=["GET"]),
    Route("/api/drivers/trusted", trusted_drivers, methods=["GET"]),
    Route("/api/notifications", list_notifications, methods=["GET"]),
    Route("/api/notifications", read_all_notifications, methods=["PATCH"]),
    Route("/api/notifications/{notification_id:int}/read", read_notification, methods=["PATCH"]),
    Route("/api/health", health, methods=["GET"]),
    Mount("/api/admin", routes=admin.routes),
]

exception_handlers = {
    ApiError: api_error,
    ValidationError: validation_error,
    json.JSONDecodeError: json_error,
    Exception: server_error,
}

app = Starlette(debug=settings.debug, routes=routes, lifespan=lifespan, exception_handlers=exception_handlers)

# served by uvicorn: REST on app, push channel on /api/socketio
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=SOCKETIO_PATH)
