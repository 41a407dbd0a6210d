"""Admin endpoints: paginated listings and moderation actions, ADMIN role only."""
import logging
import math

from sqlalchemy import func
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from sqlmodel import select

from auth import current_user, require_role
from db import get_session, get_lock
from errors import BadRequest, NotFound
from models import ContactSubmission, Message, Trip, TripRequest, User, utcnow
from schemas import (
    AdminContactUpdate,
    AdminRequestUpdate,
    AdminTripUpdate,
    AdminUserUpdate,
    contact_out,
    int_param,
    message_out,
    request_out,
    trip_out,
    user_out,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _page_params(request: Request):
    try:
        page = max(1, int(request.query_params.get("page", 1)))
        limit = min(MAX_PAGE_SIZE, max(1, int(request.query_params.get("limit", 10))))
    except ValueError:
        raise BadRequest("page and limit must be integers")
    return page, limit


def _paginate(session, stmt, count_stmt, page, limit):
    total = session.exec(count_stmt).one()
    rows = session.exec(stmt.offset((page - 1) * limit).limit(limit)).all()
    return rows, {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


def _status_filter(request: Request):
    status = request.query_params.get("status")
    if status and status.lower() != "all":
        return status.upper()
    return None


def _admin(request: Request, session):
    return require_role(current_user(request, session), "ADMIN")


async def list_users(request: Request):
    page, limit = _page_params(request)
    with get_session() as session:
        _admin(request, session)
        cond = []
        search = request.query_params.get("search")
        if search:
            pattern = f"%{search}%"
            cond.append(User.name.ilike(pattern) | User.email.ilike(pattern) | User.phone_number.ilike(pattern))
        status = _status_filter(request)
        if status:
            cond.append(User.status == status)
        stmt = select(User).where(*cond).order_by(User.created_at.desc(), User.id.desc())
        rows, meta = _paginate(session, stmt, select(func.count(User.id)).where(*cond), page, limit)
        return JSONResponse({"items": [user_out(u, private=True) for u in rows], **meta})


async def update_user(request: Request):
    user_id = int(request.path_params["user_id"])
    data = AdminUserUpdate.model_validate(await request.json())
    with get_session() as session:
        _admin(request, session)
        user = session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        for field, value in data.model_dump(exclude_none=True).items():
            setattr(user, field, value)
        user.updated_at = utcnow()
        session.add(user)
        session.commit()
        return JSONResponse(user_out(user, private=True))


async def _set_user_status(request: Request, status: str):
    user_id = int(request.path_params["user_id"])
    with get_session() as session:
        admin = _admin(request, session)
        user = session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        if user.id == admin.id:
            raise BadRequest("Cannot change your own status")
        user.status = status
        user.updated_at = utcnow()
        session.add(user)
        session.commit()
        logger.info("admin %s set user %s status to %s", admin.id, user.id, status)
        return JSONResponse(user_out(user, private=True))


async def block_user(request: Request):
    return await _set_user_status(request, "BLOCKED")


async def unblock_user(request: Request):
    return await _set_user_status(request, "TRUSTED")


async def list_trips(request: Request):
    page, limit = _page_params(request)
    with get_session() as session:
        _admin(request, session)
        cond = []
        search = request.query_params.get("search")
        if search:
            pattern = f"%{search}%"
            cond.append(Trip.origin_name.ilike(pattern) | Trip.destination_name.ilike(pattern))
        status = _status_filter(request)
        if status:
            cond.append(Trip.status == status)
        stmt = select(Trip).where(*cond).order_by(Trip.created_at.desc(), Trip.id.desc())
        rows, meta = _paginate(session, stmt, select(func.count(Trip.id)).where(*cond), page, limit)
        return JSONResponse({"items": [trip_out(t) for t in rows], **meta})


async def update_trip(request: Request):
    trip_id = int(request.path_params["trip_id"])
    data = AdminTripUpdate.model_validate(await request.json())
    with get_session() as session:
        _admin(request, session)
        trip = session.get(Trip, trip_id)
        if not trip:
            raise NotFound("Trip not found")
        if trip.status == "COMPLETED":
            raise BadRequest("Completed trips cannot be changed")
        trip.status = data.status
        trip.updated_at = utcnow()
        session.add(trip)
        session.commit()
        return JSONResponse(trip_out(trip))


async def list_requests(request: Request):
    page, limit = _page_params(request)
    with get_session() as session:
        _admin(request, session)
        cond = []
        status = _status_filter(request)
        if status:
            cond.append(TripRequest.status == status)
        trip_id = int_param(request.query_params, "tripId")
        if trip_id is not None:
            cond.append(TripRequest.trip_id == trip_id)
        stmt = select(TripRequest).where(*cond).order_by(TripRequest.created_at.desc(), TripRequest.id.desc())
        rows, meta = _paginate(session, stmt, select(func.count(TripRequest.id)).where(*cond), page, limit)
        return JSONResponse({"items": [request_out(r) for r in rows], **meta})


async def update_request(request: Request):
    request_id = int(request.path_params["request_id"])
    data = AdminRequestUpdate.model_validate(await request.json())
    with get_lock("booking"):
        with get_session() as session:
            _admin(request, session)
            req = session.get(TripRequest, request_id)
            if not req:
                raise NotFound("Request not found")
            trip = session.get(Trip, req.trip_id)
            was_accepted = req.status == "ACCEPTED"
            # seat counts on closed trips are final
            if trip.status != "PUBLISHED" and was_accepted != (data.status == "ACCEPTED"):
                raise BadRequest("Trip is no longer available for booking")
            if data.status == "ACCEPTED" and not was_accepted:
                if trip.booked_seats >= trip.capacity:
                    raise BadRequest("No available seats")
                trip.booked_seats += 1
                req.accepted_at = utcnow()
            elif was_accepted and data.status != "ACCEPTED":
                trip.booked_seats = max(0, trip.booked_seats - 1)
            if data.status == "CANCELLED":
                req.cancelled_at = utcnow()
            req.status = data.status
            req.updated_at = utcnow()
            session.add(trip)
            session.add(req)
            session.commit()
            return JSONResponse(request_out(req))


async def list_messages(request: Request):
    page, limit = _page_params(request)
    with get_session() as session:
        _admin(request, session)
        cond = []
        search = request.query_params.get("search")
        if search:
            cond.append(Message.content.ilike(f"%{search}%"))
        chat_id = int_param(request.query_params, "chatId")
        if chat_id is not None:
            cond.append(Message.chat_id == chat_id)
        stmt = select(Message).where(*cond).order_by(Message.created_at.desc(), Message.id.desc())
        rows, meta = _paginate(session, stmt, select(func.count(Message.id)).where(*cond), page, limit)
        return JSONResponse({"items": [message_out(m) for m in rows], **meta})


async def delete_message(request: Request):
    message_id = int(request.path_params["message_id"])
    with get_session() as session:
        admin = _admin(request, session)
        message = session.get(Message, message_id)
        if not message:
            raise NotFound("Message not found")
        session.delete(message)
        session.commit()
        logger.info("admin %s deleted message %s", admin.id, message_id)
        return JSONResponse({"deleted": message_id})


async def list_contact(request: Request):
    page, limit = _page_params(request)
    with get_session() as session:
        _admin(request, session)
        cond = []
        search = request.query_params.get("search")
        if search:
            pattern = f"%{search}%"
            cond.append(
                ContactSubmission.subject.ilike(pattern)
                | ContactSubmission.email.ilike(pattern)
                | ContactSubmission.name.ilike(pattern)
            )
        status = _status_filter(request)
        if status:
            cond.append(ContactSubmission.status == status)
        priority = request.query_params.get("priority")
        if priority:
            cond.append(ContactSubmission.priority == priority.upper())
        stmt = (
            select(ContactSubmission)
            .where(*cond)
            .order_by(ContactSubmission.created_at.desc(), ContactSubmission.id.desc())
        )
        rows, meta = _paginate(
            session, stmt, select(func.count(ContactSubmission.id)).where(*cond), page, limit
        )
        return JSONResponse({"items": [contact_out(c) for c in rows], **meta})


async def update_contact(request: Request):
    submission_id = int(request.path_params["submission_id"])
    data = AdminContactUpdate.model_validate(await request.json())
    with get_session() as session:
        _admin(request, session)
        submission = session.get(ContactSubmission, submission_id)
        if not submission:
            raise NotFound("Contact submission not found")
        now = utcnow()
        if data.status:
            submission.status = data.status
        if data.priority:
            submission.priority = data.priority
        if data.response is not None:
            submission.response = data.response
            submission.responded_at = now
            if not data.status and submission.status == "OPEN":
                submission.status = "RESOLVED"
        submission.updated_at = now
        session.add(submission)
        session.commit()
        return JSONResponse(contact_out(submission))


routes = [
    Route("/users", list_users, methods=["GET"]),
    Route("/users/{user_id:int}", update_user, methods=["PUT", "PATCH"]),
    Route("/users/{user_id:int}/block", block_user, methods=["POST"]),
    Route("/users/{user_id:int}/unblock", unblock_user, methods=["POST"]),
    Route("/trips", list_trips, methods=["GET"]),
    Route("/trips/{trip_id:int}", update_trip, methods=["PUT", "PATCH"]),
    Route("/requests", list_requests, methods=["GET"]),
    Route("/requests/{request_id:int}", update_request, methods=["PUT", "PATCH"]),
    Route("/messages", list_messages, methods=["GET"]),
    Route("/messages/{message_id:int}", delete_message, methods=["DELETE"]),
    Route("/contact", list_contact, methods=["GET"]),
    Route("/contact/{submission_id:int}", update_contact, methods=["PUT", "PATCH"]),
]
