"""
Trip request lifecycle: applicants ask for a seat, publishers accept or
reject, either party can cancel. Seat accounting runs under the "booking"
lock so concurrent accepts cannot push booked_seats past capacity.
"""
import logging
from typing import List

from sqlmodel import Session, select

from db import get_lock
from errors import BadRequest, Conflict, Forbidden, NotFound
from models import Trip, TripRequest, User, utcnow
from notifications import rating_notification, request_notification

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("PENDING", "ACCEPTED")


def create_request(session: Session, user: User, trip_id: int) -> TripRequest:
    trip = session.get(Trip, trip_id)
    if not trip:
        raise NotFound("Trip not found")
    if trip.publisher_id == user.id:
        raise BadRequest("Cannot request your own trip")
    if trip.departure_at < utcnow():
        raise BadRequest("Trip departure date is in the past")
    if trip.status != "PUBLISHED":
        raise BadRequest("Trip is no longer available for booking")
    if trip.capacity - trip.booked_seats <= 0:
        raise BadRequest("No available seats")
    existing = session.exec(
        select(TripRequest).where(TripRequest.trip_id == trip_id, TripRequest.applicant_id == user.id)
    ).first()
    if existing:
        raise Conflict("Request already exists")
    req = TripRequest(trip_id=trip_id, applicant_id=user.id, status="PENDING")
    session.add(req)
    session.flush()
    request_notification(session, "REQUEST_SENT", req, trip, trip.publisher_id, user.id)
    session.commit()
    session.refresh(req)
    return req


def _accept(session: Session, req: TripRequest, trip: Trip) -> None:
    if req.status != "PENDING":
        raise BadRequest("Only pending requests can be accepted")
    if trip.capacity - trip.booked_seats <= 0:
        raise BadRequest("No available seats")
    now = utcnow()
    req.status = "ACCEPTED"
    req.accepted_at = now
    req.updated_at = now
    trip.booked_seats += 1
    trip.updated_at = now
    session.add(req)
    session.add(trip)
    if trip.booked_seats >= trip.capacity:
        # trip is full: close the remaining pending requests
        others = session.exec(
            select(TripRequest).where(
                TripRequest.trip_id == trip.id,
                TripRequest.status == "PENDING",
                TripRequest.id != req.id,
            )
        ).all()
        for other in others:
            other.status = "CANCELLED"
            other.cancelled_at = now
            other.updated_at = now
            session.add(other)
            request_notification(session, "REQUEST_CANCELLED", other, trip, other.applicant_id, trip.publisher_id)
        logger.info("trip %s full, cancelled %d pending requests", trip.id, len(others))


def _cancel(session: Session, req: TripRequest, trip: Trip) -> None:
    if req.status not in OPEN_STATUSES:
        raise BadRequest(f"Cannot cancel a {req.status.lower()} request")
    now = utcnow()
    if req.status == "ACCEPTED":
        trip.booked_seats = max(0, trip.booked_seats - 1)
        trip.updated_at = now
        session.add(trip)
    req.status = "CANCELLED"
    req.cancelled_at = now
    req.updated_at = now
    session.add(req)


def set_request_status(session: Session, user: User, request_id: int, status: str) -> TripRequest:
    with get_lock("booking"):
        req = session.get(TripRequest, request_id)
        if not req:
            raise NotFound("Request not found")
        trip = session.get(Trip, req.trip_id)
        is_publisher = trip.publisher_id == user.id
        if not is_publisher and (status != "CANCELLED" or req.applicant_id != user.id):
            raise Forbidden("Forbidden")
        # seat counts on closed trips are final
        if trip.status != "PUBLISHED":
            raise BadRequest("Trip is no longer available for booking")

        if status == "CANCELLED":
            _cancel(session, req, trip)
        elif status == "ACCEPTED":
            _accept(session, req, trip)
        elif status == "REJECTED":
            if req.status != "PENDING":
                raise BadRequest("Only pending requests can be rejected")
            req.status = "REJECTED"
            req.updated_at = utcnow()
            session.add(req)
        else:
            raise BadRequest(f"Unsupported status {status}")
        recipient = req.applicant_id if is_publisher else trip.publisher_id
        request_notification(session, f"REQUEST_{status}", req, trip, recipient, user.id)
        session.commit()
        session.refresh(req)
        return req


def list_requests(session: Session, user: User, trip_id=None) -> List[tuple]:
    """Requests visible to the user: ones they made or ones on their trips."""
    stmt = (
        select(TripRequest, Trip, User)
        .join(Trip, Trip.id == TripRequest.trip_id)
        .join(User, User.id == TripRequest.applicant_id)
        .where((TripRequest.applicant_id == user.id) | (Trip.publisher_id == user.id))
        .order_by(TripRequest.created_at.desc(), TripRequest.id.desc())
    )
    if trip_id is not None:
        stmt = stmt.where(TripRequest.trip_id == trip_id)
    return session.exec(stmt).all()


def incoming_requests(session: Session, user: User) -> List[tuple]:
    stmt = (
        select(TripRequest, Trip, User)
        .join(Trip, Trip.id == TripRequest.trip_id)
        .join(User, User.id == TripRequest.applicant_id)
        .where(Trip.publisher_id == user.id)
        .order_by(TripRequest.created_at.desc(), TripRequest.id.desc())
    )
    return session.exec(stmt).all()


def outgoing_requests(session: Session, user: User) -> List[tuple]:
    stmt = (
        select(TripRequest, Trip)
        .join(Trip, Trip.id == TripRequest.trip_id)
        .where(TripRequest.applicant_id == user.id)
        .order_by(TripRequest.created_at.desc(), TripRequest.id.desc())
    )
    return session.exec(stmt).all()


def close_trip(session: Session, user: User, trip_id: int, status: str) -> Trip:
    """Move a published trip to COMPLETED or CANCELLED; publisher only."""
    with get_lock("booking"):
        trip = session.get(Trip, trip_id)
        if not trip:
            raise NotFound("Trip not found")
        if trip.publisher_id != user.id:
            raise Forbidden("Forbidden")
        if trip.status != "PUBLISHED":
            raise BadRequest(f"Trip is already {trip.status.lower()}")
        now = utcnow()
        trip.status = status
        trip.updated_at = now
        session.add(trip)
        if status == "CANCELLED":
            open_reqs = session.exec(
                select(TripRequest).where(
                    TripRequest.trip_id == trip.id, TripRequest.status.in_(OPEN_STATUSES)
                )
            ).all()
            for req in open_reqs:
                req.status = "CANCELLED"
                req.cancelled_at = now
                req.updated_at = now
                session.add(req)
                request_notification(session, "REQUEST_CANCELLED", req, trip, req.applicant_id, user.id)
        else:
            passengers = session.exec(
                select(TripRequest).where(TripRequest.trip_id == trip.id, TripRequest.status == "ACCEPTED")
            ).all()
            for req in passengers:
                rating_notification(session, req, trip)
        session.commit()
        session.refresh(trip)
        return trip
