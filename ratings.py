from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from errors import BadRequest, Conflict, Forbidden, NotFound
from models import Rating, Trip, TripRequest, User, utcnow
from schemas import RatingCreate, trip_out


def refresh_user_rating(session: Session, user: User) -> None:
    avg, count = session.exec(
        select(func.avg(Rating.value), func.count(Rating.id)).where(Rating.rated_user_id == user.id)
    ).one()
    user.average_rating = round(float(avg or 0.0), 2)
    user.rating_count = int(count or 0)
    user.updated_at = utcnow()
    session.add(user)


def _participants(session: Session, trip: Trip) -> set:
    accepted = session.exec(
        select(TripRequest.applicant_id).where(TripRequest.trip_id == trip.id, TripRequest.status == "ACCEPTED")
    ).all()
    return {trip.publisher_id, *accepted}


def create_rating(session: Session, reviewer: User, data: RatingCreate) -> Rating:
    """Only people who rode a completed trip (publisher or accepted passengers) rate each other."""
    if data.reviewer_user_id != reviewer.id:
        raise Forbidden("Forbidden")
    if data.rated_user_id == reviewer.id:
        raise BadRequest("Cannot rate yourself")
    rated = session.get(User, data.rated_user_id)
    if not rated:
        raise NotFound("User not found")
    trip = session.get(Trip, data.trip_id)
    if not trip:
        raise NotFound("Trip not found")
    if trip.status != "COMPLETED":
        raise BadRequest("Can only rate completed trips")
    participants = _participants(session, trip)
    if reviewer.id not in participants:
        raise Forbidden("You can only rate trips you participated in")
    if rated.id not in participants:
        raise BadRequest("Rated user did not take part in this trip")
    existing = session.exec(
        select(Rating).where(
            Rating.reviewer_user_id == reviewer.id,
            Rating.rated_user_id == data.rated_user_id,
            Rating.trip_id == data.trip_id,
        )
    ).first()
    if existing:
        raise Conflict("Rating already exists")
    rating = Rating(
        reviewer_user_id=reviewer.id,
        rated_user_id=data.rated_user_id,
        trip_id=data.trip_id,
        value=data.value,
        comment=data.comment,
    )
    session.add(rating)
    session.flush()
    refresh_user_rating(session, rated)
    session.commit()
    session.refresh(rating)
    return rating


def list_ratings(session: Session, rated_user_id: Optional[int] = None) -> List[Rating]:
    stmt = select(Rating).order_by(Rating.created_at.desc(), Rating.id.desc())
    if rated_user_id is not None:
        stmt = stmt.where(Rating.rated_user_id == rated_user_id)
    return session.exec(stmt).all()


def pending_ratings(session: Session, user: User) -> List[dict]:
    # completed rides the user took as a passenger and has not rated yet
    rated_trips = select(Rating.trip_id).where(Rating.reviewer_user_id == user.id)
    rows = session.exec(
        select(Trip, User)
        .join(TripRequest, TripRequest.trip_id == Trip.id)
        .join(User, User.id == Trip.publisher_id)
        .where(
            TripRequest.applicant_id == user.id,
            TripRequest.status == "ACCEPTED",
            Trip.status == "COMPLETED",
            Trip.departure_at <= utcnow(),
            Trip.id.not_in(rated_trips),
        )
        .order_by(Trip.departure_at.desc(), Trip.id.desc())
    ).all()
    out = []
    for trip, publisher in rows:
        item = trip_out(trip, publisher)
        item["canRate"] = True
        out.append(item)
    return out
