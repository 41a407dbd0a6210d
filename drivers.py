"""
Driver directory: users who have completed at least one published trip.

``list_drivers`` backs the searchable, paginated listing and
``trusted_drivers`` the short TRUSTED-only showcase.
"""
import math
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from models import Trip, User

DEFAULT_PAGE_SIZE = 12
TRUSTED_LIMIT = 6
TRUSTED_MIN_RATING = 4.0
RECENT_ROUTES = 3


def _completed(session: Session, user_id: int, limit: Optional[int] = None) -> List[Trip]:
    stmt = (
        select(Trip)
        .where(Trip.publisher_id == user_id, Trip.status == "COMPLETED")
        .order_by(Trip.created_at.desc(), Trip.id.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    return session.exec(stmt).all()


def _completed_count(session: Session, user_id: int) -> int:
    return session.exec(
        select(func.count(Trip.id)).where(Trip.publisher_id == user_id, Trip.status == "COMPLETED")
    ).one()


def _route(trip: Trip) -> str:
    return f"{trip.origin_name} → {trip.destination_name}"


def list_drivers(session: Session, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, search: Optional[str] = None,
                 min_rating: Optional[float] = None, vehicle_type: Optional[str] = None) -> Dict:
    completed = select(Trip.publisher_id).where(Trip.status == "COMPLETED")
    if vehicle_type:
        completed = completed.where(Trip.vehicle_type == vehicle_type)
    cond = [User.status.in_(["TRUSTED", "PENDING"]), User.id.in_(completed)]
    if search:
        pattern = f"%{search}%"
        cond.append(User.name.ilike(pattern) | User.email.ilike(pattern))
    if min_rating is not None:
        cond.append(User.average_rating >= min_rating)

    total = session.exec(select(func.count(User.id)).where(*cond)).one()
    users = session.exec(
        select(User)
        .where(*cond)
        .order_by(User.average_rating.desc(), User.rating_count.desc(), User.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    drivers = []
    for user in users:
        recent = _completed(session, user.id, RECENT_ROUTES)
        drivers.append({
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "phoneNumber": user.phone_number,
            "type": user.type,
            "rating": user.average_rating,
            "ratingCount": user.rating_count,
            "completedTrips": _completed_count(session, user.id),
            "recentRoutes": [_route(t) for t in recent],
            "vehicleTypes": sorted({t.vehicle_type for t in recent}),
            "trusted": user.status == "TRUSTED",
            "createdAt": user.created_at.isoformat(),
        })
    return {
        "drivers": drivers,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    }


def trusted_drivers(session: Session, limit: int = TRUSTED_LIMIT) -> Dict:
    users = session.exec(
        select(User)
        .where(
            User.status == "TRUSTED",
            User.average_rating >= TRUSTED_MIN_RATING,
            User.id.in_(select(Trip.publisher_id).where(Trip.status == "COMPLETED")),
        )
        .order_by(User.average_rating.desc(), User.rating_count.desc(), User.id)
        .limit(limit)
    ).all()
    drivers = []
    for user in users:
        latest = _completed(session, user.id, 1)[0]
        drivers.append({
            "id": user.id,
            "name": user.name,
            "rating": user.average_rating,
            "ratingCount": user.rating_count,
            "completedTrips": _completed_count(session, user.id),
            "recentRoute": _route(latest),
            "vehicleType": latest.vehicle_type,
            "trusted": True,
            "createdAt": user.created_at.isoformat(),
        })
    return {"drivers": drivers, "total": len(drivers)}
