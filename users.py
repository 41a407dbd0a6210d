from typing import List, Optional

from sqlmodel import Session, select

from errors import BadRequest, NotFound
from schemas import rating_out, trip_out, user_out
from models import BlockedUser, Rating, Trip, User


def is_blocked_between(session: Session, a: int, b: int) -> bool:
    row = session.exec(
        select(BlockedUser).where(
            ((BlockedUser.blocker_id == a) & (BlockedUser.blocked_id == b))
            | ((BlockedUser.blocker_id == b) & (BlockedUser.blocked_id == a))
        )
    ).first()
    return row is not None


def blocked_ids(session: Session, user_id: int) -> set:
    """Users hidden from user_id in either direction."""
    rows = session.exec(
        select(BlockedUser).where((BlockedUser.blocker_id == user_id) | (BlockedUser.blocked_id == user_id))
    ).all()
    return {r.blocked_id if r.blocker_id == user_id else r.blocker_id for r in rows}


def block_user(session: Session, blocker: User, target_id: int, reason: Optional[str] = None) -> User:
    if target_id == blocker.id:
        raise BadRequest("Cannot block yourself")
    target = session.get(User, target_id)
    if not target:
        raise NotFound("User not found")
    existing = session.exec(
        select(BlockedUser).where(BlockedUser.blocker_id == blocker.id, BlockedUser.blocked_id == target_id)
    ).first()
    if existing:
        raise BadRequest("User is already blocked")
    session.add(BlockedUser(blocker_id=blocker.id, blocked_id=target_id, reason=reason))
    session.commit()
    return target


def unblock_user(session: Session, blocker: User, target_id: int) -> None:
    existing = session.exec(
        select(BlockedUser).where(BlockedUser.blocker_id == blocker.id, BlockedUser.blocked_id == target_id)
    ).first()
    if not existing:
        raise NotFound("User is not blocked")
    session.delete(existing)
    session.commit()


def list_blocked(session: Session, user: User) -> List[tuple]:
    stmt = (
        select(BlockedUser, User)
        .join(User, User.id == BlockedUser.blocked_id)
        .where(BlockedUser.blocker_id == user.id)
        .order_by(BlockedUser.created_at.desc())
    )
    return session.exec(stmt).all()


def public_profile(session: Session, user_id: int) -> dict:
    """Profile page data: the user, their open trips and the latest ten ratings they received."""
    user = session.get(User, user_id)
    if not user or user.status == "BLOCKED":
        raise NotFound("User not found")
    trips = session.exec(
        select(Trip)
        .where(Trip.publisher_id == user.id, Trip.status == "PUBLISHED")
        .order_by(Trip.departure_at, Trip.id)
    ).all()
    ratings = session.exec(
        select(Rating, User)
        .join(User, User.id == Rating.reviewer_user_id)
        .where(Rating.rated_user_id == user.id)
        .order_by(Rating.created_at.desc(), Rating.id.desc())
        .limit(10)
    ).all()
    profile = user_out(user)
    profile.update({"type": user.type, "status": user.status, "createdAt": user.created_at.isoformat()})
    return {
        "user": profile,
        "trips": [trip_out(t) for t in trips],
        "ratings": [{**rating_out(r), "reviewer": user_out(reviewer)} for r, reviewer in ratings],
    }
