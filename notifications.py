"""
In-app notifications.

Domain code calls the ``*_notification`` helpers inside its own transaction;
they only ``session.add`` the row, so a notification is stored exactly when
the change that caused it commits.
"""
import logging
from typing import Dict, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from errors import NotFound
from models import Chat, Notification, Trip, TripRequest, User

logger = logging.getLogger(__name__)

LIST_LIMIT = 50

_REQUEST_TEXT = {
    "REQUEST_SENT": ("New Request", "{applicant} requested to join your trip for {route}"),
    "REQUEST_ACCEPTED": ("Request Accepted", "Your request to join the trip for {route} has been accepted"),
    "REQUEST_REJECTED": ("Request Rejected", "Your request to join the trip for {route} has been rejected"),
    "REQUEST_CANCELLED": ("Request Cancelled", "The request for {route} has been cancelled"),
}


def _route(trip: Trip) -> str:
    return f"{trip.origin_name} → {trip.destination_name}"


def create_notification(session: Session, user_id: int, from_user_id: int, type: str, title: str,
                        message: str, trip_id=None, request_id=None, chat_id=None) -> Notification:
    notification = Notification(
        user_id=user_id,
        from_user_id=from_user_id,
        type=type,
        title=title,
        message=message,
        trip_id=trip_id,
        request_id=request_id,
        chat_id=chat_id,
    )
    session.add(notification)
    return notification


def chat_message_notification(session: Session, chat: Chat, sender: User) -> Notification:
    receiver_id = chat.user_b_id if chat.user_a_id == sender.id else chat.user_a_id
    return create_notification(
        session, receiver_id, sender.id, "CHAT_MESSAGE", "New Message",
        f"{sender.name} sent you a message", chat_id=chat.id,
    )


def request_notification(session: Session, type: str, req: TripRequest, trip: Trip,
                         recipient_id: int, sender_id: int) -> Notification:
    applicant = session.get(User, req.applicant_id)
    title, template = _REQUEST_TEXT[type]
    message = template.format(applicant=applicant.name if applicant else "Someone", route=_route(trip))
    return create_notification(
        session, recipient_id, sender_id, type, title, message, trip_id=trip.id, request_id=req.id,
    )


def rating_notification(session: Session, req: TripRequest, trip: Trip) -> Notification:
    return create_notification(
        session, req.applicant_id, trip.publisher_id, "RATING_REQUIRED", "Rate Your Experience",
        f"Please rate your trip for {_route(trip)}", trip_id=trip.id, request_id=req.id,
    )


def notification_out(notification: Notification, sender: Optional[User]) -> Dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "userId": notification.from_user_id,
        "userName": sender.name if sender else None,
        "tripId": notification.trip_id,
        "requestId": notification.request_id,
        "chatId": notification.chat_id,
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat(),
    }


def list_notifications(session: Session, user: User, limit: int = LIST_LIMIT) -> Dict:
    rows = session.exec(
        select(Notification, User)
        .join(User, User.id == Notification.from_user_id)
        .where(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    ).all()
    unread = session.exec(
        select(func.count(Notification.id)).where(Notification.user_id == user.id, Notification.is_read == False)  # noqa: E712
    ).one()
    return {"notifications": [notification_out(n, sender) for n, sender in rows], "unreadCount": unread}


def mark_read(session: Session, user: User, notification_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if not notification or notification.user_id != user.id:
        raise NotFound("Notification not found")
    notification.is_read = True
    session.add(notification)
    session.commit()
    return notification


def mark_all_read(session: Session, user: User) -> int:
    unread = session.exec(
        select(Notification).where(Notification.user_id == user.id, Notification.is_read == False)  # noqa: E712
    ).all()
    for notification in unread:
        notification.is_read = True
        session.add(notification)
    session.commit()
    logger.debug("marked %d notifications read for user %s", len(unread), user.id)
    return len(unread)
