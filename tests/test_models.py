"""
Rows of every table round-trip through the database with naive UTC stamps.
"""
from datetime import timedelta

from sqlmodel import select

from db import get_session
from models import (
    BlockedUser,
    Chat,
    ContactSubmission,
    Message,
    Notification,
    Rating,
    Trip,
    TripRequest,
    User,
    utcnow,
)


def test_every_table_stores_naive_utc_timestamps():
    before = utcnow()
    with get_session() as session:
        a = User(name="A", email="a@example.com")
        b = User(name="B", email="b@example.com")
        session.add_all([a, b])
        session.flush()
        trip = Trip(publisher_id=a.id, origin_name="Madrid", destination_name="Toledo",
                    departure_at=before + timedelta(days=1), capacity=2, price_per_seat=9.5)
        session.add(trip)
        session.flush()
        req = TripRequest(trip_id=trip.id, applicant_id=b.id, accepted_at=utcnow())
        chat = Chat(user_a_id=a.id, user_b_id=b.id)
        session.add_all([req, chat])
        session.flush()
        session.add_all([
            Message(chat_id=chat.id, sender_id=a.id, content="hola"),
            Rating(reviewer_user_id=b.id, rated_user_id=a.id, trip_id=trip.id, value=5),
            BlockedUser(blocker_id=a.id, blocked_id=b.id),
            ContactSubmission(name="B", email="b@example.com", subject="Hi", message="help"),
            Notification(user_id=a.id, from_user_id=b.id, type="REQUEST_SENT", title="t", message="m",
                         trip_id=trip.id, request_id=req.id),
        ])
        session.commit()

    after = utcnow()
    with get_session() as session:
        for model in (User, Trip, TripRequest, Chat, Message, Rating, BlockedUser, ContactSubmission, Notification):
            rows = session.exec(select(model)).all()
            assert rows, model.__name__
            for row in rows:
                assert row.created_at.tzinfo is None
                assert before - timedelta(seconds=1) <= row.created_at <= after + timedelta(seconds=1)
        stored_trip = session.exec(select(Trip)).one()
        assert stored_trip.departure_at.tzinfo is None
        assert stored_trip.departure_at > after
        assert session.exec(select(TripRequest)).one().accepted_at.tzinfo is None
