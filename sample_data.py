from datetime import timedelta
import random

from db import init_db, get_session
from geospatial import create_wkt
from models import User, Trip, Chat, Message, ContactSubmission, VEHICLE_TYPES, utcnow

# (name, lat, lng)
CITIES = [
    ("Madrid", 40.4168, -3.7038),
    ("Toledo", 39.8628, -4.0273),
    ("Segovia", 40.9429, -4.1088),
    ("Valencia", 39.4699, -0.3763),
    ("Zaragoza", 41.6488, -0.8891),
    ("Barcelona", 41.3874, 2.1686),
    ("Sevilla", 37.3891, -5.9845),
]


def seed():
    init_db()
    session = get_session()
    # add users
    users = [User(name=f"user{i}", email=f"user{i}@example.com", status="TRUSTED") for i in range(1, 11)]
    users.append(User(name="admin", email="admin@example.com", status="TRUSTED", role="ADMIN"))
    session.add_all(users)
    session.commit()
    now = utcnow()
    # trips between random city pairs over the next two weeks
    for i in range(1, 31):
        publisher = users[(i - 1) % 10]
        origin, destination = random.sample(CITIES, 2)
        # jitter the pickup point a few km around the city centre
        olat = origin[1] + (random.random() - 0.5) * 0.05
        olng = origin[2] + (random.random() - 0.5) * 0.05
        trip = Trip(
            publisher_id=publisher.id,
            origin_name=origin[0],
            destination_name=destination[0],
            origin_geom=create_wkt(olng, olat),
            destination_geom=create_wkt(destination[2], destination[1]),
            departure_at=now + timedelta(hours=random.randint(2, 24 * 14)),
            vehicle_type=random.choice(VEHICLE_TYPES),
            capacity=random.randint(1, 6),
            price_per_seat=round(random.uniform(5, 40), 2),
        )
        session.add(trip)
    session.commit()
    # one conversation between the first two users
    chat = Chat(user_a_id=users[0].id, user_b_id=users[1].id, last_message="See you at the station")
    session.add(chat)
    session.commit()
    session.add_all([
        Message(chat_id=chat.id, sender_id=users[0].id, content="Hi, is there still a seat?", created_at=now),
        Message(chat_id=chat.id, sender_id=users[1].id, content="Yes, one left", created_at=now + timedelta(minutes=1)),
        Message(chat_id=chat.id, sender_id=users[0].id, content="See you at the station", created_at=now + timedelta(minutes=2)),
    ])
    session.add(ContactSubmission(
        name="Jane Doe",
        email="jane@example.com",
        subject="Refund for cancelled trip",
        category="BILLING",
        message="My trip was cancelled by the driver, how do I get my money back?",
        priority="HIGH",
    ))
    session.commit()
    session.close()
    print("Seeded sample data")


if __name__ == "__main__":
    seed()
