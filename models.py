from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


VEHICLE_TYPES = ("CAR", "VAN", "TRUCK", "BIKE")


def utcnow() -> datetime:
    # naive UTC, matching what sqlite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    phone_number: Optional[str] = None
    type: str = Field(default="PERSON")  # PERSON, BUSINESS
    status: str = Field(default="PENDING", index=True)  # PENDING, TRUSTED, BLOCKED
    role: str = Field(default="USER")  # USER, MODERATOR, ADMIN
    average_rating: float = 0.0
    rating_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Trip(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    publisher_id: int = Field(foreign_key="user.id", index=True)
    origin_name: str
    destination_name: str
    origin_geom: Optional[str] = None  # WKT "POINT(lon lat)"
    destination_geom: Optional[str] = None
    departure_at: datetime = Field(index=True)
    vehicle_type: str = "CAR"
    capacity: int
    booked_seats: int = 0
    price_per_seat: float
    status: str = Field(default="PUBLISHED", index=True)  # PUBLISHED, CANCELLED, COMPLETED
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TripRequest(SQLModel, table=True):
    __tablename__ = "request"

    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    applicant_id: int = Field(foreign_key="user.id", index=True)
    status: str = Field(default="PENDING", index=True)  # PENDING, ACCEPTED, REJECTED, CANCELLED
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Chat(SQLModel, table=True):
    # pair stored normalized: user_a_id < user_b_id
    __table_args__ = (UniqueConstraint("user_a_id", "user_b_id", name="uq_chat_pair"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_a_id: int = Field(foreign_key="user.id", index=True)
    user_b_id: int = Field(foreign_key="user.id", index=True)
    last_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    chat_id: int = Field(foreign_key="chat.id", index=True)
    sender_id: int = Field(foreign_key="user.id")
    content: str
    created_at: datetime = Field(default_factory=utcnow, index=True)


class Rating(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("reviewer_user_id", "rated_user_id", "trip_id", name="uq_rating_per_trip"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    reviewer_user_id: int = Field(foreign_key="user.id")
    rated_user_id: int = Field(foreign_key="user.id", index=True)
    trip_id: int = Field(foreign_key="trip.id")
    value: int
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class BlockedUser(SQLModel, table=True):
    __tablename__ = "blocked_user"
    __table_args__ = (UniqueConstraint("blocker_id", "blocked_id", name="uq_block_pair"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    blocker_id: int = Field(foreign_key="user.id", index=True)
    blocked_id: int = Field(foreign_key="user.id", index=True)
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ContactSubmission(SQLModel, table=True):
    __tablename__ = "contact_submission"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    subject: str
    category: str = "GENERAL"
    message: str
    status: str = Field(default="OPEN", index=True)  # OPEN, IN_PROGRESS, RESOLVED, CLOSED
    priority: str = "MEDIUM"  # LOW, MEDIUM, HIGH, URGENT
    response: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)  # recipient
    from_user_id: int = Field(foreign_key="user.id")
    type: str  # CHAT_MESSAGE, REQUEST_*, RATING_REQUIRED
    title: str
    message: str
    trip_id: Optional[int] = Field(default=None, foreign_key="trip.id")
    request_id: Optional[int] = Field(default=None, foreign_key="request.id")
    chat_id: Optional[int] = Field(default=None, foreign_key="chat.id")
    is_read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, index=True)
