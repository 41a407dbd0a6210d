"""
Wire schemas for the rideshare API.

Request payloads are Pydantic models (camelCase on the wire, snake_case in
Python). Responses are built by the ``*_out`` helpers so every handler emits
the same JSON shape for a given table. The trip search response carries a
schema version; ``adapt_trip_search_payload`` migrates older shapes at the
client boundary.
"""
import html
import re
from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt, field_validator
from pydantic.alias_generators import to_camel

from config import settings
from errors import BadRequest, ServiceError
from geospatial import validate_wkt

SEARCH_SCHEMA_VERSION = 2

_XSS_PATTERNS = [
    re.compile(p, re.IGNORECASE | re.DOTALL)
    for p in (
        r"<script[^>]*>.*?</script>",
        r"javascript:",
        r"on\w+\s*=",
        r"<iframe[^>]*>",
        r"<object[^>]*>",
        r"<embed[^>]*>",
        r"<link[^>]*>",
        r"<meta[^>]*>",
        r"<style[^>]*>.*?</style>",
        r"<form[^>]*>",
        r"<input[^>]*>",
    )
]


def check_message_content(content: str, max_length: Optional[int] = None) -> str:
    """Validate chat content before it is sent or stored; raises ValueError."""
    limit = max_length or settings.message_max_length
    if not content or not content.strip():
        raise ValueError("Message cannot be empty")
    if len(content) > limit:
        raise ValueError(f"Message cannot exceed {limit} characters")
    if any(p.search(content) for p in _XSS_PATTERNS):
        raise ValueError("Message contains potentially harmful content")
    return content


def sanitize_message(content: str) -> str:
    return html.escape(content, quote=True).replace("/", "&#x2F;")


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def int_param(params, name: str) -> Optional[int]:
    """Optional integer query parameter; a non-numeric value is a 400."""
    value = params.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise BadRequest(f"{name} must be an integer")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------

class TripCreate(_CamelModel):
    origin: str
    destination: str
    origin_name: str = Field(min_length=1)
    destination_name: str = Field(min_length=1)
    departure_at: datetime
    vehicle_type: Literal["CAR", "VAN", "TRUCK", "BIKE"]
    capacity: PositiveInt
    price_per_seat: PositiveFloat

    @field_validator("origin", "destination")
    @classmethod
    def _point(cls, v: str) -> str:
        if not validate_wkt(v):
            raise ValueError("Invalid coordinates format")
        return v


class RequestCreate(_CamelModel):
    trip_id: int


class StatusUpdate(_CamelModel):
    status: Literal["ACCEPTED", "REJECTED", "CANCELLED"]

    @field_validator("status", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.upper() if isinstance(v, str) else v


class MessageCreate(_CamelModel):
    sender_id: int
    content: str

    @field_validator("content")
    @classmethod
    def _content(cls, v: str) -> str:
        return check_message_content(v)


class RatingCreate(_CamelModel):
    rated_user_id: int
    reviewer_user_id: int
    trip_id: int
    value: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class BlockCreate(_CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AdminUserUpdate(_CamelModel):
    name: Optional[str] = None
    phone_number: Optional[str] = None
    status: Optional[Literal["PENDING", "TRUSTED", "BLOCKED"]] = None
    role: Optional[Literal["USER", "MODERATOR", "ADMIN"]] = None


class AdminTripUpdate(_CamelModel):
    status: Literal["PUBLISHED", "CANCELLED", "COMPLETED"]


class AdminRequestUpdate(_CamelModel):
    status: Literal["PENDING", "ACCEPTED", "REJECTED", "CANCELLED"]


class AdminContactUpdate(_CamelModel):
    status: Optional[Literal["OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED"]] = None
    priority: Optional[Literal["LOW", "MEDIUM", "HIGH", "URGENT"]] = None
    response: Optional[str] = None


# ---------------------------------------------------------------------------
# Trip search response
# ---------------------------------------------------------------------------

class SearchMetadata(_CamelModel):
    search_mode: Literal["proximity", "text", "fallback", "browse"]
    search_level: Optional[str] = None
    radius_km: Optional[float] = None
    is_broad_search: bool = False


class TripSearchResponse(_CamelModel):
    version: int = SEARCH_SCHEMA_VERSION
    trips: List[dict]
    metadata: SearchMetadata

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


def adapt_trip_search_payload(payload: Any) -> TripSearchResponse:
    """Normalize any trip search payload the API has ever returned."""
    if isinstance(payload, list):
        # v1: a bare list of trips
        return TripSearchResponse(trips=payload, metadata=SearchMetadata(search_mode="browse"))
    if isinstance(payload, dict) and isinstance(payload.get("trips"), list):
        data = dict(payload)
        data["version"] = SEARCH_SCHEMA_VERSION
        data.setdefault("metadata", {"searchMode": "browse"})
        return TripSearchResponse.model_validate(data)
    raise ServiceError("Unrecognized trip search payload")


# ---------------------------------------------------------------------------
# Response serializers
# ---------------------------------------------------------------------------

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_out(user, private: bool = False) -> dict:
    out = {
        "id": user.id,
        "name": user.name,
        "averageRating": user.average_rating,
        "ratingCount": user.rating_count,
    }
    if private:
        out.update({
            "email": user.email,
            "phoneNumber": user.phone_number,
            "type": user.type,
            "status": user.status,
            "role": user.role,
            "createdAt": _iso(user.created_at),
            "updatedAt": _iso(user.updated_at),
        })
    return out


def trip_out(trip, publisher=None) -> dict:
    out = {
        "id": trip.id,
        "publisherId": trip.publisher_id,
        "originName": trip.origin_name,
        "destinationName": trip.destination_name,
        "originGeom": trip.origin_geom,
        "destinationGeom": trip.destination_geom,
        "departureAt": _iso(trip.departure_at),
        "vehicleType": trip.vehicle_type,
        "capacity": trip.capacity,
        "bookedSeats": trip.booked_seats,
        "availableSeats": max(0, trip.capacity - trip.booked_seats),
        "pricePerSeat": trip.price_per_seat,
        "status": trip.status,
        "createdAt": _iso(trip.created_at),
        "updatedAt": _iso(trip.updated_at),
    }
    if publisher is not None:
        out["publisher"] = user_out(publisher)
    return out


def request_out(req, trip=None, applicant=None) -> dict:
    out = {
        "id": req.id,
        "tripId": req.trip_id,
        "applicantId": req.applicant_id,
        "status": req.status,
        "acceptedAt": _iso(req.accepted_at),
        "cancelledAt": _iso(req.cancelled_at),
        "createdAt": _iso(req.created_at),
        "updatedAt": _iso(req.updated_at),
    }
    if trip is not None:
        out["trip"] = trip_out(trip)
    if applicant is not None:
        out["applicant"] = user_out(applicant)
    return out


def message_out(message) -> dict:
    return {
        "id": message.id,
        "chatId": message.chat_id,
        "senderId": message.sender_id,
        "content": message.content,
        "createdAt": _iso(message.created_at),
    }


def rating_out(rating) -> dict:
    return {
        "id": rating.id,
        "reviewerUserId": rating.reviewer_user_id,
        "ratedUserId": rating.rated_user_id,
        "tripId": rating.trip_id,
        "value": rating.value,
        "comment": rating.comment,
        "createdAt": _iso(rating.created_at),
    }


def contact_out(submission) -> dict:
    return {
        "id": submission.id,
        "name": submission.name,
        "email": submission.email,
        "subject": submission.subject,
        "category": submission.category,
        "message": submission.message,
        "status": submission.status,
        "priority": submission.priority,
        "response": submission.response,
        "respondedAt": _iso(submission.responded_at),
        "createdAt": _iso(submission.created_at),
        "updatedAt": _iso(submission.updated_at),
    }
