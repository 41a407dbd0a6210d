"""
Trip search with a widening-radius fallback ladder.

Coordinate searches try each tier of RADIUS_LADDER in order and stop at the
first tier that yields trips. When every tier is empty, or a text search finds
nothing, the caller still gets the next published departures, flagged with
``isBroadSearch`` so the UI can say the results are loosely related.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from config import settings
from geospatial import haversine_km, parse_wkt
from models import Trip, User, VEHICLE_TYPES
from schemas import SearchMetadata, TripSearchResponse, trip_out

logger = logging.getLogger(__name__)

RADIUS_LADDER: List[Tuple[str, float]] = [
    ("exact", 10.0),
    ("close", 25.0),
    ("nearby", 50.0),
    ("regional", 100.0),
    ("broad", 200.0),
    ("extended", 500.0),
]

BROAD_LEVELS = {"broad", "extended"}


@dataclass
class TripFilters:
    q: Optional[str] = None
    departure_date: Optional[date] = None
    vehicle_type: Optional[str] = None
    capacity: Optional[int] = None
    origin: Optional[Tuple[float, float]] = None  # (lat, lng)
    destination: Optional[Tuple[float, float]] = None
    radius_km: Optional[float] = None
    publisher_id: Optional[int] = None

    @property
    def has_coordinates(self) -> bool:
        return self.origin is not None or self.destination is not None

    @property
    def has_text_filters(self) -> bool:
        return any(v is not None for v in (
            self.q, self.departure_date, self.vehicle_type, self.capacity, self.publisher_id,
        ))

    @classmethod
    def from_query(cls, params) -> "TripFilters":
        """Build filters from query parameters, dropping values that do not parse."""
        def _float(name):
            try:
                return float(params[name]) if params.get(name) not in (None, "") else None
            except ValueError:
                return None

        def _int(name):
            try:
                return int(params[name]) if params.get(name) not in (None, "") else None
            except ValueError:
                return None

        def _pair(lat_name, lng_name):
            lat, lng = _float(lat_name), _float(lng_name)
            if lat is None or lng is None:
                return None
            return lat, lng

        departure = None
        if params.get("departureDate"):
            try:
                departure = date.fromisoformat(params["departureDate"][:10])
            except ValueError:
                departure = None

        vehicle = params.get("vehicleType")
        if vehicle not in VEHICLE_TYPES:
            vehicle = None

        publisher = _int("publisherId")
        if publisher is None:
            publisher = _int("driver")

        return cls(
            q=(params.get("q") or "").strip() or None,
            departure_date=departure,
            vehicle_type=vehicle,
            capacity=_int("capacity"),
            origin=_pair("originLat", "originLng"),
            destination=_pair("destinationLat", "destinationLng"),
            radius_km=_float("radiusKm"),
            publisher_id=publisher,
        )


def _published(session: Session, filters: Optional[TripFilters] = None, limit: Optional[int] = None):
    stmt = select(Trip, User).join(User, User.id == Trip.publisher_id).where(Trip.status == "PUBLISHED")
    if filters is not None:
        if filters.publisher_id is not None:
            stmt = stmt.where(Trip.publisher_id == filters.publisher_id)
        if filters.q:
            pattern = f"%{filters.q.lower()}%"
            stmt = stmt.where(
                Trip.origin_name.ilike(pattern) | Trip.destination_name.ilike(pattern)
            )
        if filters.departure_date is not None:
            start = datetime.combine(filters.departure_date, datetime.min.time())
            stmt = stmt.where(Trip.departure_at >= start, Trip.departure_at < start + timedelta(days=1))
        if filters.vehicle_type is not None:
            stmt = stmt.where(Trip.vehicle_type == filters.vehicle_type)
        if filters.capacity is not None:
            stmt = stmt.where(Trip.capacity >= filters.capacity)
    stmt = stmt.order_by(Trip.departure_at, Trip.id)
    if limit is not None:
        stmt = stmt.limit(limit)
    return session.exec(stmt).all()


def _distances(trip: Trip, filters: TripFilters) -> Optional[Dict[str, float]]:
    """Distances from the searched points to the trip's endpoints, None if unusable."""
    out = {}
    if filters.origin is not None:
        point = parse_wkt(trip.origin_geom)
        if point is None:
            return None
        out["origin"] = haversine_km(filters.origin, point)
    if filters.destination is not None:
        point = parse_wkt(trip.destination_geom)
        if point is None:
            return None
        out["destination"] = haversine_km(filters.destination, point)
    return out


def _ladder(start_km: Optional[float]) -> List[Tuple[str, float]]:
    if start_km is None:
        return RADIUS_LADDER
    tiers = [t for t in RADIUS_LADDER if t[1] >= start_km]
    return tiers or RADIUS_LADDER[-1:]


def fallback_trips(session: Session) -> List[dict]:
    rows = _published(session, limit=settings.fallback_limit)
    return [trip_out(trip, publisher) for trip, publisher in rows]


def resolve_trips(session: Session, filters: TripFilters) -> TripSearchResponse:
    if filters.has_coordinates:
        candidates = []
        for trip, publisher in _published(session, filters):
            dist = _distances(trip, filters)
            if dist is not None:
                candidates.append((trip, publisher, dist))

        for level, radius in _ladder(filters.radius_km):
            matched = [c for c in candidates if all(d <= radius for d in c[2].values())]
            if not matched:
                continue
            logger.info("proximity search satisfied at %s (%.0f km): %d trips", level, radius, len(matched))
            trips = []
            for trip, publisher, dist in matched:
                item = trip_out(trip, publisher)
                item["distanceKm"] = round(dist.get("origin", dist.get("destination")), 2)
                trips.append(item)
            return TripSearchResponse(
                trips=trips,
                metadata=SearchMetadata(
                    search_mode="proximity",
                    search_level=level,
                    radius_km=radius,
                    is_broad_search=level in BROAD_LEVELS,
                ),
            )
        logger.info("proximity search empty at every tier, using fallback set")
        return TripSearchResponse(
            trips=fallback_trips(session),
            metadata=SearchMetadata(search_mode="fallback", is_broad_search=True),
        )

    if filters.has_text_filters:
        rows = _published(session, filters)
        if rows:
            return TripSearchResponse(
                trips=[trip_out(t, p) for t, p in rows],
                metadata=SearchMetadata(search_mode="text"),
            )
        logger.info("text search empty, using fallback set")
        return TripSearchResponse(
            trips=fallback_trips(session),
            metadata=SearchMetadata(search_mode="fallback", is_broad_search=True),
        )

    rows = _published(session)
    return TripSearchResponse(
        trips=[trip_out(t, p) for t, p in rows],
        metadata=SearchMetadata(search_mode="browse"),
    )


def find_trips_nearby(session: Session, lon: float, lat: float, radius_meters: float = 5000) -> List[dict]:
    out = []
    for trip, publisher in _published(session):
        point = parse_wkt(trip.origin_geom)
        if point is None:
            continue
        dist = haversine_km((lat, lon), point)
        if dist * 1000 <= radius_meters:
            item = trip_out(trip, publisher)
            item["distanceKm"] = round(dist, 2)
            out.append(item)
    return out
