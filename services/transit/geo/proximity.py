"""
Proximity matcher -- "what is near this point" over core records.

Input is a finite, already-fetched sequence of records carrying a
"lat,lng" coordinate field. For each record:
  1. decode the coordinate (skip the record on failure, never raise)
  2. haversine great-circle distance to the query point, R = 6371 km
  3. keep distance <= radius
then sort ascending by distance. sorted() is stable, so equal distances
keep their input order.

Scaling limit: this is a linear scan with no spatial index. It is sized
for hundreds to low thousands of stations / tourist points per query.
Anything larger needs a database-side spatial filter before this step.

Pure and synchronous; never touches the network.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from services.transit.geo.coordinates import decode
from services.transit.sync.errors import InvalidCoordinate

logger = logging.getLogger(__name__)

# Mean Earth radius in kilometres
EARTH_RADIUS_KM = 6371.0

DEFAULT_RADIUS_KM = 5.0

R = TypeVar("R")


@dataclass(frozen=True)
class NearbyMatch(Generic[R]):
    """A retained record plus its distance from the query point, for display."""

    record: R
    distance_km: float
    latitude: float
    longitude: float


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres between two points in decimal degrees."""
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _attribute_getter(field: str) -> Callable[[Any], Any]:
    def _get(record: Any) -> Any:
        if isinstance(record, dict):
            return record.get(field)
        return getattr(record, field, None)

    return _get


def match_nearby(
    records: Iterable[R],
    lat: float,
    lng: float,
    radius_km: float = DEFAULT_RADIUS_KM,
    *,
    coordinate_field: str = "coordinates",
    coordinates_of: Callable[[R], str | None] | None = None,
) -> list[NearbyMatch[R]]:
    """
    Return records within radius_km of (lat, lng), nearest first.

    Args:
        records: Core records (ORM objects or dicts).
        lat, lng: Query point in decimal degrees.
        radius_km: Inclusive radius.
        coordinate_field: Attribute / key holding the "lat,lng" string.
        coordinates_of: Custom accessor; overrides coordinate_field.

    Records with a missing or undecodable coordinate are skipped and logged.
    """
    get_coords = coordinates_of or _attribute_getter(coordinate_field)

    matches: list[NearbyMatch[R]] = []
    skipped = 0
    for record in records:
        raw = get_coords(record)
        if not raw:
            skipped += 1
            continue
        try:
            point_lat, point_lng = decode(raw)
        except InvalidCoordinate as exc:
            skipped += 1
            logger.warning(
                "proximity: skipping record id=%s: %s",
                _record_id(record),
                exc.reason,
            )
            continue

        distance = haversine_km(lat, lng, point_lat, point_lng)
        if distance <= radius_km:
            matches.append(NearbyMatch(record, distance, point_lat, point_lng))

    matches.sort(key=lambda m: m.distance_km)

    logger.debug(
        "proximity: point=(%f,%f) radius=%.2fkm matched=%d skipped=%d",
        lat,
        lng,
        radius_km,
        len(matches),
        skipped,
    )
    return matches


def _record_id(record: Any) -> Any:
    if isinstance(record, dict):
        return record.get("id")
    return getattr(record, "id", None)
