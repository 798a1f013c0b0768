"""
Coordinate codec for the "<lat>,<lng>" string stored on core records.

Decimal degrees, comma separated, no enforced precision. This is the only
place that parses or validates the encoding. The proximity matcher decodes
through decode(); write paths store the string as given and never parse it.
try_decode() is for call sites that filter rather than fail on bad values.

decode() never sees "unset": callers check for None / "" before calling.
"""

from __future__ import annotations

import math

from services.transit.sync.errors import InvalidCoordinate

LAT_MIN, LAT_MAX = -90.0, 90.0
LNG_MIN, LNG_MAX = -180.0, 180.0


def encode(lat: float, lng: float) -> str:
    """Format a point as "lat,lng". Shortest repr, so decode() round-trips exactly."""
    return f"{float(lat)!r},{float(lng)!r}"


def _parse_half(label: str, text: str, whole: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise InvalidCoordinate(whole, f"{label} is not numeric") from None
    if not math.isfinite(value):
        raise InvalidCoordinate(whole, f"{label} is not finite")
    return value


def decode(s: str) -> tuple[float, float]:
    """
    Parse "lat,lng" into a (lat, lng) tuple.

    Splits on the first comma only; anything after it belongs to the
    longitude half and must parse on its own.

    Raises:
        InvalidCoordinate: no comma, a non-numeric half, or a value outside
            latitude -90..90 / longitude -180..180.
    """
    lat_raw, sep, lng_raw = s.partition(",")
    if not sep:
        raise InvalidCoordinate(s, "missing comma separator")

    lat = _parse_half("latitude", lat_raw, s)
    lng = _parse_half("longitude", lng_raw, s)

    if not LAT_MIN <= lat <= LAT_MAX:
        raise InvalidCoordinate(s, f"latitude {lat} outside [{LAT_MIN}, {LAT_MAX}]")
    if not LNG_MIN <= lng <= LNG_MAX:
        raise InvalidCoordinate(s, f"longitude {lng} outside [{LNG_MIN}, {LNG_MAX}]")
    return lat, lng


def try_decode(s: str | None) -> tuple[float, float] | None:
    """decode() for filtering call sites: None for absent or invalid input."""
    if not s:
        return None
    try:
        return decode(s)
    except InvalidCoordinate:
        return None
