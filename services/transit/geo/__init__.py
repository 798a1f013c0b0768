"""
Coordinate handling and in-memory proximity matching.

Public API:
    from services.transit.geo.coordinates import encode, decode, try_decode
    from services.transit.geo.proximity import match_nearby, haversine_km
"""
