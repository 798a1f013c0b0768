"""
SQLAlchemy async database module for core records.

Re-exports engine, session factory, and model classes.
"""

from services.transit.db.engine import (
    create_engine,
    create_session_factory,
    standalone_session_factory,
)
from services.transit.db.models import (
    Base,
    PersonalizedMessage,
    Route,
    RouteMessage,
    RouteStation,
    ServiceRating,
    Station,
    StationSchedule,
    TouristPoint,
    VoiceGuide,
)

__all__ = [
    "create_engine",
    "create_session_factory",
    "standalone_session_factory",
    "Base",
    "PersonalizedMessage",
    "Route",
    "RouteMessage",
    "RouteStation",
    "ServiceRating",
    "Station",
    "StationSchedule",
    "TouristPoint",
    "VoiceGuide",
]
