"""
Entity type registry -- per-entity configuration expressed as data.

One generic synchronizer serves every entity; what differs between a
station and a voice guide is captured here:
  - which SQLAlchemy model holds the core record
  - which detail collection holds the document
  - which fields the core row accepts (everything else is detail payload)
  - which fields are mirrored into both (searchable copies)
  - which dependent rows block deletion
  - optional rating rollup (review array -> average/count on the core row)
  - default proximity radius and free-text search columns
"""

from __future__ import annotations

from dataclasses import dataclass

from services.transit.db.models import (
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


@dataclass(frozen=True)
class DependentGuard:
    """Rows in `model` whose `column` equals the core id block deletion."""

    model: type
    column: str
    label: str


@dataclass(frozen=True)
class RatingRollup:
    """
    Denormalized average of an embedded review array.

    items_field:  array in the detail document (e.g. "reviews")
    value_key:    numeric key inside each item (e.g. "rating")
    average_column / count_column: core record columns holding the rollup
    total_column: unrounded sum of every value, kept beside the rounded average
    """

    items_field: str = "reviews"
    value_key: str = "rating"
    average_column: str = "average_rating"
    count_column: str = "review_count"
    total_column: str = "rating_total"


@dataclass(frozen=True)
class EntityType:
    name: str
    model: type
    detail_collection: str
    core_fields: frozenset[str]
    # Copied into the detail document on create/update as well as the core row
    mirrored_fields: frozenset[str] = frozenset()
    coordinate_field: str | None = None
    default_radius_km: float = 5.0
    default_status: str | None = None
    dependents: tuple[DependentGuard, ...] = ()
    rollup: RatingRollup | None = None
    search_columns: tuple[str, ...] = ()


STATION = EntityType(
    name="station",
    model=Station,
    detail_collection="station_details",
    core_fields=frozenset({"name", "transport_type", "coordinates", "address", "status", "image_url"}),
    mirrored_fields=frozenset({"name", "coordinates", "status"}),
    coordinate_field="coordinates",
    default_radius_km=1.0,
    default_status="operational",
    dependents=(
        DependentGuard(RouteStation, "station_id", "route stations"),
        DependentGuard(StationSchedule, "station_id", "schedules"),
    ),
    search_columns=("name", "address"),
)

ROUTE = EntityType(
    name="route",
    model=Route,
    detail_collection="route_details",
    core_fields=frozenset({
        "name", "transport_name", "start_coordinates", "end_coordinates",
        "distance_km", "estimated_minutes", "creator_id", "status",
    }),
    mirrored_fields=frozenset({"name", "status"}),
    coordinate_field="start_coordinates",
    default_status="active",
    dependents=(
        DependentGuard(RouteStation, "route_id", "route stations"),
        DependentGuard(RouteMessage, "route_id", "route messages"),
        DependentGuard(PersonalizedMessage, "route_id", "personalized messages"),
        DependentGuard(VoiceGuide, "route_id", "voice guides"),
    ),
    search_columns=("name", "transport_name"),
)

TOURIST_POINT = EntityType(
    name="tourist_point",
    model=TouristPoint,
    detail_collection="tourist_point_details",
    core_fields=frozenset({
        "destination", "name", "description", "coordinates", "address",
        "category", "average_rating", "review_count", "image_url",
        "creator_id", "status",
    }),
    mirrored_fields=frozenset({"destination", "name", "coordinates", "category", "status"}),
    coordinate_field="coordinates",
    default_radius_km=2.0,
    default_status="pending_approval",
    rollup=RatingRollup(),
    search_columns=("name", "destination", "description"),
)

PERSONALIZED_MESSAGE = EntityType(
    name="personalized_message",
    model=PersonalizedMessage,
    detail_collection="message_contents",
    core_fields=frozenset({"route_id", "coordinates", "message_type", "creator_id", "status"}),
    mirrored_fields=frozenset({"status"}),
    coordinate_field="coordinates",
    default_status="active",
    dependents=(
        DependentGuard(RouteMessage, "message_id", "route messages"),
        DependentGuard(VoiceGuide, "message_id", "voice guides"),
    ),
)

VOICE_GUIDE = EntityType(
    name="voice_guide",
    model=VoiceGuide,
    detail_collection="voice_guide_details",
    core_fields=frozenset({
        "route_id", "message_id", "audio_url", "duration_seconds", "language",
        "playback_speed", "average_rating", "review_count", "status",
    }),
    mirrored_fields=frozenset({"language", "status"}),
    default_status="processing",
    rollup=RatingRollup(),
)

SERVICE_RATING = EntityType(
    name="service_rating",
    model=ServiceRating,
    detail_collection="service_rating_details",
    core_fields=frozenset({"service", "category", "score", "month", "year", "rater_id", "status"}),
    mirrored_fields=frozenset({"service", "category", "score"}),
    default_status="published",
    search_columns=("service", "category"),
)

ENTITY_TYPES: dict[str, EntityType] = {
    entity.name: entity
    for entity in (STATION, ROUTE, TOURIST_POINT, PERSONALIZED_MESSAGE, VOICE_GUIDE, SERVICE_RATING)
}
