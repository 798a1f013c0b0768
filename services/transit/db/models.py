"""
SQLAlchemy DeclarativeBase models for the relational half of each entity.

Every synchronized entity carries:
  - id          integer primary key, assigned on insert
  - status      entity-specific enum, always present
  - detail_ref  nullable reference to the detail document (NULL = none yet)

Everything nested or variable-shape (descriptions, media, reviews,
schedules, accessibility flags) lives in the detail document, not here.
Link tables (RouteStation, RouteMessage, StationSchedule) are plain
relational rows with no detail document; they only exist here so the
delete guards can count them.

IMPORTANT: These models are NOT used for migrations. The schema is owned
by the migration tooling; create_type=False keeps SA from emitting DDL.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Length of a UUID4 hex reference
DETAIL_REF_LENGTH = 32


TransportTypeEnum = Enum("metro", "bus", "trolleybus", "ecovia", name="transport_type", create_type=False)
StationStatusEnum = Enum("operational", "maintenance", "closed", name="station_status", create_type=False)
RouteStatusEnum = Enum("active", "inactive", "under_review", name="route_status", create_type=False)
TouristPointStatusEnum = Enum("active", "inactive", "pending_approval", name="tourist_point_status", create_type=False)
TouristCategoryEnum = Enum(
    "historic", "cultural", "recreational", "commercial", "transport",
    name="tourist_category", create_type=False,
)
MessageStatusEnum = Enum("active", "inactive", name="message_status", create_type=False)
MessageTypeEnum = Enum("informative", "warning", "directional", name="message_type", create_type=False)
VoiceGuideStatusEnum = Enum("active", "inactive", "processing", name="voice_guide_status", create_type=False)
PlaybackSpeedEnum = Enum("slow", "normal", "fast", name="playback_speed", create_type=False)
RatingStatusEnum = Enum("published", "hidden", name="rating_status", create_type=False)
WeekdayEnum = Enum(
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    name="weekday", create_type=False,
)


class Base(DeclarativeBase):
    pass


class _Timestamps:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Station(_Timestamps, Base):
    __tablename__ = "stations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150))
    transport_type: Mapped[str] = mapped_column(TransportTypeEnum)
    coordinates: Mapped[str] = mapped_column(String(100), unique=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(StationStatusEnum, default="operational")
    image_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    detail_ref: Mapped[Optional[str]] = mapped_column(String(DETAIL_REF_LENGTH), nullable=True)


class StationSchedule(Base):
    __tablename__ = "station_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    station_id: Mapped[int] = mapped_column(ForeignKey("stations.id"))
    weekday: Mapped[str] = mapped_column(WeekdayEnum)
    arrival_time: Mapped[str] = mapped_column(String(8))
    frequency_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class Route(_Timestamps, Base):
    __tablename__ = "routes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200))
    transport_name: Mapped[str] = mapped_column(String(200))
    start_coordinates: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    end_coordinates: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    distance_km: Mapped[Optional[float]] = mapped_column(Numeric(8, 2), nullable=True)
    estimated_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    creator_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(RouteStatusEnum, default="active")
    detail_ref: Mapped[Optional[str]] = mapped_column(String(DETAIL_REF_LENGTH), nullable=True)


class RouteStation(Base):
    __tablename__ = "route_stations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_id: Mapped[int] = mapped_column(ForeignKey("routes.id"))
    station_id: Mapped[int] = mapped_column(ForeignKey("stations.id"))
    position: Mapped[int] = mapped_column(Integer)


class TouristPoint(_Timestamps, Base):
    __tablename__ = "tourist_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    destination: Mapped[str] = mapped_column(String(200))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    coordinates: Mapped[str] = mapped_column(String(100), unique=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(TouristCategoryEnum, default="cultural")
    average_rating: Mapped[float] = mapped_column(Float, default=0.0)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    rating_total: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=0.0)
    image_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    creator_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(TouristPointStatusEnum, default="pending_approval")
    detail_ref: Mapped[Optional[str]] = mapped_column(String(DETAIL_REF_LENGTH), nullable=True)


class PersonalizedMessage(_Timestamps, Base):
    __tablename__ = "personalized_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_id: Mapped[Optional[int]] = mapped_column(ForeignKey("routes.id"), nullable=True)
    coordinates: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    message_type: Mapped[str] = mapped_column(MessageTypeEnum, default="informative")
    creator_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(MessageStatusEnum, default="active")
    detail_ref: Mapped[Optional[str]] = mapped_column(String(DETAIL_REF_LENGTH), nullable=True)


class RouteMessage(Base):
    __tablename__ = "route_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_id: Mapped[int] = mapped_column(ForeignKey("routes.id"))
    message_id: Mapped[int] = mapped_column(ForeignKey("personalized_messages.id"))
    play_order: Mapped[int] = mapped_column(Integer)
    trigger_coordinates: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class VoiceGuide(_Timestamps, Base):
    __tablename__ = "voice_guides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    route_id: Mapped[int] = mapped_column(ForeignKey("routes.id"))
    message_id: Mapped[int] = mapped_column(ForeignKey("personalized_messages.id"))
    audio_url: Mapped[str] = mapped_column(String(255))
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    language: Mapped[str] = mapped_column(String(10), default="es")
    playback_speed: Mapped[str] = mapped_column(PlaybackSpeedEnum, default="normal")
    average_rating: Mapped[float] = mapped_column(Float, default=0.0)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    rating_total: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=0.0)
    status: Mapped[str] = mapped_column(VoiceGuideStatusEnum, default="processing")
    detail_ref: Mapped[Optional[str]] = mapped_column(String(DETAIL_REF_LENGTH), nullable=True)


class ServiceRating(Base):
    __tablename__ = "service_ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service: Mapped[str] = mapped_column(String(100))
    category: Mapped[str] = mapped_column(String(50))
    score: Mapped[float] = mapped_column(Numeric(3, 1))
    month: Mapped[int] = mapped_column(Integer)
    year: Mapped[int] = mapped_column(Integer)
    rater_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(RatingStatusEnum, default="published")
    detail_ref: Mapped[Optional[str]] = mapped_column(String(DETAIL_REF_LENGTH), nullable=True)
    evaluated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
