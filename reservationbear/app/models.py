"""Domain records shared by the repositories and the services."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Timeslot(BaseModel):
    """A half-open interval [timeslot_from, timeslot_to)."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    timeslot_from: datetime
    timeslot_to: datetime


class RestaurantTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    restaurant_id: UUID
    seats: int = Field(gt=0)


class Restaurant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    website: str | None = None
    price_category: int | None = Field(default=None, ge=1, le=3)
    average_rating: float | None = None
    location: Location | None = None
    floor_plan: str | None = None
    images: list[str] = Field(default_factory=list)
    opening_hours: list[Timeslot] = Field(default_factory=list)


class Comment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    restaurant_id: UUID
    rating: int = Field(ge=1, le=5)
    comment: str
    name: str
    created_at: datetime | None = None


class Reservation(BaseModel):
    """A booking of one or more tables for [reservation_from, reservation_to)."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    table_ids: list[UUID]
    reservation_from: datetime
    reservation_to: datetime
    user_name: str
    user_email: str
    confirmed: bool = False
    confirmation_token: str


class ReservationSlot(BaseModel):
    """Anonymous view of a reservation: when, and which tables."""

    model_config = ConfigDict(frozen=True)

    reservation_from: datetime
    reservation_to: datetime
    table_ids: list[UUID]


class RestaurantFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str = ""
    price_category: int | None = None
    minimum_average_rating: float | None = None
    time_from: datetime | None = None
    time_to: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    radius: float | None = None
    number_of_visitors: int | None = None
