import math
from datetime import datetime, timezone
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from reservationbear.app.models import (
    Comment,
    Reservation,
    ReservationSlot,
    Restaurant,
    RestaurantTable,
    Timeslot,
)
from reservationbear.app.services.availability import TableConflict

T = TypeVar("T")

# 9999-12-31T23:59:59Z, the last second datetime can represent
MAX_EPOCH = 253402300799


def to_epoch(value: datetime) -> int:
    return int(value.timestamp())


def from_epoch(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeRange(ApiModel):
    # Unix timestamps in seconds
    start: int = Field(alias="from", ge=0, le=MAX_EPOCH)
    end: int = Field(alias="to", ge=0, le=MAX_EPOCH)

    @classmethod
    def of(cls, start: datetime, end: datetime) -> "TimeRange":
        return cls(start=to_epoch(start), end=to_epoch(end))

    def bounds(self) -> tuple[datetime, datetime]:
        return from_epoch(self.start), from_epoch(self.end)


class ReservationIn(ApiModel):
    tables: list[UUID]
    time: TimeRange
    user_name: str = Field(min_length=1, max_length=200)
    user_email: str = Field(min_length=3, max_length=254)


class ReservationOut(ApiModel):
    id: UUID
    tables: list[UUID]
    time: TimeRange
    user_name: str
    user_email: str
    confirmed: bool

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationOut":
        return cls(
            id=reservation.id,
            tables=reservation.table_ids,
            time=TimeRange.of(reservation.reservation_from, reservation.reservation_to),
            user_name=reservation.user_name,
            user_email=reservation.user_email,
            confirmed=reservation.confirmed,
        )


class ConfirmationIn(ApiModel):
    confirmed: bool = True


class AvailabilityCheckIn(ApiModel):
    tables: list[UUID]
    time: TimeRange


class TableConflictOut(ApiModel):
    table: UUID
    reservations: list[UUID]

    @classmethod
    def from_conflict(cls, conflict: TableConflict) -> "TableConflictOut":
        return cls(table=conflict.table_id, reservations=conflict.reservation_ids)


class AvailabilityCheckOut(ApiModel):
    available: bool
    conflicts: list[TableConflictOut]


class TimeslotOut(ApiModel):
    id: UUID
    start: int = Field(alias="from")
    end: int = Field(alias="to")

    @classmethod
    def from_timeslot(cls, timeslot: Timeslot) -> "TimeslotOut":
        return cls(id=timeslot.id, start=to_epoch(timeslot.timeslot_from), end=to_epoch(timeslot.timeslot_to))


class LocationOut(ApiModel):
    latitude: float
    longitude: float


class RestaurantOut(ApiModel):
    id: UUID
    name: str
    images: list[str]
    website: str | None
    opening_hours: list[TimeslotOut]
    average_rating: float | None
    price_category: int | None
    location: LocationOut | None
    floor_plan: str | None

    @classmethod
    def from_restaurant(cls, restaurant: Restaurant) -> "RestaurantOut":
        location = None
        if restaurant.location is not None:
            location = LocationOut(
                latitude=restaurant.location.latitude, longitude=restaurant.location.longitude
            )
        return cls(
            id=restaurant.id,
            name=restaurant.name,
            images=restaurant.images,
            website=restaurant.website,
            opening_hours=[TimeslotOut.from_timeslot(slot) for slot in restaurant.opening_hours],
            average_rating=restaurant.average_rating,
            price_category=restaurant.price_category,
            location=location,
            floor_plan=restaurant.floor_plan,
        )


class TableOut(ApiModel):
    id: UUID
    restaurant_id: UUID
    seats: int

    @classmethod
    def from_table(cls, table: RestaurantTable) -> "TableOut":
        return cls(id=table.id, restaurant_id=table.restaurant_id, seats=table.seats)


class CommentIn(ApiModel):
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=1, max_length=2000)
    name: str = Field(min_length=1, max_length=200)


class CommentOut(ApiModel):
    id: UUID
    rating: int
    comment: str
    name: str
    created_at: datetime | None

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentOut":
        return cls(
            id=comment.id,
            rating=comment.rating,
            comment=comment.comment,
            name=comment.name,
            created_at=comment.created_at,
        )


class ReservationSlotOut(ApiModel):
    time: TimeRange
    tables: list[UUID]

    @classmethod
    def from_slot(cls, slot: ReservationSlot) -> "ReservationSlotOut":
        return cls(time=TimeRange.of(slot.reservation_from, slot.reservation_to), tables=slot.table_ids)


class PageOut(ApiModel, Generic[T]):
    total_pages: int
    current_page: int
    page_size: int
    content: list[T]

    @classmethod
    def build(cls, content: list[T], total: int, current_page: int, page_size: int) -> "PageOut[T]":
        return cls(
            total_pages=math.ceil(total / page_size),
            current_page=current_page,
            page_size=page_size,
            content=content,
        )
