from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID, uuid4

from loguru import logger

from reservationbear.app.core.exceptions import NotFoundError, ValidationError
from reservationbear.app.db.repositories import RestaurantRepository
from reservationbear.app.models import (
    Comment,
    ReservationSlot,
    Restaurant,
    RestaurantFilter,
    RestaurantTable,
    Timeslot,
)


async def get_restaurant(repo: RestaurantRepository, restaurant_id: UUID) -> Restaurant:
    restaurant = await repo.get(restaurant_id)
    if restaurant is None:
        raise NotFoundError(f"Restaurant {restaurant_id} not found")
    return restaurant


async def get_table(repo: RestaurantRepository, table_id: UUID) -> RestaurantTable:
    table = await repo.get_table(table_id)
    if table is None:
        raise NotFoundError(f"Table {table_id} not found")
    return table


async def search_restaurants(
    repo: RestaurantRepository, filters: RestaurantFilter, *, limit: int, offset: int
) -> tuple[list[Restaurant], int]:
    if (filters.time_from is None) != (filters.time_to is None):
        raise ValidationError("timeFrom and timeTo must be given together")
    if filters.time_from is not None and filters.time_to is not None and filters.time_from >= filters.time_to:
        raise ValidationError("timeFrom must be before timeTo")
    return await repo.search(filters, limit=limit, offset=offset)


async def list_tables(
    repo: RestaurantRepository, restaurant_id: UUID, *, limit: int, offset: int
) -> tuple[list[RestaurantTable], int]:
    await get_restaurant(repo, restaurant_id)
    return await repo.list_tables(restaurant_id, limit=limit, offset=offset)


async def list_comments(
    repo: RestaurantRepository, restaurant_id: UUID, *, limit: int, offset: int
) -> tuple[list[Comment], int]:
    await get_restaurant(repo, restaurant_id)
    return await repo.list_comments(restaurant_id, limit=limit, offset=offset)


async def add_comment(
    repo: RestaurantRepository,
    restaurant_id: UUID,
    *,
    rating: int,
    comment: str,
    name: str,
) -> Comment:
    await get_restaurant(repo, restaurant_id)
    stored = await repo.add_comment(
        Comment(id=uuid4(), restaurant_id=restaurant_id, rating=rating, comment=comment, name=name)
    )
    logger.info(f"Comment {stored.id} added to restaurant {restaurant_id}")
    return stored


async def list_opening_hours(
    repo: RestaurantRepository, restaurant_id: UUID, day: date, *, limit: int, offset: int
) -> tuple[list[Timeslot], int]:
    """Opening hours of the restaurant that overlap the given (UTC) day."""
    await get_restaurant(repo, restaurant_id)
    day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return await repo.list_opening_hours(
        restaurant_id, day_start, day_start + timedelta(days=1), limit=limit, offset=offset
    )


async def list_reservations(
    repo: RestaurantRepository,
    restaurant_id: UUID,
    start_ts: datetime,
    end_ts: datetime,
    *,
    limit: int,
    offset: int,
) -> tuple[list[ReservationSlot], int]:
    if start_ts >= end_ts:
        raise ValidationError("from must be before to")
    await get_restaurant(repo, restaurant_id)
    return await repo.list_reservations(restaurant_id, start_ts, end_ts, limit=limit, offset=offset)
