"""Hand-written SQL access to restaurants, tables and reservations."""

import re
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from asyncpg import exceptions as asyncpg_exc
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from reservationbear.app.core.exceptions import ConflictError
from reservationbear.app.models import (
    Comment,
    Location,
    Reservation,
    ReservationSlot,
    Restaurant,
    RestaurantFilter,
    RestaurantTable,
    Timeslot,
)

EXCLUSION_VIOLATION = "23P01"
EARTH_RADIUS_KM = 6371


def _is_overlap_violation(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", exc)
    if getattr(orig, "sqlstate", None) == EXCLUSION_VIOLATION:
        return True
    if isinstance(getattr(orig, "__cause__", None), asyncpg_exc.ExclusionViolationError):
        return True
    return "reservation_table_no_overlap" in str(orig)


# DETAIL: Key (table_id, tstzrange(...))=(<table id>, [...)) conflicts with existing key ...
_OVERLAP_KEY = re.compile(r"\)=\(([0-9a-fA-F-]{36}),")


def overlap_table_id(detail: str | None) -> UUID | None:
    """Table id of the rejected row, read from an exclusion violation DETAIL."""
    match = _OVERLAP_KEY.search(detail or "")
    return UUID(match.group(1)) if match else None


def _violation_detail(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", exc)
    return getattr(getattr(orig, "__cause__", None), "detail", None) or getattr(orig, "detail", None)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ReservationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def transaction(self) -> AsyncSessionTransaction:
        return self.session.begin()

    async def get_tables(self, table_ids: Sequence[UUID]) -> list[RestaurantTable]:
        result = await self.session.execute(
            text(
                """
                SELECT id, restaurant_id, seats
                FROM restaurant_table
                WHERE id = ANY(:table_ids)
                """
            ),
            {"table_ids": list(table_ids)},
        )
        return [RestaurantTable(**row) for row in result.mappings()]

    async def find_overlapping(
        self,
        table_ids: Sequence[UUID],
        start_ts: datetime,
        end_ts: datetime,
    ) -> list[Reservation]:
        """Reservations on any of ``table_ids`` whose interval overlaps [start_ts, end_ts)."""
        result = await self.session.execute(
            text(
                """
                SELECT r.id, r.reservation_from, r.reservation_to, r.user_name,
                       r.user_email, r.confirmed, r.confirmation_token,
                       array_agg(rt.table_id ORDER BY rt.table_id) AS table_ids
                FROM reservation r
                JOIN reservation_table rt ON rt.reservation_id = r.id
                WHERE r.id IN (
                    SELECT reservation_id
                    FROM reservation_table
                    WHERE table_id = ANY(:table_ids)
                      AND tstzrange(reserved_from, reserved_to, '[)') && tstzrange(:start_ts, :end_ts, '[)')
                )
                GROUP BY r.id
                ORDER BY r.reservation_from
                """
            ),
            {"table_ids": list(table_ids), "start_ts": start_ts, "end_ts": end_ts},
        )
        return [Reservation(**row) for row in result.mappings()]

    async def add(self, reservation: Reservation) -> Reservation:
        try:
            await self.session.execute(
                text(
                    """
                    INSERT INTO reservation (
                      id, reservation_from, reservation_to, user_name,
                      user_email, confirmed, confirmation_token
                    ) VALUES (
                      :id, :reservation_from, :reservation_to, :user_name,
                      :user_email, :confirmed, :confirmation_token
                    )
                    """
                ),
                reservation.model_dump(exclude={"table_ids"}),
            )
            await self.session.execute(
                text(
                    """
                    INSERT INTO reservation_table (reservation_id, table_id, reserved_from, reserved_to)
                    VALUES (:reservation_id, :table_id, :reserved_from, :reserved_to)
                    """
                ),
                [
                    {
                        "reservation_id": reservation.id,
                        "table_id": table_id,
                        "reserved_from": reservation.reservation_from,
                        "reserved_to": reservation.reservation_to,
                    }
                    for table_id in reservation.table_ids
                ],
            )
        except DBAPIError as exc:
            if _is_overlap_violation(exc):
                table_id = overlap_table_id(_violation_detail(exc))
                booked = [table_id] if table_id in reservation.table_ids else reservation.table_ids
                raise ConflictError("Table already booked", booked) from exc
            raise
        return reservation

    async def get(self, reservation_id: UUID, *, for_update: bool = False) -> Reservation | None:
        lock = " FOR UPDATE" if for_update else ""
        result = await self.session.execute(
            text(
                """
                SELECT id, reservation_from, reservation_to, user_name,
                       user_email, confirmed, confirmation_token
                FROM reservation
                WHERE id = :id
                """
                + lock
            ),
            {"id": reservation_id},
        )
        row = result.mappings().one_or_none()
        if row is None:
            return None

        tables = await self.session.execute(
            text(
                """
                SELECT table_id
                FROM reservation_table
                WHERE reservation_id = :id
                ORDER BY table_id
                """
            ),
            {"id": reservation_id},
        )
        return Reservation(**row, table_ids=list(tables.scalars()))

    async def mark_confirmed(self, reservation_id: UUID) -> Reservation | None:
        await self.session.execute(
            text("UPDATE reservation SET confirmed = true WHERE id = :id"),
            {"id": reservation_id},
        )
        return await self.get(reservation_id)

    async def delete(self, reservation_id: UUID) -> Reservation | None:
        reservation = await self.get(reservation_id, for_update=True)
        if reservation is None:
            return None
        await self.session.execute(
            text("DELETE FROM reservation WHERE id = :id"),
            {"id": reservation_id},
        )
        return reservation


class RestaurantRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def transaction(self) -> AsyncSessionTransaction:
        return self.session.begin()

    async def _count(self, sql: str, params: dict[str, Any]) -> int:
        result = await self.session.execute(text(sql), params)
        return int(result.scalar_one())

    async def _load_restaurants(self, rows: Sequence[Any]) -> list[Restaurant]:
        ids = [row["id"] for row in rows]
        if not ids:
            return []

        images: dict[UUID, list[str]] = defaultdict(list)
        image_rows = await self.session.execute(
            text(
                """
                SELECT restaurant_id, image_url
                FROM restaurant_image
                WHERE restaurant_id = ANY(:ids)
                ORDER BY image_url
                """
            ),
            {"ids": ids},
        )
        for row in image_rows.mappings():
            images[row["restaurant_id"]].append(row["image_url"])

        hours: dict[UUID, list[Timeslot]] = defaultdict(list)
        hour_rows = await self.session.execute(
            text(
                """
                SELECT id, restaurant_id, timeslot_from, timeslot_to
                FROM opening_hours
                WHERE restaurant_id = ANY(:ids)
                ORDER BY timeslot_from
                """
            ),
            {"ids": ids},
        )
        for row in hour_rows.mappings():
            hours[row["restaurant_id"]].append(
                Timeslot(id=row["id"], timeslot_from=row["timeslot_from"], timeslot_to=row["timeslot_to"])
            )

        restaurants = []
        for row in rows:
            location = None
            if row["latitude"] is not None and row["longitude"] is not None:
                location = Location(latitude=row["latitude"], longitude=row["longitude"])
            restaurants.append(
                Restaurant(
                    id=row["id"],
                    name=row["name"],
                    website=row["website"],
                    price_category=row["price_category"],
                    average_rating=row["average_rating"],
                    location=location,
                    floor_plan=row["floor_plan"],
                    images=images[row["id"]],
                    opening_hours=hours[row["id"]],
                )
            )
        return restaurants

    async def get(self, restaurant_id: UUID) -> Restaurant | None:
        result = await self.session.execute(
            text(
                """
                SELECT id, name, website, price_category, average_rating,
                       latitude, longitude, floor_plan
                FROM restaurant
                WHERE id = :id
                """
            ),
            {"id": restaurant_id},
        )
        rows = result.mappings().all()
        restaurants = await self._load_restaurants(rows)
        return restaurants[0] if restaurants else None

    async def search(
        self,
        filters: RestaurantFilter,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[Restaurant], int]:
        conditions = ["r.name ILIKE :query ESCAPE '\\'"]
        params: dict[str, Any] = {"query": f"%{_escape_like(filters.query)}%"}

        if filters.price_category is not None:
            conditions.append("r.price_category = :price_category")
            params["price_category"] = filters.price_category

        if filters.minimum_average_rating is not None:
            conditions.append("r.average_rating >= :minimum_average_rating")
            params["minimum_average_rating"] = filters.minimum_average_rating

        table_conditions = []
        if filters.number_of_visitors is not None:
            table_conditions.append("t.seats >= :number_of_visitors")
            params["number_of_visitors"] = filters.number_of_visitors
        if filters.time_from is not None and filters.time_to is not None:
            table_conditions.append(
                """
                NOT EXISTS (
                    SELECT 1
                    FROM reservation_table rt
                    WHERE rt.table_id = t.id
                      AND tstzrange(rt.reserved_from, rt.reserved_to, '[)') && tstzrange(:time_from, :time_to, '[)')
                )
                """
            )
            params["time_from"] = filters.time_from
            params["time_to"] = filters.time_to
        if table_conditions:
            conditions.append(
                "EXISTS (SELECT 1 FROM restaurant_table t WHERE t.restaurant_id = r.id AND "
                + " AND ".join(table_conditions)
                + ")"
            )

        if None not in (filters.latitude, filters.longitude, filters.radius):
            # Restaurants without a stored location are never excluded by distance.
            conditions.append(
                f"""
                (r.latitude IS NULL OR r.longitude IS NULL OR
                 {EARTH_RADIUS_KM} * acos(LEAST(1, GREATEST(-1,
                    cos(radians(:latitude)) * cos(radians(r.latitude))
                    * cos(radians(r.longitude) - radians(:longitude))
                    + sin(radians(:latitude)) * sin(radians(r.latitude))
                 ))) <= :radius)
                """
            )
            params["latitude"] = filters.latitude
            params["longitude"] = filters.longitude
            params["radius"] = filters.radius

        where = " AND ".join(conditions)
        total = await self._count(f"SELECT count(*) FROM restaurant r WHERE {where}", params)
        result = await self.session.execute(
            text(
                f"""
                SELECT r.id, r.name, r.website, r.price_category, r.average_rating,
                       r.latitude, r.longitude, r.floor_plan
                FROM restaurant r
                WHERE {where}
                ORDER BY r.name, r.id
                LIMIT :limit OFFSET :offset
                """
            ),
            {**params, "limit": limit, "offset": offset},
        )
        return await self._load_restaurants(result.mappings().all()), total

    async def get_table(self, table_id: UUID) -> RestaurantTable | None:
        result = await self.session.execute(
            text("SELECT id, restaurant_id, seats FROM restaurant_table WHERE id = :id"),
            {"id": table_id},
        )
        row = result.mappings().one_or_none()
        return RestaurantTable(**row) if row is not None else None

    async def list_tables(
        self, restaurant_id: UUID, *, limit: int, offset: int
    ) -> tuple[list[RestaurantTable], int]:
        params = {"restaurant_id": restaurant_id}
        total = await self._count(
            "SELECT count(*) FROM restaurant_table WHERE restaurant_id = :restaurant_id", params
        )
        result = await self.session.execute(
            text(
                """
                SELECT id, restaurant_id, seats
                FROM restaurant_table
                WHERE restaurant_id = :restaurant_id
                ORDER BY seats, id
                LIMIT :limit OFFSET :offset
                """
            ),
            {**params, "limit": limit, "offset": offset},
        )
        return [RestaurantTable(**row) for row in result.mappings()], total

    async def list_comments(
        self, restaurant_id: UUID, *, limit: int, offset: int
    ) -> tuple[list[Comment], int]:
        params = {"restaurant_id": restaurant_id}
        total = await self._count(
            "SELECT count(*) FROM comment WHERE restaurant_id = :restaurant_id", params
        )
        result = await self.session.execute(
            text(
                """
                SELECT id, restaurant_id, rating, comment, name, created_at
                FROM comment
                WHERE restaurant_id = :restaurant_id
                ORDER BY created_at DESC, id
                LIMIT :limit OFFSET :offset
                """
            ),
            {**params, "limit": limit, "offset": offset},
        )
        return [Comment(**row) for row in result.mappings()], total

    async def add_comment(self, comment: Comment) -> Comment:
        """Insert ``comment`` and recompute the restaurant's average rating."""
        result = await self.session.execute(
            text(
                """
                INSERT INTO comment (id, restaurant_id, rating, comment, name)
                VALUES (:id, :restaurant_id, :rating, :comment, :name)
                RETURNING id, restaurant_id, rating, comment, name, created_at
                """
            ),
            comment.model_dump(exclude={"created_at"}),
        )
        stored = Comment(**result.mappings().one())
        await self.session.execute(
            text(
                """
                UPDATE restaurant
                SET average_rating = (
                    SELECT avg(rating) FROM comment WHERE restaurant_id = :restaurant_id
                )
                WHERE id = :restaurant_id
                """
            ),
            {"restaurant_id": comment.restaurant_id},
        )
        return stored

    async def list_opening_hours(
        self,
        restaurant_id: UUID,
        start_ts: datetime,
        end_ts: datetime,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[Timeslot], int]:
        params = {"restaurant_id": restaurant_id, "start_ts": start_ts, "end_ts": end_ts}
        where = """
            restaurant_id = :restaurant_id
            AND tstzrange(timeslot_from, timeslot_to, '[)') && tstzrange(:start_ts, :end_ts, '[)')
        """
        total = await self._count(f"SELECT count(*) FROM opening_hours WHERE {where}", params)
        result = await self.session.execute(
            text(
                f"""
                SELECT id, timeslot_from, timeslot_to
                FROM opening_hours
                WHERE {where}
                ORDER BY timeslot_from, id
                LIMIT :limit OFFSET :offset
                """
            ),
            {**params, "limit": limit, "offset": offset},
        )
        return [Timeslot(**row) for row in result.mappings()], total

    async def list_reservations(
        self,
        restaurant_id: UUID,
        start_ts: datetime,
        end_ts: datetime,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[ReservationSlot], int]:
        """Reservations of the restaurant's tables lying entirely inside [start_ts, end_ts]."""
        params = {"restaurant_id": restaurant_id, "start_ts": start_ts, "end_ts": end_ts}
        joins = """
            FROM reservation r
            JOIN reservation_table rt ON rt.reservation_id = r.id
            JOIN restaurant_table t ON t.id = rt.table_id
            WHERE t.restaurant_id = :restaurant_id
              AND r.reservation_from >= :start_ts
              AND r.reservation_to <= :end_ts
        """
        total = await self._count(f"SELECT count(DISTINCT r.id) {joins}", params)
        result = await self.session.execute(
            text(
                f"""
                SELECT r.reservation_from, r.reservation_to,
                       array_agg(rt.table_id ORDER BY rt.table_id) AS table_ids
                {joins}
                GROUP BY r.id
                ORDER BY r.reservation_from, r.id
                LIMIT :limit OFFSET :offset
                """
            ),
            {**params, "limit": limit, "offset": offset},
        )
        return [ReservationSlot(**row) for row in result.mappings()], total
