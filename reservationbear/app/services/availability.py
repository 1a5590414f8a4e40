from collections.abc import Iterable
from datetime import datetime
from typing import Protocol
from uuid import UUID

from loguru import logger
from pydantic import BaseModel

from reservationbear.app.core.exceptions import ConflictError
from reservationbear.app.models import Reservation


class OverlapSource(Protocol):
    async def find_overlapping(
        self, table_ids: list[UUID], start_ts: datetime, end_ts: datetime
    ) -> list[Reservation]: ...


class TableConflict(BaseModel):
    table_id: UUID
    reservation_ids: list[UUID]


def is_overlapping(
    candidate_from: datetime,
    candidate_to: datetime,
    existing_from: datetime,
    existing_to: datetime,
) -> bool:
    """Whether [candidate_from, candidate_to) and [existing_from, existing_to) share an instant.

    Back-to-back intervals (candidate_to == existing_from) do not overlap.
    """
    return candidate_from < existing_to and existing_from < candidate_to


async def find_conflicts(
    source: OverlapSource,
    table_ids: Iterable[UUID],
    start_ts: datetime,
    end_ts: datetime,
) -> list[TableConflict]:
    """Every requested table that is booked in an interval overlapping [start_ts, end_ts).

    Each table is reported with all reservations blocking it, not just the first.
    """
    requested = sorted(set(table_ids), key=str)
    if not requested:
        return []

    blocking: dict[UUID, list[UUID]] = {table_id: [] for table_id in requested}
    for reservation in await source.find_overlapping(requested, start_ts, end_ts):
        if not is_overlapping(start_ts, end_ts, reservation.reservation_from, reservation.reservation_to):
            continue
        for table_id in reservation.table_ids:
            if table_id in blocking and reservation.id not in blocking[table_id]:
                blocking[table_id].append(reservation.id)

    return [
        TableConflict(table_id=table_id, reservation_ids=reservation_ids)
        for table_id, reservation_ids in blocking.items()
        if reservation_ids
    ]


async def find_conflicting_reservations(
    source: OverlapSource,
    table_ids: Iterable[UUID],
    start_ts: datetime,
    end_ts: datetime,
) -> set[UUID]:
    conflicts = await find_conflicts(source, table_ids, start_ts, end_ts)
    return {reservation_id for conflict in conflicts for reservation_id in conflict.reservation_ids}


async def ensure_tables_available(
    source: OverlapSource,
    table_ids: Iterable[UUID],
    start_ts: datetime,
    end_ts: datetime,
) -> None:
    conflicts = await find_conflicts(source, table_ids, start_ts, end_ts)
    if conflicts:
        booked = [conflict.table_id for conflict in conflicts]
        logger.info(f"Booking {start_ts.isoformat()}..{end_ts.isoformat()} blocked on tables {booked}")
        raise ConflictError("Table already booked", booked)
