from fastapi import APIRouter, Depends

from reservationbear.app.core.exceptions import ValidationError
from reservationbear.app.db.repositories import ReservationRepository
from reservationbear.app.db.session import get_reservation_repository
from reservationbear.app.routers.schemas import (
    AvailabilityCheckIn,
    AvailabilityCheckOut,
    TableConflictOut,
)
from reservationbear.app.services.availability import find_conflicts


router = APIRouter()


@router.post("/availability/check", response_model=AvailabilityCheckOut)
async def check_availability(
    payload: AvailabilityCheckIn,
    repo: ReservationRepository = Depends(get_reservation_repository),
) -> AvailabilityCheckOut:
    """Report which of the requested tables are booked in an overlapping interval."""
    if not payload.tables:
        raise ValidationError("Table list cannot be empty")

    start_ts, end_ts = payload.time.bounds()
    if start_ts >= end_ts:
        raise ValidationError("from must be before to")

    conflicts = await find_conflicts(repo, payload.tables, start_ts, end_ts)
    return AvailabilityCheckOut(
        available=not conflicts,
        conflicts=[TableConflictOut.from_conflict(conflict) for conflict in conflicts],
    )
