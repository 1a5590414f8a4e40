import secrets
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID, uuid4

from loguru import logger

from reservationbear.app.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from reservationbear.app.db.repositories import ReservationRepository
from reservationbear.app.models import Reservation
from reservationbear.app.services.availability import ensure_tables_available
from reservationbear.app.services.calendar import build_reservation_calendar


def new_confirmation_token() -> str:
    return secrets.token_urlsafe(32)


def _require_aware(name: str, value: datetime) -> None:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError(f"{name} must include timezone information")


async def create_reservation(
    repo: ReservationRepository,
    *,
    table_ids: Sequence[UUID],
    reservation_from: datetime,
    reservation_to: datetime,
    user_name: str,
    user_email: str,
) -> Reservation:
    """Book ``table_ids`` for [reservation_from, reservation_to) in the unconfirmed state.

    Raises ValidationError for an empty table set, an invalid interval or tables
    of different restaurants, NotFoundError for unknown tables and ConflictError
    when any table is already booked for an overlapping interval.
    """
    requested = sorted(set(table_ids), key=str)
    if not requested:
        raise ValidationError("Table list cannot be empty")

    _require_aware("reservation_from", reservation_from)
    _require_aware("reservation_to", reservation_to)
    if reservation_from >= reservation_to:
        raise ValidationError("Reservation must start before it ends")

    tables = await repo.get_tables(requested)
    missing = set(requested) - {table.id for table in tables}
    if missing:
        raise NotFoundError(f"Unknown table(s): {', '.join(sorted(str(t) for t in missing))}")
    if len({table.restaurant_id for table in tables}) > 1:
        raise ValidationError("All tables of a reservation must belong to the same restaurant")

    await ensure_tables_available(repo, requested, reservation_from, reservation_to)

    reservation = await repo.add(
        Reservation(
            id=uuid4(),
            table_ids=requested,
            reservation_from=reservation_from,
            reservation_to=reservation_to,
            user_name=user_name,
            user_email=user_email,
            confirmed=False,
            confirmation_token=new_confirmation_token(),
        )
    )
    logger.info(f"Reservation {reservation.id} created for tables {[str(t) for t in requested]}")
    return reservation


async def get_reservation(repo: ReservationRepository, reservation_id: UUID) -> Reservation:
    reservation = await repo.get(reservation_id)
    if reservation is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    return reservation


async def confirm_reservation(
    repo: ReservationRepository,
    reservation_id: UUID,
    confirmation_token: str,
) -> Reservation:
    """Move a reservation to confirmed if ``confirmation_token`` matches.

    Confirming an already confirmed reservation with the valid token succeeds
    without changing anything.
    """
    reservation = await repo.get(reservation_id, for_update=True)
    if reservation is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")

    if not secrets.compare_digest(
        reservation.confirmation_token.encode("utf-8"), confirmation_token.encode("utf-8")
    ):
        logger.warning(f"Rejected confirmation of reservation {reservation_id}: token mismatch")
        raise UnauthorizedError("Invalid confirmation token")

    if reservation.confirmed:
        return reservation

    confirmed = await repo.mark_confirmed(reservation_id)
    if confirmed is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    logger.info(f"Reservation {reservation_id} confirmed")
    return confirmed


async def delete_reservation(repo: ReservationRepository, reservation_id: UUID) -> Reservation:
    removed = await repo.delete(reservation_id)
    if removed is None:
        raise NotFoundError(f"Reservation {reservation_id} not found")
    logger.info(f"Reservation {reservation_id} deleted")
    return removed


async def get_reservation_calendar(repo: ReservationRepository, reservation_id: UUID) -> bytes:
    reservation = await get_reservation(repo, reservation_id)
    return build_reservation_calendar(reservation)
