from uuid import UUID

import redis.asyncio as redis
from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, Response

from reservationbear.app.core.config import settings
from reservationbear.app.core.exceptions import ValidationError
from reservationbear.app.core.redis_client import get_redis
from reservationbear.app.db.repositories import ReservationRepository
from reservationbear.app.db.session import get_reservation_repository
from reservationbear.app.routers.schemas import ConfirmationIn, ReservationIn, ReservationOut
from reservationbear.app.services import reservations as reservation_service
from reservationbear.app.services.locks import hold_tables
from reservationbear.app.services.notifications import RegistrationMail, get_registration_mail


router = APIRouter()


@router.post("/reservation", response_model=ReservationOut)
async def create_reservation(
    payload: ReservationIn,
    background_tasks: BackgroundTasks,
    repo: ReservationRepository = Depends(get_reservation_repository),
    redis_client: redis.Redis = Depends(get_redis),
    registration_mail: RegistrationMail = Depends(get_registration_mail),
) -> ReservationOut:
    reservation_from, reservation_to = payload.time.bounds()

    async with hold_tables(redis_client, payload.tables, settings.TABLE_HOLD_TTL_SECONDS):
        async with repo.transaction():
            reservation = await reservation_service.create_reservation(
                repo,
                table_ids=payload.tables,
                reservation_from=reservation_from,
                reservation_to=reservation_to,
                user_name=payload.user_name,
                user_email=payload.user_email,
            )

    # Runs after the response is sent and outside the transaction.
    background_tasks.add_task(registration_mail.send, reservation)
    return ReservationOut.from_reservation(reservation)


@router.get("/reservation/{reservation_id}", response_model=ReservationOut)
async def get_reservation(
    reservation_id: UUID,
    repo: ReservationRepository = Depends(get_reservation_repository),
) -> ReservationOut:
    reservation = await reservation_service.get_reservation(repo, reservation_id)
    return ReservationOut.from_reservation(reservation)


@router.patch("/reservation/{reservation_id}", response_model=ReservationOut)
async def confirm_reservation(
    reservation_id: UUID,
    confirmation_token: str = Query(alias="confirmationToken", min_length=1),
    payload: ConfirmationIn | None = Body(default=None),
    repo: ReservationRepository = Depends(get_reservation_repository),
) -> ReservationOut:
    if payload is not None and not payload.confirmed:
        raise ValidationError("A reservation can only be patched to confirmed")

    async with repo.transaction():
        reservation = await reservation_service.confirm_reservation(repo, reservation_id, confirmation_token)
    return ReservationOut.from_reservation(reservation)


@router.delete("/reservation/{reservation_id}", response_model=ReservationOut)
async def delete_reservation(
    reservation_id: UUID,
    repo: ReservationRepository = Depends(get_reservation_repository),
) -> ReservationOut:
    async with repo.transaction():
        removed = await reservation_service.delete_reservation(repo, reservation_id)
    return ReservationOut.from_reservation(removed)


@router.get("/reservation/{reservation_id}/ics", response_class=Response)
async def get_reservation_ics(
    reservation_id: UUID,
    repo: ReservationRepository = Depends(get_reservation_repository),
) -> Response:
    calendar = await reservation_service.get_reservation_calendar(repo, reservation_id)
    return Response(
        content=calendar,
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="reservation-{reservation_id}.ics"'},
    )
