from dataclasses import dataclass
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from reservationbear.app.db.repositories import RestaurantRepository
from reservationbear.app.db.session import get_restaurant_repository
from reservationbear.app.models import RestaurantFilter
from reservationbear.app.routers.schemas import (
    MAX_EPOCH,
    CommentIn,
    CommentOut,
    PageOut,
    ReservationSlotOut,
    RestaurantOut,
    TableOut,
    TimeslotOut,
    from_epoch,
)
from reservationbear.app.services import restaurants as restaurant_service


router = APIRouter()


@dataclass(frozen=True)
class Paging:
    current_page: int
    page_size: int

    @property
    def offset(self) -> int:
        return self.current_page * self.page_size


def paging(
    current_page: int = Query(0, alias="currentPage", ge=0),
    page_size: int = Query(50, alias="pageSize", ge=1, le=200),
) -> Paging:
    return Paging(current_page=current_page, page_size=page_size)


@router.get("/restaurant", response_model=PageOut[RestaurantOut])
async def search_restaurants(
    query: str = Query("", max_length=200),
    price_category: int | None = Query(None, alias="priceCategory", ge=1, le=3),
    minimum_average_rating: float | None = Query(None, alias="minimumAverageRating", ge=1, le=5),
    time_from: int | None = Query(None, alias="timeFrom", ge=0, le=MAX_EPOCH),
    time_to: int | None = Query(None, alias="timeTo", ge=0, le=MAX_EPOCH),
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    radius: float | None = Query(None, gt=0),
    number_of_visitors: int | None = Query(None, alias="numberOfVisitors", ge=1),
    page: Paging = Depends(paging),
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> PageOut[RestaurantOut]:
    filters = RestaurantFilter(
        query=query,
        price_category=price_category,
        minimum_average_rating=minimum_average_rating,
        time_from=from_epoch(time_from) if time_from is not None else None,
        time_to=from_epoch(time_to) if time_to is not None else None,
        latitude=latitude,
        longitude=longitude,
        radius=radius,
        number_of_visitors=number_of_visitors,
    )
    restaurants, total = await restaurant_service.search_restaurants(
        repo, filters, limit=page.page_size, offset=page.offset
    )
    return PageOut[RestaurantOut].build(
        [RestaurantOut.from_restaurant(r) for r in restaurants], total, page.current_page, page.page_size
    )


@router.get("/restaurant/{restaurant_id}", response_model=RestaurantOut)
async def get_restaurant(
    restaurant_id: UUID,
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> RestaurantOut:
    restaurant = await restaurant_service.get_restaurant(repo, restaurant_id)
    return RestaurantOut.from_restaurant(restaurant)


@router.get("/restaurant/{restaurant_id}/table", response_model=PageOut[TableOut])
async def get_restaurant_tables(
    restaurant_id: UUID,
    page: Paging = Depends(paging),
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> PageOut[TableOut]:
    tables, total = await restaurant_service.list_tables(
        repo, restaurant_id, limit=page.page_size, offset=page.offset
    )
    return PageOut[TableOut].build(
        [TableOut.from_table(t) for t in tables], total, page.current_page, page.page_size
    )


@router.get("/restaurant/{restaurant_id}/comment", response_model=PageOut[CommentOut])
async def get_restaurant_comments(
    restaurant_id: UUID,
    page: Paging = Depends(paging),
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> PageOut[CommentOut]:
    comments, total = await restaurant_service.list_comments(
        repo, restaurant_id, limit=page.page_size, offset=page.offset
    )
    return PageOut[CommentOut].build(
        [CommentOut.from_comment(c) for c in comments], total, page.current_page, page.page_size
    )


@router.post(
    "/restaurant/{restaurant_id}/comment",
    response_model=CommentOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_restaurant_comment(
    restaurant_id: UUID,
    payload: CommentIn,
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> CommentOut:
    async with repo.transaction():
        comment = await restaurant_service.add_comment(
            repo, restaurant_id, rating=payload.rating, comment=payload.comment, name=payload.name
        )
    return CommentOut.from_comment(comment)


@router.get("/restaurant/{restaurant_id}/timeslot", response_model=PageOut[TimeslotOut])
async def get_restaurant_timeslots(
    restaurant_id: UUID,
    day: date = Query(alias="date"),
    page: Paging = Depends(paging),
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> PageOut[TimeslotOut]:
    timeslots, total = await restaurant_service.list_opening_hours(
        repo, restaurant_id, day, limit=page.page_size, offset=page.offset
    )
    return PageOut[TimeslotOut].build(
        [TimeslotOut.from_timeslot(t) for t in timeslots], total, page.current_page, page.page_size
    )


@router.get("/restaurant/{restaurant_id}/reservation", response_model=PageOut[ReservationSlotOut])
async def get_restaurant_reservations(
    restaurant_id: UUID,
    start: int = Query(alias="from", ge=0, le=MAX_EPOCH),
    end: int = Query(alias="to", ge=0, le=MAX_EPOCH),
    page: Paging = Depends(paging),
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> PageOut[ReservationSlotOut]:
    slots, total = await restaurant_service.list_reservations(
        repo,
        restaurant_id,
        from_epoch(start),
        from_epoch(end),
        limit=page.page_size,
        offset=page.offset,
    )
    return PageOut[ReservationSlotOut].build(
        [ReservationSlotOut.from_slot(s) for s in slots], total, page.current_page, page.page_size
    )


@router.get("/table/{table_id}", response_model=TableOut)
async def get_table(
    table_id: UUID,
    repo: RestaurantRepository = Depends(get_restaurant_repository),
) -> TableOut:
    table = await restaurant_service.get_table(repo, table_id)
    return TableOut.from_table(table)
