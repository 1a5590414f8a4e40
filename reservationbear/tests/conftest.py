from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from reservationbear.app.core.exceptions import ConflictError
from reservationbear.app.core.redis_client import get_redis
from reservationbear.app.db.session import get_reservation_repository, get_restaurant_repository
from reservationbear.app.main import app
from reservationbear.app.models import (
    Comment,
    Location,
    Reservation,
    ReservationSlot,
    Restaurant,
    RestaurantTable,
    Timeslot,
)
from reservationbear.app.services.mail import MailSender
from reservationbear.app.services.notifications import RegistrationMail, get_registration_mail


NOON = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0) -> datetime:
    return NOON.replace(hour=hour, minute=minute)


def epoch(value: datetime) -> int:
    return int(value.timestamp())


class InMemoryStore:
    def __init__(self) -> None:
        self.restaurants: dict[UUID, Restaurant] = {}
        self.tables: dict[UUID, RestaurantTable] = {}
        self.reservations: dict[UUID, Reservation] = {}
        self.comments: list[Comment] = []

    def add_restaurant(self, name: str, seats: list[int], **fields) -> Restaurant:
        restaurant = Restaurant(id=uuid4(), name=name, **fields)
        self.restaurants[restaurant.id] = restaurant
        for count in seats:
            table = RestaurantTable(id=uuid4(), restaurant_id=restaurant.id, seats=count)
            self.tables[table.id] = table
        return restaurant

    def tables_of(self, restaurant: Restaurant) -> list[RestaurantTable]:
        return sorted(
            (t for t in self.tables.values() if t.restaurant_id == restaurant.id),
            key=lambda t: (t.seats, str(t.id)),
        )


class FakeReservationRepository:
    """Dict-backed stand-in for ReservationRepository.

    ``find_overlapping`` hands back every reservation on the requested tables,
    leaving the interval check to the caller, and ``add`` rejects overlaps the
    way the database exclusion constraint does.
    """

    def __init__(self, store: InMemoryStore):
        self.store = store

    @asynccontextmanager
    async def transaction(self):
        snapshot = dict(self.store.reservations)
        try:
            yield
        except BaseException:
            self.store.reservations = snapshot
            raise

    async def get_tables(self, table_ids):
        return [self.store.tables[t] for t in table_ids if t in self.store.tables]

    async def find_overlapping(self, table_ids, start_ts, end_ts):
        wanted = set(table_ids)
        return [r for r in self.store.reservations.values() if wanted & set(r.table_ids)]

    async def add(self, reservation):
        for existing in self.store.reservations.values():
            shared = set(existing.table_ids) & set(reservation.table_ids)
            if (
                shared
                and existing.reservation_from < reservation.reservation_to
                and reservation.reservation_from < existing.reservation_to
            ):
                raise ConflictError("Table already booked", shared)
        self.store.reservations[reservation.id] = reservation
        return reservation

    async def get(self, reservation_id, *, for_update=False):
        return self.store.reservations.get(reservation_id)

    async def mark_confirmed(self, reservation_id):
        reservation = self.store.reservations.get(reservation_id)
        if reservation is None:
            return None
        confirmed = reservation.model_copy(update={"confirmed": True})
        self.store.reservations[reservation_id] = confirmed
        return confirmed

    async def delete(self, reservation_id):
        return self.store.reservations.pop(reservation_id, None)


class FakeRestaurantRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    @asynccontextmanager
    async def transaction(self):
        yield

    async def get(self, restaurant_id):
        return self.store.restaurants.get(restaurant_id)

    async def search(self, filters, *, limit, offset):
        found = [
            r
            for r in sorted(self.store.restaurants.values(), key=lambda r: r.name)
            if filters.query.lower() in r.name.lower()
            and (filters.price_category is None or r.price_category == filters.price_category)
        ]
        return found[offset : offset + limit], len(found)

    async def get_table(self, table_id):
        return self.store.tables.get(table_id)

    async def list_tables(self, restaurant_id, *, limit, offset):
        tables = [t for t in self.store.tables.values() if t.restaurant_id == restaurant_id]
        return tables[offset : offset + limit], len(tables)

    async def list_comments(self, restaurant_id, *, limit, offset):
        comments = [c for c in self.store.comments if c.restaurant_id == restaurant_id]
        return comments[offset : offset + limit], len(comments)

    async def add_comment(self, comment):
        stored = comment.model_copy(update={"created_at": datetime.now(timezone.utc)})
        self.store.comments.append(stored)
        ratings = [c.rating for c in self.store.comments if c.restaurant_id == comment.restaurant_id]
        restaurant = self.store.restaurants[comment.restaurant_id]
        self.store.restaurants[restaurant.id] = restaurant.model_copy(
            update={"average_rating": sum(ratings) / len(ratings)}
        )
        return stored

    async def list_opening_hours(self, restaurant_id, start_ts, end_ts, *, limit, offset):
        slots = [
            slot
            for slot in self.store.restaurants[restaurant_id].opening_hours
            if slot.timeslot_from < end_ts and start_ts < slot.timeslot_to
        ]
        return slots[offset : offset + limit], len(slots)

    async def list_reservations(self, restaurant_id, start_ts, end_ts, *, limit, offset):
        own_tables = {t.id for t in self.store.tables.values() if t.restaurant_id == restaurant_id}
        slots = [
            ReservationSlot(
                reservation_from=r.reservation_from,
                reservation_to=r.reservation_to,
                table_ids=r.table_ids,
            )
            for r in sorted(self.store.reservations.values(), key=lambda r: r.reservation_from)
            if own_tables & set(r.table_ids)
            and r.reservation_from >= start_ts
            and r.reservation_to <= end_ts
        ]
        return slots[offset : offset + limit], len(slots)


class FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def set(self, key, value, nx=False, px=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        if px is not None:
            self.ttls[key] = px
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self):
        return True


class RecordingMailSender(MailSender):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, address, body, subject, attachment=None):
        if self.fail:
            raise ConnectionRefusedError("smtp down")
        self.sent.append({"address": address, "body": body, "subject": subject, "attachment": attachment})


@pytest.fixture
def store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_restaurant(
        "Bear Bistro",
        [2, 4],
        price_category=2,
        website="https://bear-bistro.example",
        location=Location(latitude=48.137, longitude=11.575),
        opening_hours=[
            Timeslot(id=uuid4(), timeslot_from=at(11), timeslot_to=at(15)),
            Timeslot(id=uuid4(), timeslot_from=at(18), timeslot_to=at(23)),
            Timeslot(
                id=uuid4(),
                timeslot_from=at(11) + timedelta(days=1),
                timeslot_to=at(15) + timedelta(days=1),
            ),
        ],
    )
    store.add_restaurant("Polar Pizzeria", [6], price_category=1)
    return store


@pytest.fixture
def bistro(store: InMemoryStore) -> Restaurant:
    return next(r for r in store.restaurants.values() if r.name == "Bear Bistro")


@pytest.fixture
def pizzeria(store: InMemoryStore) -> Restaurant:
    return next(r for r in store.restaurants.values() if r.name == "Polar Pizzeria")


@pytest.fixture
def reservation_repo(store: InMemoryStore) -> FakeReservationRepository:
    return FakeReservationRepository(store)


@pytest.fixture
def restaurant_repo(store: InMemoryStore) -> FakeRestaurantRepository:
    return FakeRestaurantRepository(store)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def mail_sender() -> RecordingMailSender:
    return RecordingMailSender()


@pytest.fixture
def registration_mail(mail_sender: RecordingMailSender) -> RegistrationMail:
    return RegistrationMail(
        mail_sender,
        link_host="http://localhost",
        link_port=3000,
        icons=["🍕"],
    )


@pytest.fixture
async def client(reservation_repo, restaurant_repo, fake_redis, registration_mail):
    app.dependency_overrides[get_reservation_repository] = lambda: reservation_repo
    app.dependency_overrides[get_restaurant_repository] = lambda: restaurant_repo
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_registration_mail] = lambda: registration_mail
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
