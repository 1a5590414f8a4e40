from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import at, epoch


pytestmark = pytest.mark.asyncio


async def _book(client, table_ids, start, end):
    response = await client.post(
        "/api/reservation",
        json={
            "tables": [str(t) for t in table_ids],
            "time": {"from": epoch(start), "to": epoch(end)},
            "userName": "Fozzie Bear",
            "userEmail": "fozzie@example.com",
        },
    )
    assert response.status_code == 200, response.text
    return response.json()


async def test_search_pages_restaurants(client):
    first = await client.get("/api/restaurant", params={"pageSize": 1})
    second = await client.get("/api/restaurant", params={"pageSize": 1, "currentPage": 1})

    assert first.status_code == 200
    assert first.json()["totalPages"] == 2
    assert first.json()["currentPage"] == 0
    assert [r["name"] for r in first.json()["content"]] == ["Bear Bistro"]
    assert [r["name"] for r in second.json()["content"]] == ["Polar Pizzeria"]


async def test_search_filters(client):
    response = await client.get("/api/restaurant", params={"query": "pizz", "priceCategory": 1})

    assert [r["name"] for r in response.json()["content"]] == ["Polar Pizzeria"]


async def test_search_requires_both_time_bounds(client):
    response = await client.get("/api/restaurant", params={"timeFrom": epoch(at(12))})

    assert response.status_code == 400


async def test_search_rejects_out_of_range_price_category(client):
    response = await client.get("/api/restaurant", params={"priceCategory": 4})

    assert response.status_code == 422


async def test_get_restaurant(client, bistro):
    response = await client.get(f"/api/restaurant/{bistro.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Bear Bistro"
    assert body["priceCategory"] == 2
    assert body["location"] == {"latitude": 48.137, "longitude": 11.575}
    assert len(body["openingHours"]) == 3
    assert (await client.get(f"/api/restaurant/{uuid4()}")).status_code == 404


async def test_restaurant_tables_and_single_table(client, store, bistro):
    response = await client.get(f"/api/restaurant/{bistro.id}/table")

    assert response.status_code == 200
    assert sorted(t["seats"] for t in response.json()["content"]) == [2, 4]

    t1, _ = store.tables_of(bistro)
    table = await client.get(f"/api/table/{t1.id}")
    assert table.json() == {"id": str(t1.id), "restaurantId": str(bistro.id), "seats": 2}
    assert (await client.get(f"/api/table/{uuid4()}")).status_code == 404


async def test_comments_update_average_rating(client, bistro):
    for rating in (5, 4):
        created = await client.post(
            f"/api/restaurant/{bistro.id}/comment",
            json={"rating": rating, "comment": "Honey glazed everything", "name": "Pooh"},
        )
        assert created.status_code == 201

    comments = await client.get(f"/api/restaurant/{bistro.id}/comment")
    restaurant = await client.get(f"/api/restaurant/{bistro.id}")

    assert comments.json()["content"][0]["name"] == "Pooh"
    assert len(comments.json()["content"]) == 2
    assert restaurant.json()["averageRating"] == 4.5


async def test_comment_rating_is_bounded(client, bistro):
    response = await client.post(
        f"/api/restaurant/{bistro.id}/comment",
        json={"rating": 6, "comment": "Too good", "name": "Pooh"},
    )

    assert response.status_code == 422


async def test_comment_on_unknown_restaurant(client):
    response = await client.post(
        f"/api/restaurant/{uuid4()}/comment",
        json={"rating": 3, "comment": "Where am I", "name": "Pooh"},
    )

    assert response.status_code == 404


async def test_opening_hours_on_a_date(client, bistro):
    day = at(0).date()

    response = await client.get(f"/api/restaurant/{bistro.id}/timeslot", params={"date": day.isoformat()})
    next_day = await client.get(
        f"/api/restaurant/{bistro.id}/timeslot", params={"date": (day + timedelta(days=1)).isoformat()}
    )

    assert [slot["from"] for slot in response.json()["content"]] == [epoch(at(11)), epoch(at(18))]
    assert len(next_day.json()["content"]) == 1


async def test_reservations_in_timeframe(client, store, bistro, pizzeria):
    t1, t2 = store.tables_of(bistro)
    (t3,) = store.tables_of(pizzeria)
    await _book(client, [t1.id, t2.id], at(12), at(13))
    await _book(client, [t1.id], at(19), at(21))
    await _book(client, [t3.id], at(12), at(13))

    response = await client.get(
        f"/api/restaurant/{bistro.id}/reservation",
        params={"from": epoch(at(11)), "to": epoch(at(14))},
    )

    assert response.status_code == 200
    (slot,) = response.json()["content"]
    assert slot["time"] == {"from": epoch(at(12)), "to": epoch(at(13))}
    assert sorted(slot["tables"]) == sorted([str(t1.id), str(t2.id)])
    assert "userName" not in slot


async def test_reservations_in_timeframe_validates_interval(client, bistro):
    response = await client.get(
        f"/api/restaurant/{bistro.id}/reservation",
        params={"from": epoch(at(14)), "to": epoch(at(11))},
    )

    assert response.status_code == 400


async def test_timestamps_beyond_year_9999_are_rejected(client, bistro):
    search = await client.get("/api/restaurant", params={"timeFrom": 10**12, "timeTo": 10**12 + 3600})
    slots = await client.get(
        f"/api/restaurant/{bistro.id}/reservation",
        params={"from": epoch(at(11)), "to": 10**12},
    )

    assert search.status_code == 422
    assert slots.status_code == 422
