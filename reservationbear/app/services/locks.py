import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from uuid import UUID, uuid4

import redis.asyncio as redis
from loguru import logger

from reservationbear.app.core.exceptions import ServiceUnavailableError


def table_hold_key(table_id: UUID) -> str:
    return f"hold:table:{table_id}"


async def _acquire(
    client: redis.Redis,
    key: str,
    hold_id: str,
    ttl_ms: int,
    deadline: float,
    poll_interval: float,
) -> bool:
    loop = asyncio.get_running_loop()
    while True:
        if await client.set(key, hold_id, nx=True, px=ttl_ms):
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(poll_interval)


@asynccontextmanager
async def hold_tables(
    client: redis.Redis,
    table_ids: Iterable[UUID],
    ttl_seconds: int,
    *,
    wait_seconds: float | None = None,
    poll_interval: float = 0.05,
) -> AsyncIterator[str]:
    """Hold every table in ``table_ids`` for the duration of the block.

    Keys are taken in a fixed order so two requests on overlapping table sets
    cannot each end up holding half. A table held by another request is
    waited on, by default for up to one TTL, since that request may be booking
    a different interval. Whether the intervals overlap is decided after the
    hold, against the database. If a hold cannot be taken in time the keys
    acquired so far are released and ServiceUnavailableError is raised.
    """
    hold_id = str(uuid4())
    ttl_ms = ttl_seconds * 1000
    wait = ttl_seconds if wait_seconds is None else wait_seconds
    deadline = asyncio.get_running_loop().time() + wait
    acquired: list[str] = []
    try:
        for table_id in sorted(set(table_ids), key=str):
            key = table_hold_key(table_id)
            if not await _acquire(client, key, hold_id, ttl_ms, deadline, poll_interval):
                logger.warning(f"Table {table_id} still held by another request after {wait}s")
                raise ServiceUnavailableError("Table is busy, try again")
            acquired.append(key)
        yield hold_id
    finally:
        if acquired:
            await client.delete(*acquired)
