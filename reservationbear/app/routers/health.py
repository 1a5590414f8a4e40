import redis.asyncio as redis
from fastapi import APIRouter, Depends
from loguru import logger
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from reservationbear.app.core.exceptions import ServiceUnavailableError
from reservationbear.app.core.redis_client import get_redis
from reservationbear.app.db.session import get_session


router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    """Basic liveness probe."""
    return {"ok": True}


@router.get("/readiness")
async def readiness(
    session: AsyncSession = Depends(get_session),
    redis_client: redis.Redis = Depends(get_redis),
) -> dict[str, bool]:
    """Ensure Postgres and the Redis used for table holds are reachable."""
    await session.execute(text("SELECT 1"))
    try:
        await redis_client.ping()
    except RedisError as exc:
        logger.error(f"Redis ping failed: {exc}")
        raise ServiceUnavailableError("Redis unavailable") from exc

    return {"ready": True}
