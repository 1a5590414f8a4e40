from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from reservationbear.app.core.config import settings
from reservationbear.app.core.exceptions import register_exception_handlers
from reservationbear.app.core.logging import configure_logging
from reservationbear.app.core.redis_client import close_redis, init_redis
import reservationbear.app.routers.availability as availability
import reservationbear.app.routers.health as health
import reservationbear.app.routers.reservations as reservations
import reservationbear.app.routers.restaurants as restaurants


configure_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_redis()
    logger.info("Reservation API started")
    try:
        yield
    finally:
        await close_redis()
        logger.info("Reservation API stopped")


app = FastAPI(
    title="Reservation Bear API",
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(restaurants.router, prefix=settings.API_PREFIX)
