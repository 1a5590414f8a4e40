from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from reservationbear.app.core.config import settings
from reservationbear.app.db.repositories import ReservationRepository, RestaurantRepository


engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a scoped AsyncSession for request handling."""
    async with SessionLocal() as session:
        yield session


def get_reservation_repository(
    session: AsyncSession = Depends(get_session),
) -> ReservationRepository:
    return ReservationRepository(session)


def get_restaurant_repository(
    session: AsyncSession = Depends(get_session),
) -> RestaurantRepository:
    return RestaurantRepository(session)
