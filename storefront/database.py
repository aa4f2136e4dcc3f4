from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from storefront.config import settings
from storefront.infrastructure.db_schema import metadata


def create_engine(url: str = None) -> AsyncEngine:
    return create_async_engine(url or settings.DATABASE_URL, pool_pre_ping=True)


engine = create_engine() if settings.POSTGRES_CONNECTION_STRING else None
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False) if engine else None


async def create_tables(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(metadata.create_all)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal
