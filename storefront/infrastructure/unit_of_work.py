from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.domain.exceptions import PersistenceError
from storefront.application.interfaces import UnitOfWork as AbstractUnitOfWork
from storefront.infrastructure.repositories import (
    SQLAlchemyCartRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyProductRepository,
    SQLAlchemyOutboxRepository,
    SQLAlchemyInboxRepository
)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                yield _UnitOfWorkImpl(session)
                # Anything not committed explicitly is discarded
                await session.rollback()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(f"Storage error: {e.__class__.__name__}") from e
            except Exception:
                await session.rollback()
                raise


class _UnitOfWorkImpl(AbstractUnitOfWork):
    def __init__(self, session: AsyncSession):
        self._session = session
        self._carts = SQLAlchemyCartRepository(session)
        self._orders = SQLAlchemyOrderRepository(session)
        self._products = SQLAlchemyProductRepository(session)
        self._outbox = SQLAlchemyOutboxRepository(session)
        self._inbox = SQLAlchemyInboxRepository(session)

    @property
    def carts(self) -> SQLAlchemyCartRepository:
        return self._carts

    @property
    def orders(self) -> SQLAlchemyOrderRepository:
        return self._orders

    @property
    def products(self) -> SQLAlchemyProductRepository:
        return self._products

    @property
    def outbox(self) -> SQLAlchemyOutboxRepository:
        return self._outbox

    @property
    def inbox(self) -> SQLAlchemyInboxRepository:
        return self._inbox

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
