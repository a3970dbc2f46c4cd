import logging
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_service.infrastructure.repositories import (
    SQLAlchemyCartRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyCheckoutRepository
)

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Одна сессия на блок: корзины, заказы и журнал оформлений фиксируются одним commit"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            uow_impl = _UnitOfWorkImpl(session)
            try:
                yield uow_impl
            except Exception as e:
                logger.warning(f"Транзакция откатана: {type(e).__name__}: {e}")
                await uow_impl.rollback()
                raise
            # Без commit изменения не сохраняются (в т.ч. при конфликте версий)
            await uow_impl.rollback()


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.carts = SQLAlchemyCartRepository(session)
        self.orders = SQLAlchemyOrderRepository(session)
        self.checkouts = SQLAlchemyCheckoutRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
