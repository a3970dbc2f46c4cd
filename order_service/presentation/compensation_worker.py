import asyncio
import logging

from order_service.database import AsyncSessionLocal
from order_service.infrastructure.unit_of_work import UnitOfWork
from order_service.infrastructure.http_clients import HTTPProductClient
from order_service.application.compensations import RetryCompensationsUseCase
from order_service.config import settings

logger = logging.getLogger(__name__)


async def compensation_worker(interval: float = settings.COMPENSATION_WORKER_INTERVAL):
    """Worker для повторных отмен покупок из журнала оформлений"""
    logger.info("Compensation worker запущен")

    products = HTTPProductClient(settings.PRODUCT_SERVICE_BASE_URL, settings.PRODUCT_SERVICE_TIMEOUT)

    while True:
        try:
            # use_case создается на каждую итерацию
            use_case = RetryCompensationsUseCase(
                unit_of_work=UnitOfWork(AsyncSessionLocal),
                product_service=products,
                stale_after_seconds=settings.STALE_CHECKOUT_SECONDS
            )

            settled = await use_case(limit=10)
            if settled:
                logger.info(f"Откатано оформлений: {settled}")

            await asyncio.sleep(interval)

        except asyncio.CancelledError:
            logger.info("Compensation worker остановлен")
            raise
        except Exception as e:
            logger.error(f"Ошибка в compensation worker: {e}", exc_info=True)
            await asyncio.sleep(interval * 2)


async def main():
    await compensation_worker()


def run():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(main())


if __name__ == "__main__":
    run()
