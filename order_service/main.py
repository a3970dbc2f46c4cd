import asyncio
import logging
import uvicorn
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from order_service.config import settings
from order_service.database import engine
from order_service.infrastructure.db_schema import metadata
from order_service.presentation.api import carts_router, orders_router
from order_service.presentation.compensation_worker import compensation_worker

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    # 1. Создаем таблицы
    try:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Таблицы созданы")
    except Exception as e:
        logger.warning(f"Не удалось создать таблицы: {e}")

    # 2. Запускаем compensation worker в фоне
    worker_task = None
    if settings.COMPENSATION_WORKER_ENABLED:
        worker_task = asyncio.create_task(compensation_worker())

    yield

    logger.info("Приложение останавливается...")
    if worker_task:
        worker_task.cancel()
        with suppress(asyncio.CancelledError):
            await worker_task
    await engine.dispose()


app = FastAPI(
    title="Order Service",
    description="Сервис корзин и заказов",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(carts_router, prefix="/api")
app.include_router(orders_router, prefix="/api")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Ошибки валидации запроса отдаем как 400
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())}
    )


@app.get("/health")
async def health():
    return {"status": "healthy"}


def run():
    uvicorn.run("order_service.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
