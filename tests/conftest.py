from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple
import uuid

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from order_service.application.interfaces import ProductService
from order_service.domain.models import AvailabilityInfo, PurchaseResponse
from order_service.domain.results import ServiceResult, FailureKind
from order_service.infrastructure.db_schema import metadata
from order_service.infrastructure.unit_of_work import UnitOfWork


class FakeProductService(ProductService):
    """Product Service в памяти: цены, отказы и журнал вызовов"""

    def __init__(self):
        self.prices: Dict[str, Decimal] = {}
        self.unavailable: Set[str] = set()
        self.failing_purchases: Dict[str, str] = {}
        self.failing_cancels: Set[str] = set()
        self.availability_error: Optional[str] = None
        self.on_purchase: Optional[Callable[[str, int], Awaitable[None]]] = None
        self.purchase_calls: List[Tuple[str, int]] = []
        self.cancel_calls: List[Tuple[str, int]] = []

    def add_product(self, price: str = "10.00") -> str:
        product_id = str(uuid.uuid4())
        self.prices[product_id] = Decimal(price)
        return product_id

    async def check_availability(self, product_id: str) -> ServiceResult:
        if self.availability_error:
            return ServiceResult.fail(self.availability_error, FailureKind.UPSTREAM_FAILURE)
        available = product_id in self.prices and product_id not in self.unavailable
        info = AvailabilityInfo(
            product_id=product_id,
            is_available=available,
            current_price=self.prices.get(product_id, Decimal("0"))
        )
        return ServiceResult.ok("Product availability checked successfully", info)

    async def purchase(self, product_id: str, quantity: int, price_at_purchase: Decimal = Decimal("0")) -> ServiceResult:
        self.purchase_calls.append((product_id, quantity))
        if self.on_purchase:
            await self.on_purchase(product_id, quantity)
        if product_id in self.failing_purchases:
            return ServiceResult.fail(self.failing_purchases[product_id], FailureKind.UPSTREAM_FAILURE)
        receipt = PurchaseResponse(
            transaction_id=f"tx-{len(self.purchase_calls)}",
            confirmation_code="OK",
            amount=price_at_purchase * quantity,
            currency="USD",
            provider="fake",
            success=True
        )
        return ServiceResult.ok("Product purchased successfully", receipt)

    async def cancel_purchase(self, product_id: str, quantity: int) -> ServiceResult:
        self.cancel_calls.append((product_id, quantity))
        if product_id in self.failing_cancels:
            return ServiceResult.fail("Failed to cancel purchase: Service Unavailable", FailureKind.UPSTREAM_FAILURE)
        return ServiceResult.ok("Purchase cancelled successfully")


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def uow(session_factory) -> UnitOfWork:
    return UnitOfWork(session_factory)


@pytest.fixture
def products() -> FakeProductService:
    return FakeProductService()


@pytest_asyncio.fixture
async def client(session_factory, products):
    from order_service.main import app
    from order_service.database import get_session_factory
    from order_service.presentation.api import get_product_service

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_product_service] = lambda: products
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
