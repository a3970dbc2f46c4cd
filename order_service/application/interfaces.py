from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from order_service.domain.models import Cart, CartItem, Order, CheckoutRecord, CheckoutStatus
from order_service.domain.results import ServiceResult


class CartRepository(ABC):
    @abstractmethod
    async def create(self, cart: Cart) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, cart_id: str) -> Optional[Cart]:
        """Корзина вместе с позициями (упорядочены по position)"""
        pass

    @abstractmethod
    async def list(self, page: int, page_size: int) -> List[Cart]:
        pass

    @abstractmethod
    async def add_item(self, cart: Cart, item: CartItem) -> bool:
        pass

    @abstractmethod
    async def update_item(self, cart: Cart, item: CartItem) -> bool:
        pass

    @abstractmethod
    async def remove_item(self, cart: Cart, item_id: str) -> bool:
        pass

    @abstractmethod
    async def delete(self, cart_id: str, expected_version: Optional[int] = None) -> bool:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def save(self, order: Order) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list(self, page: int, page_size: int) -> List[Order]:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def update(self, order: Order) -> bool:
        pass

    @abstractmethod
    async def delete(self, order_id: str) -> bool:
        pass


class CheckoutRepository(ABC):
    @abstractmethod
    async def create(self, record: CheckoutRecord) -> None:
        pass

    @abstractmethod
    async def update(self, record: CheckoutRecord) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, checkout_id: str) -> Optional[CheckoutRecord]:
        pass

    @abstractmethod
    async def get_by_status(
        self, status: CheckoutStatus, limit: int = 10, updated_before: Optional[datetime] = None
    ) -> List[CheckoutRecord]:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def carts(self) -> CartRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def checkouts(self) -> CheckoutRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class ProductService(ABC):
    """Product Service. Ошибки транспорта возвращаются как ServiceResult.fail"""

    @abstractmethod
    async def check_availability(self, product_id: str) -> ServiceResult:
        pass

    @abstractmethod
    async def purchase(self, product_id: str, quantity: int, price_at_purchase: Decimal = Decimal("0")) -> ServiceResult:
        pass

    @abstractmethod
    async def cancel_purchase(self, product_id: str, quantity: int) -> ServiceResult:
        pass
