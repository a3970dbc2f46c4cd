import logging
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from order_service.domain.models import Order, OrderItem, PurchaseResponse, DEFAULT_ORDER_STATUS, new_id, utcnow
from order_service.domain.results import ServiceResult, FailureKind
from order_service.domain.exceptions import OrderNotFoundError


logger = logging.getLogger(__name__)


class CreateOrderItemDTO(BaseModel):
    id: Optional[str] = None
    product_id: str
    quantity: int
    price_at_purchase: Decimal
    purchase_response: Optional[PurchaseResponse] = None


class CreateOrderDTO(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    items: List[CreateOrderItemDTO] = Field(default_factory=list)


class OrdersPage(BaseModel):
    orders: List[Order]
    page: int
    page_size: int
    total_count: int


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Заказ {order_id} не найден")
            return order


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, page: int = 1, page_size: int = 10) -> OrdersPage:
        page, page_size = max(page, 1), max(page_size, 1)
        async with self._uow() as uow:
            orders = await uow.orders.list(page, page_size)
            total = await uow.orders.count()
        return OrdersPage(orders=orders, page=page, page_size=page_size, total_count=total)


class CreateOrderUseCase:
    """Прямое создание заказа (минуя корзину)"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, dto: CreateOrderDTO) -> ServiceResult:
        if any(item.quantity <= 0 for item in dto.items):
            return ServiceResult.fail("Item quantity must be greater than zero", FailureKind.INVALID)

        order = Order(
            id=dto.id or new_id(),
            created_at=utcnow(),
            status=(dto.status or "").strip() or DEFAULT_ORDER_STATUS,
            items=[
                OrderItem(
                    id=item.id or new_id(),
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_at_purchase=item.price_at_purchase,
                    position=position,
                    purchase_response=item.purchase_response
                )
                for position, item in enumerate(dto.items)
            ]
        )

        try:
            async with self._uow() as uow:
                await uow.orders.save(order)
                await uow.commit()
        except IntegrityError:
            logger.warning(f"Заказ {order.id} уже существует")
            return ServiceResult.fail(f"Order {order.id} already exists", FailureKind.CONFLICT)
        except Exception as e:
            logger.error(f"Ошибка создания заказа: {e}", exc_info=True)
            return ServiceResult.fail(f"An error occurred while creating order: {e}", FailureKind.FAULT)

        logger.info(f"Заказ создан: {order.id}")
        return ServiceResult.ok("Order created successfully.", order)


class UpdateOrderStatusUseCase:
    """Единственное изменяемое поле заказа: статус"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, status: Optional[str]) -> ServiceResult:
        status = (status or "").strip()
        if not status:
            return ServiceResult.fail("Status cannot be empty", FailureKind.INVALID)
        if len(status) > 50:
            return ServiceResult.fail("Status is too long", FailureKind.INVALID)

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                return ServiceResult.fail("Order not found.", FailureKind.NOT_FOUND)

            previous = order.status
            order.status = status
            if not await uow.orders.update(order):
                return ServiceResult.fail(
                    "Failed to update order status. The order may have been modified.", FailureKind.CONFLICT
                )
            await uow.commit()

        logger.info(f"Заказ {order_id}: статус {previous} -> {status}")
        return ServiceResult.ok("Order status updated successfully.", order)


class DeleteOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str) -> ServiceResult:
        async with self._uow() as uow:
            deleted = await uow.orders.delete(order_id)
            await uow.commit()

        if not deleted:
            return ServiceResult.fail("Order not found or could not be deleted.", FailureKind.NOT_FOUND)
        logger.info(f"Заказ удален: {order_id}")
        return ServiceResult.ok("Order deleted successfully.")
