import logging
from typing import List, Optional

from order_service.domain.models import (
    Cart, Order, OrderItem, CheckoutRecord, CheckoutStatus, PurchasedLine, PurchaseResponse, new_id, utcnow
)
from order_service.domain.results import ServiceResult, FailureKind
from order_service.application.interfaces import ProductService


logger = logging.getLogger(__name__)


class CheckoutCartUseCase:
    """
    Оформление корзины в заказ.

    Покупки в Product Service не транзакционны, поэтому use case ведет сагу:
    журнал checkouts фиксируется до первой покупки и после каждой успешной,
    а при сбое на позиции i уже купленные позиции 0..i-1 отменяются
    (в обратном порядке). Непрошедшие отмены остаются в журнале как долг
    для RetryCompensationsUseCase.

    Заказ сохраняется, корзина удаляется (с проверкой версии) и журнал
    закрывается одной транзакцией: либо вся корзина стала заказом, либо ничего.
    """

    def __init__(self, unit_of_work, product_service: ProductService):
        self._uow = unit_of_work
        self._products = product_service

    async def __call__(self, cart_id: str) -> ServiceResult:
        try:
            return await self._checkout(cart_id)
        except Exception as e:
            logger.error(f"Ошибка оформления корзины {cart_id}: {e}", exc_info=True)
            return ServiceResult.fail(f"An error occurred during checkout: {e}", FailureKind.FAULT)

    async def _checkout(self, cart_id: str) -> ServiceResult:
        async with self._uow() as uow:
            cart = await uow.carts.get_by_id(cart_id)

        if cart is None:
            return ServiceResult.fail("Cart not found or empty", FailureKind.NOT_FOUND)
        if cart.is_empty():
            return ServiceResult.fail("Cart not found or empty", FailureKind.INVALID)

        checkout = CheckoutRecord.start(cart)
        async with self._uow() as uow:
            await uow.checkouts.create(checkout)
            await uow.commit()
        logger.info(f"Оформление {checkout.id}: корзина {cart.id}, позиций {len(cart.items)}")

        receipts: List[PurchaseResponse] = []
        for index, item in enumerate(cart.items):
            result = await self._products.purchase(item.product_id, item.quantity, item.price_at_purchase)
            if not result.success:
                logger.warning(f"Оформление {checkout.id}: покупка {item.product_id} (#{index}) не прошла: {result.message}")
                message = f"Failed to purchase product {item.product_id}: {result.message}"
                return await self._abort(checkout, message, FailureKind.UPSTREAM_FAILURE, item.product_id)

            # У позиции заказа, созданной успешной покупкой, квитанция есть всегда
            receipt = result.data if isinstance(result.data, PurchaseResponse) else None
            receipts.append(receipt or PurchaseResponse(success=True, message=result.message))
            checkout.purchased.append(PurchasedLine(product_id=item.product_id, quantity=item.quantity))
            async with self._uow() as uow:
                await uow.checkouts.update(checkout)
                await uow.commit()
            logger.info(f"Оформление {checkout.id}: куплено {item.product_id} x{item.quantity}")

        order = self._build_order(cart, receipts)
        try:
            async with self._uow() as uow:
                await uow.orders.save(order)
                retired = await uow.carts.delete(cart.id, expected_version=cart.version)
                if retired:
                    checkout.status = CheckoutStatus.COMPLETED
                    checkout.order_id = order.id
                    await uow.checkouts.update(checkout)
                    await uow.commit()
        except Exception as e:
            logger.error(f"Оформление {checkout.id}: не удалось сохранить заказ: {e}", exc_info=True)
            checkout.order_id = None
            return await self._abort(checkout, f"Failed to save order: {e}", FailureKind.FAULT)

        if not retired:
            # Корзину изменили или удалили во время покупок: заказ не создаем
            logger.warning(f"Оформление {checkout.id}: корзина {cart.id} изменена во время оформления")
            return await self._abort(
                checkout,
                "Cart was modified during checkout. All purchases have been cancelled.",
                FailureKind.CONFLICT
            )

        logger.info(f"Заказ создан: {order.id} из корзины {cart.id}")
        return ServiceResult.ok("Order is confirmed", order)

    def _build_order(self, cart: Cart, receipts: List[PurchaseResponse]) -> Order:
        # Цена берется из корзины, а не из ответа покупки
        items = [
            OrderItem(
                id=new_id(),
                product_id=item.product_id,
                quantity=item.quantity,
                price_at_purchase=item.price_at_purchase,
                position=position,
                purchase_response=receipt
            )
            for position, (item, receipt) in enumerate(zip(cart.items, receipts))
        ]
        return Order(id=new_id(), created_at=utcnow(), items=items)

    async def _abort(
        self,
        checkout: CheckoutRecord,
        message: str,
        kind: FailureKind,
        failed_product_id: Optional[str] = None
    ) -> ServiceResult:
        checkout.status = CheckoutStatus.PURCHASE_FAILED
        checkout.failed_product_id = failed_product_id
        checkout.error = message
        checkout.owed = list(reversed(checkout.purchased))
        async with self._uow() as uow:
            await uow.checkouts.update(checkout)
            await uow.commit()

        remaining = await compensate(self._uow, self._products, checkout)

        if remaining:
            logger.error(f"Оформление {checkout.id}: не отменено позиций {len(remaining)}, повтор в фоне")
        return ServiceResult.fail(message, kind)


async def compensate(unit_of_work, products: ProductService, checkout: CheckoutRecord) -> List[PurchasedLine]:
    """
    Отменяет покупки из checkout.owed и фиксирует итог в журнале.

    Каждая успешная отмена сразу убирается из owed, чтобы после падения
    повтор не отменял ее второй раз. Возвращает то, что отменить не удалось.
    """
    remaining = []
    for line in list(checkout.owed):
        result = await products.cancel_purchase(line.product_id, line.quantity)
        if not result.success:
            logger.error(f"Оформление {checkout.id}: отмена {line.product_id} не прошла: {result.message}")
            remaining.append(line)
            continue

        logger.info(f"Оформление {checkout.id}: отменена покупка {line.product_id} x{line.quantity}")
        checkout.owed = remaining + checkout.owed[len(remaining) + 1:]
        async with unit_of_work() as uow:
            await uow.checkouts.update(checkout)
            await uow.commit()

    checkout.settle(remaining)
    async with unit_of_work() as uow:
        await uow.checkouts.update(checkout)
        await uow.commit()
    return remaining
