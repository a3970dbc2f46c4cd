import logging
from typing import List

from order_service.domain.models import Cart, CartItem, AvailabilityInfo, new_id
from order_service.domain.results import ServiceResult, FailureKind
from order_service.domain.exceptions import CartNotFoundError
from order_service.application.interfaces import ProductService


logger = logging.getLogger(__name__)


class CreateCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> str:
        cart = Cart.new()
        async with self._uow() as uow:
            await uow.carts.create(cart)
            await uow.commit()
        logger.info(f"Корзина создана: {cart.id}")
        return cart.id


class GetCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, cart_id: str) -> Cart:
        async with self._uow() as uow:
            cart = await uow.carts.get_by_id(cart_id)
            if not cart:
                raise CartNotFoundError(f"Корзина {cart_id} не найдена")
            return cart


class ListCartsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, page: int = 1, page_size: int = 10) -> List[Cart]:
        async with self._uow() as uow:
            return await uow.carts.list(max(page, 1), max(page_size, 1))


class DeleteCartUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, cart_id: str) -> ServiceResult:
        async with self._uow() as uow:
            deleted = await uow.carts.delete(cart_id)
            await uow.commit()

        if not deleted:
            return ServiceResult.fail("Cart not found.", FailureKind.NOT_FOUND)
        logger.info(f"Корзина удалена: {cart_id}")
        return ServiceResult.ok("Cart deleted successfully.")


class AddCartItemUseCase:
    """Добавление товара: проверка доступности, затем одна мутация (insert или update)"""

    def __init__(self, unit_of_work, product_service: ProductService):
        self._uow = unit_of_work
        self._products = product_service

    async def __call__(self, cart_id: str, product_id: str, quantity: int) -> ServiceResult:
        if quantity <= 0:
            return ServiceResult.fail("Quantity must be greater than zero", FailureKind.INVALID)

        try:
            async with self._uow() as uow:
                cart = await uow.carts.get_by_id(cart_id)
            if not cart:
                return ServiceResult.fail("Cart not found.", FailureKind.NOT_FOUND)

            # Сетевой вызов вне транзакции; гонку ловит версия корзины
            availability_result = await self._products.check_availability(product_id)
            if not availability_result.success:
                return availability_result

            availability = availability_result.data
            if not isinstance(availability, AvailabilityInfo) or not availability.is_available:
                logger.info(f"Товар {product_id} недоступен")
                return ServiceResult.fail("Product is not available.", FailureKind.INVALID)

            existing = cart.find_item(product_id)
            async with self._uow() as uow:
                if existing:
                    existing.quantity += quantity
                    saved = await uow.carts.update_item(cart, existing)
                    failure = "Failed to update cart item. The item may have been modified."
                else:
                    item = CartItem(
                        id=new_id(),
                        cart_id=cart.id,
                        product_id=product_id,
                        quantity=quantity,
                        price_at_purchase=availability.current_price,
                        position=cart.next_position()
                    )
                    saved = await uow.carts.add_item(cart, item)
                    failure = "Failed to add item to cart. The cart may have been modified."

                if not saved:
                    logger.warning(f"Конфликт версий корзины {cart_id} при добавлении {product_id}")
                    return ServiceResult.fail(failure, FailureKind.CONFLICT)
                await uow.commit()

            logger.info(f"Товар {product_id} x{quantity} добавлен в корзину {cart_id}")
            return ServiceResult.ok("Item added to cart successfully.")

        except Exception as e:
            logger.error(f"Ошибка добавления товара в корзину {cart_id}: {e}", exc_info=True)
            return ServiceResult.fail(f"An error occurred while adding item to cart: {e}", FailureKind.FAULT)


class UpdateCartItemUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, cart_id: str, product_id: str, quantity: int) -> ServiceResult:
        if quantity < 0:
            return ServiceResult.fail("Quantity cannot be negative", FailureKind.INVALID)

        try:
            async with self._uow() as uow:
                cart = await uow.carts.get_by_id(cart_id)
                if not cart:
                    return ServiceResult.fail("Cart not found.", FailureKind.NOT_FOUND)

                item = cart.find_item(product_id)
                if not item:
                    return ServiceResult.fail("Item not found in cart.", FailureKind.NOT_FOUND)

                # Нулевое количество означает удаление позиции, а не строка с quantity=0
                if quantity == 0:
                    saved = await uow.carts.remove_item(cart, item.id)
                    message = "Item removed from cart successfully."
                else:
                    item.quantity = quantity
                    saved = await uow.carts.update_item(cart, item)
                    message = "Cart item updated successfully."

                if not saved:
                    return ServiceResult.fail(
                        "Failed to update cart item. The cart may have been modified.", FailureKind.CONFLICT
                    )
                await uow.commit()

            logger.info(f"Позиция {product_id} в корзине {cart_id}: количество {quantity}")
            return ServiceResult.ok(message)

        except Exception as e:
            logger.error(f"Ошибка обновления позиции корзины {cart_id}: {e}", exc_info=True)
            return ServiceResult.fail(f"An error occurred while updating cart item: {e}", FailureKind.FAULT)


class RemoveCartItemUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, cart_id: str, product_id: str) -> ServiceResult:
        try:
            async with self._uow() as uow:
                cart = await uow.carts.get_by_id(cart_id)
                if not cart:
                    return ServiceResult.fail("Cart not found.", FailureKind.NOT_FOUND)

                item = cart.find_item(product_id)
                if not item:
                    return ServiceResult.fail("Item not found in cart.", FailureKind.NOT_FOUND)

                if not await uow.carts.remove_item(cart, item.id):
                    return ServiceResult.fail(
                        "Failed to update cart. The cart may have been modified.", FailureKind.CONFLICT
                    )
                await uow.commit()

            logger.info(f"Товар {product_id} удален из корзины {cart_id}")
            return ServiceResult.ok("Item removed from cart successfully.")

        except Exception as e:
            logger.error(f"Ошибка удаления товара из корзины {cart_id}: {e}", exc_info=True)
            return ServiceResult.fail(f"An error occurred while removing item from cart: {e}", FailureKind.FAULT)
