import logging
from datetime import timedelta

from order_service.domain.models import CheckoutStatus, utcnow
from order_service.application.interfaces import ProductService
from order_service.application.checkout import compensate

logger = logging.getLogger(__name__)


class RetryCompensationsUseCase:
    def __init__(self, unit_of_work, product_service: ProductService, stale_after_seconds: int = 600):
        self._uow = unit_of_work
        self._products = product_service
        self._stale_after = timedelta(seconds=stale_after_seconds)

    async def __call__(self, limit: int = 10) -> int:
        """Повторяет отмены из журнала оформления. Возвращает число полностью откатанных оформлений"""

        async with self._uow() as uow:
            pending = await uow.checkouts.get_by_status(CheckoutStatus.COMPENSATION_FAILED, limit=limit)
            # Долг записан, но процесс упал до или во время отмен
            pending += await uow.checkouts.get_by_status(
                CheckoutStatus.PURCHASE_FAILED, limit=limit, updated_before=utcnow() - self._stale_after
            )

        settled = 0
        for checkout in pending:
            remaining = await compensate(self._uow, self._products, checkout)
            if not remaining:
                settled += 1
                logger.info(f"Оформление {checkout.id} полностью откатано")

        await self._report_stale(limit)
        return settled

    async def _report_stale(self, limit: int) -> None:
        # Оформление, зависшее в purchasing, остается после падения процесса посреди покупок
        async with self._uow() as uow:
            stale = await uow.checkouts.get_by_status(
                CheckoutStatus.PURCHASING, limit=limit, updated_before=utcnow() - self._stale_after
            )
        for checkout in stale:
            lines = ", ".join(f"{line.product_id} x{line.quantity}" for line in checkout.purchased) or "нет"
            logger.warning(
                f"Зависшее оформление {checkout.id} (корзина {checkout.cart_id}), куплено: {lines}"
            )
