import httpx
import logging
from decimal import Decimal
from typing import Optional

from order_service.application.interfaces import ProductService
from order_service.domain.models import AvailabilityInfo, PurchaseResponse
from order_service.domain.results import ServiceResult, FailureKind
from order_service.domain.exceptions import ProductServiceError

logger = logging.getLogger(__name__)


class HTTPProductClient(ProductService):
    """Клиент Product Service. Наружу не выпускает ни одной ошибки транспорта"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def check_availability(self, product_id: str) -> ServiceResult:
        try:
            response = await self._request("GET", f"/Product/{product_id}/availability")
            if not response.content:
                return ServiceResult.fail("Product availability response is empty.", FailureKind.UPSTREAM_FAILURE)
            availability = AvailabilityInfo.model_validate(response.json())
            return ServiceResult.ok("Product availability checked successfully", availability)

        except ProductServiceError as e:
            return self._failure(f"Failed to check product availability: {e}")
        except (httpx.HTTPError, ValueError) as e:
            return self._failure(f"Error checking product availability: {e}")

    async def purchase(self, product_id: str, quantity: int, price_at_purchase: Decimal = Decimal("0")) -> ServiceResult:
        try:
            response = await self._request(
                "POST",
                f"/Product/{product_id}/purchase",
                json={"quantity": quantity, "priceAtPurchase": float(price_at_purchase)}
            )
        except ProductServiceError as e:
            return self._failure(f"Failed to purchase product: {e}")
        except httpx.HTTPError as e:
            return self._failure(f"Error purchasing product: {e}")

        # После 2xx покупка состоялась, даже если квитанцию прочитать не удалось
        return ServiceResult.ok("Product purchased successfully", self._read_receipt(response, product_id))

    def _read_receipt(self, response: httpx.Response, product_id: str) -> PurchaseResponse:
        if not response.content:
            return PurchaseResponse(success=True, message="Purchase confirmed without receipt.")
        try:
            return PurchaseResponse.model_validate(response.json())
        except ValueError as e:
            logger.warning(f"Нечитаемая квитанция покупки {product_id}: {e}")
            return PurchaseResponse(success=True, message="Purchase confirmed, receipt unreadable.")

    async def cancel_purchase(self, product_id: str, quantity: int) -> ServiceResult:
        try:
            await self._request("POST", f"/Product/{product_id}/cancel", json={"quantity": quantity})
            return ServiceResult.ok("Purchase cancelled successfully")

        except ProductServiceError as e:
            return self._failure(f"Failed to cancel purchase: {e}")
        except httpx.HTTPError as e:
            return self._failure(f"Error cancelling purchase: {e}")

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> httpx.Response:
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            response = await client.request(
                method,
                f"{self._base_url}{path}",
                json=json,
                headers={"Content-Type": "application/json"}
            )

        if not response.is_success:
            logger.warning(f"Product service вернул {response.status_code} на {method} {path}")
            raise ProductServiceError(response.reason_phrase or str(response.status_code))
        return response

    def _failure(self, message: str) -> ServiceResult:
        logger.error(f"Product service ошибка: {message}")
        return ServiceResult.fail(message, FailureKind.UPSTREAM_FAILURE)
