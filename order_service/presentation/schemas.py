from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from order_service.domain.models import Cart, Order, PurchaseResponse
from order_service.domain.results import ServiceResult, FailureKind
from order_service.application.orders import CreateOrderDTO, CreateOrderItemDTO, OrdersPage


class CamelModel(BaseModel):
    """JSON в camelCase, в Python snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartItemRequest(CamelModel):
    product_id: UUID
    quantity: int


class UpdateCartItemRequest(CamelModel):
    quantity: int


class CartCreationResponse(CamelModel):
    cart_id: str


class UpdateOrderStatusRequest(CamelModel):
    status: str = ""


class CartItemDto(CamelModel):
    id: str
    product_id: str
    quantity: int
    price_at_purchase: Decimal


class CartDto(CamelModel):
    id: str
    created_at: datetime
    items: List[CartItemDto] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, cart: Cart):
        return cls(
            id=cart.id,
            created_at=cart.created_at,
            items=[
                CartItemDto(
                    id=item.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_at_purchase=item.price_at_purchase
                )
                for item in cart.items
            ]
        )


class OrderItemDto(CamelModel):
    id: Optional[UUID] = None
    product_id: str
    quantity: int
    price_at_purchase: Decimal
    purchase_response: Optional[PurchaseResponse] = None


class OrderDto(CamelModel):
    id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    status: str = ""
    items: List[OrderItemDto] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            id=order.id,
            created_at=order.created_at,
            status=order.status,
            items=[
                OrderItemDto(
                    id=item.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_at_purchase=item.price_at_purchase,
                    purchase_response=item.purchase_response
                )
                for item in order.items
            ]
        )

    def to_create_dto(self) -> CreateOrderDTO:
        return CreateOrderDTO(
            id=str(self.id) if self.id else None,
            status=self.status,
            items=[
                CreateOrderItemDTO(
                    id=str(item.id) if item.id else None,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_at_purchase=item.price_at_purchase,
                    purchase_response=item.purchase_response
                )
                for item in self.items
            ]
        )


class OrdersListDto(CamelModel):
    orders: List[OrderDto]
    page: int
    page_size: int
    total_count: int

    @classmethod
    def from_page(cls, page: OrdersPage):
        return cls(
            orders=[OrderDto.from_domain(order) for order in page.orders],
            page=page.page,
            page_size=page.page_size,
            total_count=page.total_count
        )


class ServiceResultResponse(CamelModel):
    success: bool
    message: str
    kind: Optional[FailureKind] = None
    data: Any = None

    @classmethod
    def from_result(cls, result: ServiceResult, data: Any = None):
        return cls(success=result.success, message=result.message, kind=result.kind, data=data)


class ErrorResponse(BaseModel):
    detail: str
