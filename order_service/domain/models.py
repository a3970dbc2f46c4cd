from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


DEFAULT_ORDER_STATUS = "Pending"


class CartItem(BaseModel):
    """Позиция корзины. Цена фиксируется при добавлении"""
    id: str
    cart_id: str
    product_id: str
    quantity: int
    price_at_purchase: Decimal
    position: int = 0


class Cart(BaseModel):
    """Domain Entity — корзина"""
    id: str
    created_at: datetime
    version: int = 1
    items: List[CartItem] = Field(default_factory=list)

    @classmethod
    def new(cls) -> "Cart":
        return cls(id=new_id(), created_at=utcnow())

    def find_item(self, product_id: str) -> Optional[CartItem]:
        return next((item for item in self.items if item.product_id == product_id), None)

    def next_position(self) -> int:
        return max((item.position for item in self.items), default=-1) + 1

    def is_empty(self) -> bool:
        return not self.items


class AvailabilityInfo(BaseModel):
    """Value Object — ответ Product Service о доступности товара"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: Optional[str] = None
    is_available: bool = False
    current_price: Decimal = Decimal("0")


class PurchaseResponse(BaseModel):
    """Value Object — квитанция о покупке из Product Service"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    transaction_id: Optional[str] = None
    external_id: Optional[str] = None
    confirmation_code: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    timestamp: Optional[datetime] = None
    provider: Optional[str] = None
    success: bool = True
    message: Optional[str] = None


class OrderItem(BaseModel):
    id: str
    product_id: str
    quantity: int
    price_at_purchase: Decimal
    position: int = 0
    purchase_response: Optional[PurchaseResponse] = None


class Order(BaseModel):
    """Domain Entity — заказ. Позиции неизменяемы после создания"""
    id: str
    created_at: datetime
    status: str = DEFAULT_ORDER_STATUS
    version: int = 1
    items: List[OrderItem] = Field(default_factory=list)


class CheckoutStatus(str, Enum):
    PURCHASING = "purchasing"
    PURCHASE_FAILED = "purchase_failed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"
    COMPLETED = "completed"


class PurchasedLine(BaseModel):
    """Купленная позиция, которую при откате нужно отменить"""
    product_id: str
    quantity: int


class CheckoutRecord(BaseModel):
    """Журнал оформления заказа: что куплено и какие отмены ещё должны"""
    id: str
    cart_id: str
    cart_version: int
    status: CheckoutStatus = CheckoutStatus.PURCHASING
    purchased: List[PurchasedLine] = Field(default_factory=list)
    owed: List[PurchasedLine] = Field(default_factory=list)
    failed_product_id: Optional[str] = None
    error: Optional[str] = None
    order_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def start(cls, cart: Cart) -> "CheckoutRecord":
        now = utcnow()
        return cls(
            id=new_id(),
            cart_id=cart.id,
            cart_version=cart.version,
            created_at=now,
            updated_at=now
        )

    def settle(self, remaining: List[PurchasedLine]) -> None:
        """Фиксирует результат отмен: либо всё отменено, либо остался долг"""
        self.owed = remaining
        self.status = CheckoutStatus.COMPENSATION_FAILED if remaining else CheckoutStatus.COMPENSATED
