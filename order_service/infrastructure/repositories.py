from typing import Optional, List, Dict
from datetime import datetime
from sqlalchemy import select, insert, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.domain.models import (
    Cart, CartItem, Order, OrderItem, PurchaseResponse, CheckoutRecord, CheckoutStatus, PurchasedLine, utcnow
)
from order_service.infrastructure.db_schema import (
    carts_tbl, cart_items_tbl, orders_tbl, order_items_tbl, checkouts_tbl
)
from order_service.application.interfaces import CartRepository, OrderRepository, CheckoutRepository


_cart_item_columns = (
    cart_items_tbl.c.id.label("item_id"),
    cart_items_tbl.c.product_id,
    cart_items_tbl.c.quantity,
    cart_items_tbl.c.price_at_purchase,
    cart_items_tbl.c.position,
)

_order_item_columns = (
    order_items_tbl.c.id.label("item_id"),
    order_items_tbl.c.product_id,
    order_items_tbl.c.quantity,
    order_items_tbl.c.price_at_purchase,
    order_items_tbl.c.position,
    order_items_tbl.c.purchase_transaction_id,
    order_items_tbl.c.purchase_external_id,
    order_items_tbl.c.purchase_confirmation_code,
    order_items_tbl.c.purchase_amount,
    order_items_tbl.c.purchase_currency,
    order_items_tbl.c.purchase_timestamp,
    order_items_tbl.c.purchase_provider,
    order_items_tbl.c.purchase_success,
    order_items_tbl.c.purchase_message,
)


class SQLAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, cart: Cart) -> None:
        await self._session.execute(
            insert(carts_tbl).values(id=cart.id, version=cart.version, created_at=cart.created_at)
        )
        if cart.items:
            await self._session.execute(insert(cart_items_tbl), [self._item_values(item) for item in cart.items])

    async def get_by_id(self, cart_id: str) -> Optional[Cart]:
        # Один запрос: корзина + позиции через LEFT JOIN
        result = await self._session.execute(
            select(carts_tbl, *_cart_item_columns)
            .select_from(carts_tbl.outerjoin(cart_items_tbl, cart_items_tbl.c.cart_id == carts_tbl.c.id))
            .where(carts_tbl.c.id == cart_id)
            .order_by(cart_items_tbl.c.position)
        )
        rows = result.fetchall()
        if not rows:
            return None
        items = [self._item_to_domain(row, cart_id) for row in rows if row.item_id is not None]
        return self._to_domain(rows[0], items)

    async def list(self, page: int, page_size: int) -> List[Cart]:
        result = await self._session.execute(
            select(carts_tbl)
            .order_by(carts_tbl.c.created_at.asc(), carts_tbl.c.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = result.fetchall()
        if not rows:
            return []

        items_result = await self._session.execute(
            select(cart_items_tbl.c.cart_id, *_cart_item_columns)
            .where(cart_items_tbl.c.cart_id.in_([row.id for row in rows]))
            .order_by(cart_items_tbl.c.position)
        )
        items_by_cart: Dict[str, List[CartItem]] = {}
        for item_row in items_result.fetchall():
            items_by_cart.setdefault(item_row.cart_id, []).append(
                self._item_to_domain(item_row, item_row.cart_id)
            )
        return [self._to_domain(row, items_by_cart.get(row.id, [])) for row in rows]

    async def add_item(self, cart: Cart, item: CartItem) -> bool:
        if not await self._bump_version(cart):
            return False
        await self._session.execute(insert(cart_items_tbl).values(**self._item_values(item)))
        return True

    async def update_item(self, cart: Cart, item: CartItem) -> bool:
        if not await self._bump_version(cart):
            return False
        result = await self._session.execute(
            update(cart_items_tbl)
            .where(cart_items_tbl.c.id == item.id, cart_items_tbl.c.cart_id == cart.id)
            .values(quantity=item.quantity)
        )
        return result.rowcount > 0

    async def remove_item(self, cart: Cart, item_id: str) -> bool:
        if not await self._bump_version(cart):
            return False
        result = await self._session.execute(
            delete(cart_items_tbl)
            .where(cart_items_tbl.c.id == item_id, cart_items_tbl.c.cart_id == cart.id)
        )
        return result.rowcount > 0

    async def delete(self, cart_id: str, expected_version: Optional[int] = None) -> bool:
        stmt = delete(carts_tbl).where(carts_tbl.c.id == cart_id)
        if expected_version is not None:
            stmt = stmt.where(carts_tbl.c.version == expected_version)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return False
        # Каскад на стороне БД есть не везде (SQLite без PRAGMA foreign_keys)
        await self._session.execute(delete(cart_items_tbl).where(cart_items_tbl.c.cart_id == cart_id))
        return True

    async def _bump_version(self, cart: Cart) -> bool:
        """Compare-and-set версии корзины"""
        result = await self._session.execute(
            update(carts_tbl)
            .where(carts_tbl.c.id == cart.id, carts_tbl.c.version == cart.version)
            .values(version=cart.version + 1)
        )
        if result.rowcount == 0:
            return False
        cart.version += 1
        return True

    def _item_values(self, item: CartItem) -> dict:
        return {
            "id": item.id,
            "cart_id": item.cart_id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "price_at_purchase": item.price_at_purchase,
            "position": item.position
        }

    def _item_to_domain(self, row, cart_id: str) -> CartItem:
        return CartItem(
            id=row.item_id,
            cart_id=cart_id,
            product_id=row.product_id,
            quantity=row.quantity,
            price_at_purchase=row.price_at_purchase,
            position=row.position
        )

    def _to_domain(self, row, items: List[CartItem]) -> Cart:
        """Трансформация DB → Domain"""
        return Cart(
            id=row.id,
            version=row.version,
            created_at=row.created_at,
            items=items
        )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def save(self, order: Order) -> None:
        await self._session.execute(
            insert(orders_tbl).values(
                id=order.id,
                version=order.version,
                status=order.status,
                created_at=order.created_at
            )
        )
        if order.items:
            await self._session.execute(
                insert(order_items_tbl),
                [self._item_values(order.id, item) for item in order.items]
            )

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl, *_order_item_columns)
            .select_from(orders_tbl.outerjoin(order_items_tbl, order_items_tbl.c.order_id == orders_tbl.c.id))
            .where(orders_tbl.c.id == order_id)
            .order_by(order_items_tbl.c.position)
        )
        rows = result.fetchall()
        if not rows:
            return None
        items = [self._item_to_domain(row) for row in rows if row.item_id is not None]
        return self._to_domain(rows[0], items)

    async def list(self, page: int, page_size: int) -> List[Order]:
        result = await self._session.execute(
            select(orders_tbl)
            .order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = result.fetchall()
        if not rows:
            return []

        items_result = await self._session.execute(
            select(order_items_tbl.c.order_id, *_order_item_columns)
            .where(order_items_tbl.c.order_id.in_([row.id for row in rows]))
            .order_by(order_items_tbl.c.position)
        )
        items_by_order: Dict[str, List[OrderItem]] = {}
        for item_row in items_result.fetchall():
            items_by_order.setdefault(item_row.order_id, []).append(self._item_to_domain(item_row))
        return [self._to_domain(row, items_by_order.get(row.id, [])) for row in rows]

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(orders_tbl))
        return result.scalar_one()

    async def update(self, order: Order) -> bool:
        result = await self._session.execute(
            update(orders_tbl)
            .where(orders_tbl.c.id == order.id, orders_tbl.c.version == order.version)
            .values(status=order.status, version=order.version + 1)
        )
        if result.rowcount == 0:
            return False
        order.version += 1
        return True

    async def delete(self, order_id: str) -> bool:
        result = await self._session.execute(delete(orders_tbl).where(orders_tbl.c.id == order_id))
        if result.rowcount == 0:
            return False
        await self._session.execute(delete(order_items_tbl).where(order_items_tbl.c.order_id == order_id))
        return True

    def _item_values(self, order_id: str, item: OrderItem) -> dict:
        receipt = item.purchase_response
        return {
            "id": item.id,
            "order_id": order_id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "price_at_purchase": item.price_at_purchase,
            "position": item.position,
            "purchase_transaction_id": receipt.transaction_id if receipt else None,
            "purchase_external_id": receipt.external_id if receipt else None,
            "purchase_confirmation_code": receipt.confirmation_code if receipt else None,
            "purchase_amount": receipt.amount if receipt else None,
            "purchase_currency": receipt.currency if receipt else None,
            "purchase_timestamp": receipt.timestamp if receipt else None,
            "purchase_provider": receipt.provider if receipt else None,
            "purchase_success": receipt.success if receipt else None,
            "purchase_message": receipt.message if receipt else None
        }

    def _item_to_domain(self, row) -> OrderItem:
        receipt = None
        if row.purchase_success is not None:
            receipt = PurchaseResponse(
                transaction_id=row.purchase_transaction_id,
                external_id=row.purchase_external_id,
                confirmation_code=row.purchase_confirmation_code,
                amount=row.purchase_amount,
                currency=row.purchase_currency,
                timestamp=row.purchase_timestamp,
                provider=row.purchase_provider,
                success=row.purchase_success,
                message=row.purchase_message
            )
        return OrderItem(
            id=row.item_id,
            product_id=row.product_id,
            quantity=row.quantity,
            price_at_purchase=row.price_at_purchase,
            position=row.position,
            purchase_response=receipt
        )

    def _to_domain(self, row, items: List[OrderItem]) -> Order:
        """Трансформация DB → Domain"""
        return Order(
            id=row.id,
            version=row.version,
            status=row.status,
            created_at=row.created_at,
            items=items
        )


class SQLAlchemyCheckoutRepository(CheckoutRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, record: CheckoutRecord) -> None:
        await self._session.execute(
            insert(checkouts_tbl).values(
                id=record.id,
                cart_id=record.cart_id,
                cart_version=record.cart_version,
                created_at=record.created_at,
                **self._progress_values(record)
            )
        )

    async def update(self, record: CheckoutRecord) -> None:
        record.updated_at = utcnow()
        await self._session.execute(
            update(checkouts_tbl)
            .where(checkouts_tbl.c.id == record.id)
            .values(**self._progress_values(record))
        )

    async def get_by_id(self, checkout_id: str) -> Optional[CheckoutRecord]:
        result = await self._session.execute(
            select(checkouts_tbl).where(checkouts_tbl.c.id == checkout_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_status(
        self, status: CheckoutStatus, limit: int = 10, updated_before: Optional[datetime] = None
    ) -> List[CheckoutRecord]:
        stmt = select(checkouts_tbl).where(checkouts_tbl.c.status == status.value)
        if updated_before is not None:
            stmt = stmt.where(checkouts_tbl.c.updated_at < updated_before)
        result = await self._session.execute(
            stmt.order_by(checkouts_tbl.c.updated_at.asc()).limit(limit)
        )
        return [self._to_domain(row) for row in result.fetchall()]

    def _progress_values(self, record: CheckoutRecord) -> dict:
        return {
            "status": record.status.value,
            "purchased": [line.model_dump() for line in record.purchased],
            "owed": [line.model_dump() for line in record.owed],
            "failed_product_id": record.failed_product_id,
            "error": record.error,
            "order_id": record.order_id,
            "updated_at": record.updated_at
        }

    def _to_domain(self, row) -> CheckoutRecord:
        return CheckoutRecord(
            id=row.id,
            cart_id=row.cart_id,
            cart_version=row.cart_version,
            status=CheckoutStatus(row.status),
            purchased=[PurchasedLine(**line) for line in row.purchased or []],
            owed=[PurchasedLine(**line) for line in row.owed or []],
            failed_product_id=row.failed_product_id,
            error=row.error,
            order_id=row.order_id,
            created_at=row.created_at,
            updated_at=row.updated_at
        )
