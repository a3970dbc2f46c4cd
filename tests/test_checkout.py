from datetime import timedelta
from decimal import Decimal
import logging
import uuid

import httpx
import pytest

from order_service.application.carts import CreateCartUseCase, GetCartUseCase, AddCartItemUseCase
from order_service.application.checkout import CheckoutCartUseCase
from order_service.application.compensations import RetryCompensationsUseCase
from order_service.application.orders import ListOrdersUseCase
from order_service.domain.exceptions import CartNotFoundError
from order_service.domain.models import CheckoutRecord, CheckoutStatus, Order, PurchasedLine, new_id, utcnow
from order_service.domain.results import FailureKind
from order_service.infrastructure.http_clients import HTTPProductClient


async def _cart_with(uow, products, *lines):
    cart_id = await CreateCartUseCase(uow)()
    add = AddCartItemUseCase(uow, products)
    for product_id, quantity in lines:
        assert (await add(cart_id, product_id, quantity)).success
    return cart_id


async def _order_count(uow) -> int:
    return (await ListOrdersUseCase(uow)()).total_count


async def _checkouts_for(uow, status):
    async with uow() as tx:
        return await tx.checkouts.get_by_status(status, limit=100)


async def test_checkout_creates_order_and_retires_cart(uow, products):
    a, b, c = products.add_product("1.50"), products.add_product("2.00"), products.add_product("3.25")
    cart_id = await _cart_with(uow, products, (a, 1), (b, 2), (c, 3))

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    assert result.success
    order = result.data
    assert isinstance(order, Order)
    assert order.status == "Pending"
    assert [(i.product_id, i.quantity) for i in order.items] == [(a, 1), (b, 2), (c, 3)]
    assert all(item.purchase_response is not None for item in order.items)
    assert products.purchase_calls == [(a, 1), (b, 2), (c, 3)]
    assert products.cancel_calls == []
    assert await _order_count(uow) == 1
    with pytest.raises(CartNotFoundError):
        await GetCartUseCase(uow)(cart_id)

    async with uow() as tx:
        stored = await tx.orders.get_by_id(order.id)
    assert len(stored.items) == 3
    assert stored.items[0].purchase_response.transaction_id == "tx-1"


async def test_order_keeps_cart_price_not_purchase_amount(uow, products):
    product_id = products.add_product("4.00")
    cart_id = await _cart_with(uow, products, (product_id, 2))
    products.prices[product_id] = Decimal("99.00")

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    assert result.data.items[0].price_at_purchase == Decimal("4.00")


async def test_checkout_missing_cart(uow, products):
    result = await CheckoutCartUseCase(uow, products)(str(uuid.uuid4()))

    assert not result.success
    assert result.kind == FailureKind.NOT_FOUND
    assert result.message == "Cart not found or empty"
    assert products.purchase_calls == []


async def test_checkout_empty_cart(uow, products):
    cart_id = await CreateCartUseCase(uow)()

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    assert result.kind == FailureKind.INVALID
    assert await _order_count(uow) == 0
    assert (await GetCartUseCase(uow)(cart_id)).id == cart_id


async def test_partial_failure_compensates_earlier_purchases(uow, products):
    a, b = products.add_product(), products.add_product()
    cart_id = await _cart_with(uow, products, (a, 2), (b, 3))
    products.failing_purchases[b] = "Failed to purchase product: Conflict"

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    assert not result.success
    assert result.kind == FailureKind.UPSTREAM_FAILURE
    assert b in result.message
    assert "Conflict" in result.message
    assert products.cancel_calls == [(a, 2)]
    assert await _order_count(uow) == 0
    cart = await GetCartUseCase(uow)(cart_id)
    assert [(i.product_id, i.quantity) for i in cart.items] == [(a, 2), (b, 3)]

    [record] = await _checkouts_for(uow, CheckoutStatus.COMPENSATED)
    assert record.cart_id == cart_id
    assert record.failed_product_id == b
    assert [(l.product_id, l.quantity) for l in record.purchased] == [(a, 2)]
    assert record.owed == []


async def test_failure_on_first_item_issues_no_cancels(uow, products):
    a, b = products.add_product(), products.add_product()
    cart_id = await _cart_with(uow, products, (a, 1), (b, 1))
    products.failing_purchases[a] = "Service Unavailable"

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    assert not result.success
    assert products.purchase_calls == [(a, 1)]
    assert products.cancel_calls == []


async def test_compensations_run_most_recent_first(uow, products):
    a, b, c = products.add_product(), products.add_product(), products.add_product()
    cart_id = await _cart_with(uow, products, (a, 1), (b, 2), (c, 3))
    products.failing_purchases[c] = "Gone"

    await CheckoutCartUseCase(uow, products)(cart_id)

    assert products.cancel_calls == [(b, 2), (a, 1)]


async def test_failed_cancel_is_recorded_and_retried(uow, products):
    a, b = products.add_product(), products.add_product()
    cart_id = await _cart_with(uow, products, (a, 2), (b, 3))
    products.failing_purchases[b] = "Out of stock"
    products.failing_cancels.add(a)

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    assert not result.success
    [record] = await _checkouts_for(uow, CheckoutStatus.COMPENSATION_FAILED)
    assert [(l.product_id, l.quantity) for l in record.owed] == [(a, 2)]

    products.failing_cancels.clear()
    settled = await RetryCompensationsUseCase(uow, products)()

    assert settled == 1
    assert products.cancel_calls == [(a, 2), (a, 2)]
    assert await _checkouts_for(uow, CheckoutStatus.COMPENSATION_FAILED) == []
    [record] = await _checkouts_for(uow, CheckoutStatus.COMPENSATED)
    assert record.owed == []


async def test_cart_modified_during_checkout_is_a_conflict(uow, products):
    a, late = products.add_product(), products.add_product()
    cart_id = await _cart_with(uow, products, (a, 1))

    async def add_during_purchase(product_id, quantity):
        products.on_purchase = None
        assert (await AddCartItemUseCase(uow, products)(cart_id, late, 1)).success

    products.on_purchase = add_during_purchase

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    assert not result.success
    assert result.kind == FailureKind.CONFLICT
    assert products.cancel_calls == [(a, 1)]
    assert await _order_count(uow) == 0
    cart = await GetCartUseCase(uow)(cart_id)
    assert {item.product_id for item in cart.items} == {a, late}


async def test_successful_checkout_is_logged_as_completed(uow, products):
    cart_id = await _cart_with(uow, products, (products.add_product(), 1))

    result = await CheckoutCartUseCase(uow, products)(cart_id)

    [record] = await _checkouts_for(uow, CheckoutStatus.COMPLETED)
    assert record.order_id == result.data.id
    assert record.cart_id == cart_id


async def _log_checkout(uow, status, *, owed=(), purchased=(), age_seconds=3600):
    at = utcnow() - timedelta(seconds=age_seconds)
    record = CheckoutRecord(
        id=new_id(),
        cart_id=new_id(),
        cart_version=1,
        status=status,
        purchased=[PurchasedLine(product_id=p, quantity=q) for p, q in purchased],
        owed=[PurchasedLine(product_id=p, quantity=q) for p, q in owed],
        created_at=at,
        updated_at=at
    )
    async with uow() as tx:
        await tx.checkouts.create(record)
        await tx.commit()
    return record.id


async def test_interrupted_compensation_is_resumed(uow, products):
    a, b = products.add_product(), products.add_product()
    checkout_id = await _log_checkout(uow, CheckoutStatus.PURCHASE_FAILED, owed=[(b, 3), (a, 2)], purchased=[(a, 2), (b, 3)])

    settled = await RetryCompensationsUseCase(uow, products, stale_after_seconds=60)()

    assert settled == 1
    assert products.cancel_calls == [(b, 3), (a, 2)]
    async with uow() as tx:
        record = await tx.checkouts.get_by_id(checkout_id)
    assert record.status == CheckoutStatus.COMPENSATED
    assert record.owed == []


async def test_fresh_purchase_failed_record_is_left_to_its_checkout(uow, products):
    a = products.add_product()
    checkout_id = await _log_checkout(uow, CheckoutStatus.PURCHASE_FAILED, owed=[(a, 1)], age_seconds=0)

    settled = await RetryCompensationsUseCase(uow, products, stale_after_seconds=600)()

    assert settled == 0
    assert products.cancel_calls == []
    async with uow() as tx:
        assert (await tx.checkouts.get_by_id(checkout_id)).status == CheckoutStatus.PURCHASE_FAILED


async def test_successful_cancels_are_recorded_one_by_one(uow, products):
    a, b, c = products.add_product(), products.add_product(), products.add_product()
    checkout_id = await _log_checkout(uow, CheckoutStatus.PURCHASE_FAILED, owed=[(c, 1), (b, 1), (a, 1)])
    products.failing_cancels.add(b)

    await RetryCompensationsUseCase(uow, products, stale_after_seconds=60)()

    async with uow() as tx:
        record = await tx.checkouts.get_by_id(checkout_id)
    assert record.status == CheckoutStatus.COMPENSATION_FAILED
    assert [(l.product_id, l.quantity) for l in record.owed] == [(b, 1)]


async def test_stale_purchasing_checkout_is_reported(uow, products, caplog):
    a = products.add_product()
    stale_id = await _log_checkout(uow, CheckoutStatus.PURCHASING, purchased=[(a, 2)])
    fresh_id = await _log_checkout(uow, CheckoutStatus.PURCHASING, age_seconds=0)
    caplog.set_level(logging.WARNING, logger="order_service.application.compensations")

    settled = await RetryCompensationsUseCase(uow, products, stale_after_seconds=600)()

    assert settled == 0
    assert products.cancel_calls == []
    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any(stale_id in message and f"{a} x2" in message for message in warnings)
    assert not any(fresh_id in message for message in warnings)
    async with uow() as tx:
        assert (await tx.checkouts.get_by_id(stale_id)).status == CheckoutStatus.PURCHASING


def _http_products(routes):
    def handler(request: httpx.Request) -> httpx.Response:
        action = request.url.path.rsplit("/", 1)[-1]
        product_id = request.url.path.split("/")[-2]
        return routes(action, product_id)

    return HTTPProductClient("http://products.test/api", transport=httpx.MockTransport(handler))


async def test_confirmed_purchase_with_unreadable_receipt_is_cancelled(uow, products):
    a, b = products.add_product(), products.add_product()
    cart_id = await _cart_with(uow, products, (a, 2), (b, 1))
    calls = []

    def routes(action, product_id):
        calls.append((action, product_id))
        if action == "purchase" and product_id == a:
            return httpx.Response(200, text="<html>ok</html>")
        if action == "purchase":
            return httpx.Response(409)
        return httpx.Response(204)

    result = await CheckoutCartUseCase(uow, _http_products(routes))(cart_id)

    assert not result.success
    assert calls == [("purchase", a), ("purchase", b), ("cancel", a)]
    [record] = await _checkouts_for(uow, CheckoutStatus.COMPENSATED)
    assert [(l.product_id, l.quantity) for l in record.purchased] == [(a, 2)]


async def test_order_items_keep_a_receipt_when_purchase_body_is_empty(uow, products):
    cart_id = await _cart_with(uow, products, (products.add_product(), 1), (products.add_product(), 2))

    result = await CheckoutCartUseCase(uow, _http_products(lambda action, product_id: httpx.Response(200)))(cart_id)

    assert result.success
    async with uow() as tx:
        stored = await tx.orders.get_by_id(result.data.id)
    assert [item.purchase_response.success for item in stored.items] == [True, True]
