from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_service.database import get_session_factory
from order_service.presentation.schemas import (
    CartItemRequest, UpdateCartItemRequest, CartCreationResponse, CartDto,
    OrderDto, OrdersListDto, UpdateOrderStatusRequest, ServiceResultResponse, ErrorResponse
)
from order_service.application.carts import (
    CreateCartUseCase, GetCartUseCase, ListCartsUseCase, DeleteCartUseCase,
    AddCartItemUseCase, UpdateCartItemUseCase, RemoveCartItemUseCase
)
from order_service.application.checkout import CheckoutCartUseCase
from order_service.application.orders import (
    GetOrderUseCase, ListOrdersUseCase, CreateOrderUseCase, UpdateOrderStatusUseCase, DeleteOrderUseCase
)
from order_service.application.interfaces import ProductService
from order_service.domain.exceptions import CartNotFoundError, OrderNotFoundError
from order_service.domain.results import ServiceResult, FailureKind
from order_service.infrastructure.unit_of_work import UnitOfWork
from order_service.infrastructure.http_clients import HTTPProductClient
from order_service.config import settings

carts_router = APIRouter(prefix="/carts", tags=["carts"])
orders_router = APIRouter(prefix="/orders", tags=["orders"])


# Фабрики зависимостей
def get_unit_of_work(session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)):
    return UnitOfWork(session_factory)


def get_product_service() -> ProductService:
    return HTTPProductClient(settings.PRODUCT_SERVICE_BASE_URL, settings.PRODUCT_SERVICE_TIMEOUT)


def _raise_for_failure(result: ServiceResult, default_status: int = status.HTTP_400_BAD_REQUEST):
    """not_found → 404, conflict → 409, остальное → default_status"""
    if result.success:
        return
    if result.kind == FailureKind.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    if result.kind == FailureKind.CONFLICT:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)
    raise HTTPException(status_code=default_status, detail=result.message)


# --- Корзины ---

@carts_router.get("/{cart_id}", response_model=CartDto, responses={404: {"model": ErrorResponse}})
async def get_cart(cart_id: UUID, uow: UnitOfWork = Depends(get_unit_of_work)):
    """Получить корзину по ID"""
    try:
        cart = await GetCartUseCase(uow)(str(cart_id))
        return CartDto.from_domain(cart)
    except CartNotFoundError:
        raise HTTPException(status_code=404, detail="Cart not found")


@carts_router.post("", response_model=CartCreationResponse, status_code=status.HTTP_201_CREATED)
async def create_cart(uow: UnitOfWork = Depends(get_unit_of_work)):
    """Создать пустую корзину"""
    cart_id = await CreateCartUseCase(uow)()
    return CartCreationResponse(cart_id=cart_id)


@carts_router.get("", response_model=List[CartDto])
async def list_carts(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    carts = await ListCartsUseCase(uow)(page, page_size)
    return [CartDto.from_domain(cart) for cart in carts]


@carts_router.post(
    "/{cart_id}/items",
    response_model=ServiceResultResponse,
    responses={400: {"model": ErrorResponse}}
)
async def add_item(
    cart_id: UUID,
    request: CartItemRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    products: ProductService = Depends(get_product_service)
):
    """Добавить товар в корзину"""
    if request.quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be greater than zero")

    result = await AddCartItemUseCase(uow, products)(str(cart_id), str(request.product_id), request.quantity)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return ServiceResultResponse.from_result(result)


@carts_router.put(
    "/{cart_id}/items/{product_id}",
    response_model=ServiceResultResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_item(
    cart_id: UUID,
    product_id: UUID,
    request: UpdateCartItemRequest,
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Изменить количество товара (0 удаляет позицию)"""
    if request.quantity < 0:
        raise HTTPException(status_code=400, detail="Quantity cannot be negative")

    result = await UpdateCartItemUseCase(uow)(str(cart_id), str(product_id), request.quantity)
    _raise_for_failure(result)
    return ServiceResultResponse.from_result(result)


@carts_router.delete(
    "/{cart_id}/items/{product_id}",
    response_model=ServiceResultResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def remove_item(cart_id: UUID, product_id: UUID, uow: UnitOfWork = Depends(get_unit_of_work)):
    result = await RemoveCartItemUseCase(uow)(str(cart_id), str(product_id))
    _raise_for_failure(result)
    return ServiceResultResponse.from_result(result)


@carts_router.post(
    "/{cart_id}/checkout",
    response_model=ServiceResultResponse,
    responses={400: {"model": ErrorResponse}}
)
async def checkout(
    cart_id: UUID,
    uow: UnitOfWork = Depends(get_unit_of_work),
    products: ProductService = Depends(get_product_service)
):
    """Оформить корзину в заказ"""
    result = await CheckoutCartUseCase(uow, products)(str(cart_id))
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    order_dto = OrderDto.from_domain(result.data)
    return ServiceResultResponse.from_result(result, data=order_dto.model_dump(by_alias=True, mode="json"))


@carts_router.delete(
    "/{cart_id}",
    response_model=ServiceResultResponse,
    responses={404: {"model": ErrorResponse}}
)
async def delete_cart(cart_id: UUID, uow: UnitOfWork = Depends(get_unit_of_work)):
    result = await DeleteCartUseCase(uow)(str(cart_id))
    _raise_for_failure(result)
    return ServiceResultResponse.from_result(result)


# --- Заказы ---

@orders_router.get("/{order_id}", response_model=OrderDto, responses={404: {"model": ErrorResponse}})
async def get_order(order_id: UUID, uow: UnitOfWork = Depends(get_unit_of_work)):
    """Получить заказ по ID"""
    try:
        order = await GetOrderUseCase(uow)(str(order_id))
        return OrderDto.from_domain(order)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")


@orders_router.get("", response_model=OrdersListDto)
async def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    """Заказы постранично, новые первыми"""
    orders_page = await ListOrdersUseCase(uow)(page, page_size)
    return OrdersListDto.from_page(orders_page)


@orders_router.post(
    "",
    response_model=OrderDto,
    responses={400: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(request: OrderDto, uow: UnitOfWork = Depends(get_unit_of_work)):
    """Создать заказ напрямую"""
    result = await CreateOrderUseCase(uow)(request.to_create_dto())
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return OrderDto.from_domain(result.data)


@orders_router.put(
    "/{order_id}",
    response_model=OrderDto,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_order(order_id: UUID, request: OrderDto, uow: UnitOfWork = Depends(get_unit_of_work)):
    """Обновить заказ. Позиции меняются только через оформление корзины"""
    if request.id is not None and request.id != order_id:
        raise HTTPException(status_code=400, detail="Invalid order data")

    result = await UpdateOrderStatusUseCase(uow)(str(order_id), request.status)
    _raise_for_failure(result)
    return OrderDto.from_domain(result.data)


@orders_router.delete(
    "/{order_id}",
    response_model=ServiceResultResponse,
    responses={404: {"model": ErrorResponse}}
)
async def delete_order(order_id: UUID, uow: UnitOfWork = Depends(get_unit_of_work)):
    result = await DeleteOrderUseCase(uow)(str(order_id))
    _raise_for_failure(result)
    return ServiceResultResponse.from_result(result)


@orders_router.patch(
    "/{order_id}/status",
    response_model=ServiceResultResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_order_status(
    order_id: UUID,
    request: UpdateOrderStatusRequest,
    uow: UnitOfWork = Depends(get_unit_of_work)
):
    if not request.status.strip():
        raise HTTPException(status_code=400, detail="Status cannot be empty")

    result = await UpdateOrderStatusUseCase(uow)(str(order_id), request.status)
    _raise_for_failure(result)
    return ServiceResultResponse.from_result(result)
