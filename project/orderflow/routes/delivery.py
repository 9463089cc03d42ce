# orderflow/routes/delivery.py

from fastapi import APIRouter, Depends, Request
from typing import List, Optional
from orderflow.schemas.auth import Principal
from orderflow.schemas.order import Order, DriverAssign, DriverStats
from orderflow.services.delivery import (
    assign_driver_service,
    complete_delivery_service,
    read_available_deliveries_service,
    read_driver_orders_service,
    resolve_driver_id,
)
from orderflow.services.driver_stats import get_driver_stats_service
from orderflow.routes.auth import get_current_principal, require_roles
from orderflow.utils.errors import ForbiddenError

router = APIRouter()


def check_driver_access(principal: Principal, driver_id: str) -> None:
    if principal.role == "delivery" and principal.subject != driver_id:
        raise ForbiddenError("Курьер видит только свои данные")


# ────────────── AVAILABLE ──────────────
@router.get(
    "/available",
    response_model=List[Order],
    summary="Заказы, ожидающие курьера",
    responses={
        200: {"description": "Заказы out_for_delivery без курьера"},
        403: {"description": "Только курьеры и администратор"},
    },
)
async def read_available(
    request: Request,
    skip: int = 0,
    limit: int = 100,
    _: Principal = Depends(require_roles("delivery", "admin")),
):
    orders = await read_available_deliveries_service(request, skip, limit)
    return [Order.from_model(o) for o in orders]


# ────────────── ASSIGN ──────────────
@router.post(
    "/{order_id}/assign",
    response_model=Order,
    summary="Принять заказ курьером",
    responses={
        200: {"description": "Курьер назначен"},
        403: {"description": "Не курьер или чужой driver_id"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Заказ уже принят другим курьером или не в статусе out_for_delivery"},
    },
)
async def assign_driver(
    order_id: str,
    request: Request,
    body: Optional[DriverAssign] = None,
    principal: Principal = Depends(get_current_principal),
):
    driver_id = resolve_driver_id(principal, body.driver_id if body else None)
    try:
        return Order.from_model(await assign_driver_service(order_id, driver_id, request))
    except Exception as e:
        await request.app.state.log.log_error("delivery", f"Ошибка назначения курьера: {str(e)}", {
            "order_id": order_id, "driver_id": driver_id,
        })
        raise


# ────────────── COMPLETE ──────────────
@router.post(
    "/{order_id}/complete",
    response_model=Order,
    summary="Отметить заказ доставленным",
    responses={
        200: {"description": "Заказ доставлен"},
        403: {"description": "Заказ не назначен этому курьеру"},
        404: {"description": "Заказ не найден"},
    },
)
async def complete_delivery(
    order_id: str,
    request: Request,
    body: Optional[DriverAssign] = None,
    principal: Principal = Depends(get_current_principal),
):
    driver_id = resolve_driver_id(principal, body.driver_id if body else None)
    try:
        return Order.from_model(await complete_delivery_service(order_id, driver_id, request))
    except Exception as e:
        await request.app.state.log.log_error("delivery", f"Ошибка завершения доставки: {str(e)}", {
            "order_id": order_id, "driver_id": driver_id,
        })
        raise


# ────────────── DRIVER ──────────────
@router.get(
    "/drivers/{driver_id}/orders",
    response_model=List[Order],
    summary="Заказы курьера",
)
async def read_driver_orders(
    driver_id: str,
    request: Request,
    status: Optional[str] = None,
    principal: Principal = Depends(require_roles("delivery", "admin")),
):
    check_driver_access(principal, driver_id)
    orders = await read_driver_orders_service(driver_id, status, request)
    return [Order.from_model(o) for o in orders]


@router.get(
    "/drivers/{driver_id}/stats",
    response_model=DriverStats,
    summary="Статистика курьера",
    response_description="Число доставленных заказов и заработок, пересчитанные по заказам",
)
async def read_driver_stats(
    driver_id: str,
    request: Request,
    principal: Principal = Depends(require_roles("delivery", "admin")),
):
    check_driver_access(principal, driver_id)
    return await get_driver_stats_service(driver_id, request)
