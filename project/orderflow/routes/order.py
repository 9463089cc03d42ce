# orderflow/routes/order.py

from fastapi import APIRouter, Depends, Request, status
from typing import List, Optional
from orderflow.schemas.auth import Principal
from orderflow.schemas.order import Order, OrderCreate, OrderCreated, OrderStatusUpdate
from orderflow.services.order import (
    create_order_service,
    read_order_service,
    read_user_orders_service,
    read_restaurant_orders_service,
    update_order_status_service,
    cancel_order_service,
    retry_refund_service,
)
from orderflow.routes.auth import get_current_principal, require_roles

router = APIRouter()

# ────────────── CREATE ──────────────
@router.post(
    "/",
    response_model=OrderCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Оформить заказ",
    response_description="Возвращает созданный заказ с серверными суммами",
    responses={
        201: {"description": "Заказ создан, оплата авторизована или ожидается (наличные)"},
        401: {"description": "Некорректный пользователь или токен"},
        402: {"description": "Оплата отклонена, заказ не создан"},
        422: {"description": "Неполные данные заказа"},
        500: {"description": "Заказ не сохранён; оплата возвращена"},
        502: {"description": "Платёжный шлюз недоступен, заказ не создан"},
        503: {"description": "Меню ресторана недоступно"},
    },
)
async def create_order(
    request: Request,
    order: OrderCreate,
    principal: Principal = Depends(get_current_principal),
):
    """
    Оформление заказа.

    - Суммы пересчитываются по ценам меню; суммы клиента только сверяются.
    - Карта: авторизация в шлюзе на серверный итог, при отказе заказ не создаётся.
    - Наличные: платёж в статусе `pending`.
    - Новый заказ всегда в статусе `pending`.
    """
    try:
        db_order, priced, payment = await create_order_service(order, principal, request)
        return OrderCreated(
            order=Order.from_model(db_order),
            warnings=priced.warnings,
            client_secret=payment.client_secret,
        )
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при создании заказа: {str(e)}")
        raise


# ────────────── READ MINE ──────────────
@router.get(
    "/user/me",
    response_model=List[Order],
    summary="Заказы текущего пользователя",
    responses={
        200: {"description": "Список заказов получен"},
        401: {"description": "Некорректный пользователь или токен"},
    },
)
async def read_my_orders(request: Request, principal: Principal = Depends(get_current_principal)):
    orders = await read_user_orders_service(principal, request)
    return [Order.from_model(o) for o in orders]


# ────────────── READ RESTAURANT ──────────────
@router.get(
    "/restaurant/{restaurant_id}",
    response_model=List[Order],
    summary="Заказы ресторана",
    responses={
        200: {"description": "Список заказов получен"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Доступно только ресторану и администратору"},
        422: {"description": "Неизвестный статус в фильтре"},
    },
)
async def read_restaurant_orders(
    restaurant_id: str,
    request: Request,
    status: Optional[str] = None,
    _: Principal = Depends(require_roles("admin", "restaurant")),
):
    orders = await read_restaurant_orders_service(restaurant_id, status, request)
    return [Order.from_model(o) for o in orders]


# ────────────── READ ONE ──────────────
@router.get(
    "/{order_id}",
    response_model=Order,
    summary="Получить заказ по ID",
    responses={
        200: {"description": "Заказ найден"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Чужой заказ"},
        404: {"description": "Заказ не найден"},
    },
)
async def read_order(order_id: str, request: Request, principal: Principal = Depends(get_current_principal)):
    try:
        return Order.from_model(await read_order_service(order_id, principal, request))
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении заказа: {str(e)}", {"order_id": order_id})
        raise


# ────────────── STATUS ──────────────
@router.put(
    "/{order_id}/status",
    response_model=Order,
    summary="Обновить статус заказа",
    responses={
        200: {"description": "Статус обновлён"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Роль не может менять статус"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Недопустимый переход или параллельное изменение"},
        422: {"description": "Неизвестный статус"},
    },
)
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
):
    try:
        db_order = await update_order_status_service(order_id, body.status, principal, request)
        return Order.from_model(db_order)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при обновлении статуса: {str(e)}", {"order_id": order_id})
        raise


# ────────────── CANCEL ──────────────
@router.put(
    "/{order_id}/cancel",
    response_model=Order,
    summary="Отменить заказ",
    responses={
        200: {"description": "Заказ отменён; для карты запрошен возврат"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Нет прав на отмену"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Заказ уже доставлен или отменён"},
    },
)
async def cancel_order(order_id: str, request: Request, principal: Principal = Depends(get_current_principal)):
    try:
        return Order.from_model(await cancel_order_service(order_id, principal, request))
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при отмене заказа: {str(e)}", {"order_id": order_id})
        raise


# ────────────── REFUND RETRY ──────────────
@router.post(
    "/{order_id}/refund/retry",
    response_model=Order,
    summary="Повторить возврат по отменённому заказу",
    responses={
        200: {"description": "Возврат повторён, итог в payment.refund_status"},
        403: {"description": "Только администратор"},
        404: {"description": "Заказ не найден"},
        409: {"description": "Возврат не требуется или уже выполняется"},
    },
)
async def retry_refund(order_id: str, request: Request, principal: Principal = Depends(get_current_principal)):
    return Order.from_model(await retry_refund_service(order_id, principal, request))
