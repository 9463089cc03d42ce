# orderflow/services/order.py

import secrets
import time

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from fastapi import Request

from orderflow.models.order import Order as OrderModel
from orderflow.schemas.auth import Principal
from orderflow.schemas.order import OrderCreate
from orderflow.services.payment import PaymentResult, authorize_payment, refund_payment
from orderflow.services.pricing import PricedOrder, price_order, validate_order_request
from orderflow.services.state_machine import (
    OrderStatus,
    STATUS_UPDATE_ROLES,
    is_terminal,
    check_transition,
    parse_status,
    refund_required,
)
from orderflow.utils.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
)


def generate_order_id() -> str:
    """ORD-<время в мс>-<6 hex>: уникальность держит и unique-индекс order_id."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


async def load_order(db, order_id: str) -> OrderModel:
    """Свежая копия заказа из БД (после условных UPDATE кэш сессии устаревает)."""
    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    db_order = result.scalar_one_or_none()
    if db_order is None:
        raise NotFoundError(f"Заказ {order_id} не найден")
    return db_order


async def compare_and_set(db, order_id: str, expected: dict, values: dict) -> bool:
    """
    Условный UPDATE одной строки: WHERE order_id = :id AND <expected>.
    True — запись изменена, False — условие уже не выполняется.
    """
    stmt = update(OrderModel).where(OrderModel.order_id == order_id)
    for column, value in expected.items():
        attr = getattr(OrderModel, column)
        stmt = stmt.where(attr.is_(None) if value is None else attr == value)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    result = await db.execute(stmt)
    await db.commit()
    return result.rowcount == 1


# ────────────── CREATE ──────────────
async def create_order_service(payload: OrderCreate, principal: Principal | None,
                               request: Request) -> tuple[OrderModel, PricedOrder, PaymentResult]:
    """
    Оформление заказа: проверка → пересчёт цены → авторизация оплаты → запись.

    Для вызывающего всё или ничего: при отказе шлюза заказ не пишется,
    при сбое записи после списания выполняется компенсирующий возврат.
    """
    db = request.state.db
    log = request.app.state.log

    validate_order_request(payload)
    priced = await price_order(payload, request.app.state.catalog, log)

    order_id = generate_order_id()
    payment = await authorize_payment(
        payload.payment,
        priced.total,
        payload.customer,
        {"order_id": order_id, "restaurant_id": payload.restaurant_id},
        request.app.state.gateway,
        log,
    )

    db_order = OrderModel(
        order_id=order_id,
        user_id=principal.subject if principal else "guest",
        restaurant_id=payload.restaurant_id,
        items=priced.items,
        customer=payload.customer.model_dump(),
        payment_method=payment.method,
        payment_card_id=payment.card_id,
        payment_authorization_id=payment.authorization_id,
        payment_status=payment.status,
        payment_amount=priced.total,
        refund_status="none",
        status=OrderStatus.PENDING.value,
        subtotal=priced.subtotal,
        tax=priced.tax,
        delivery_fee=priced.delivery_fee,
        total=priced.total,
        delivery_option=payload.delivery_option,
        special_instructions=payload.special_instructions,
        notes=list(priced.warnings),
    )
    db.add(db_order)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        await log.log_error("order", f"Заказ не сохранён: {e}", {
            "order_id": order_id, "payment_status": payment.status,
        })
        refunded = await compensate_payment(payment, order_id, request)
        raise PersistenceError(persistence_failure_detail(payment, order_id, refunded))

    await db.refresh(db_order)
    await log.log_info("order", "Заказ создан", {
        "order_id": order_id, "total": priced.total, "payment_status": payment.status,
    })
    request.app.state.notifier.order_status_changed(db_order)
    return db_order, priced, payment


async def compensate_payment(payment: PaymentResult, order_id: str, request: Request) -> bool | None:
    """
    Возврат авторизованной оплаты заказа, который не удалось сохранить.
    None — списания не было (наличные), иначе результат возврата.
    """
    if payment.method != "card" or not payment.authorization_id:
        return None
    return await refund_payment(
        payment.authorization_id, request.app.state.gateway, request.app.state.log, order_id
    )


def persistence_failure_detail(payment: PaymentResult, order_id: str, refunded: bool | None) -> str:
    if refunded is None:
        return f"Заказ {order_id} не сохранён, оплата не списывалась"
    if refunded:
        return f"Заказ {order_id} не сохранён, оплата возвращена"
    return f"Заказ {order_id} не сохранён, возврат оплаты {payment.authorization_id} не выполнен"


# ────────────── READ ──────────────
async def read_order_service(order_id: str, principal: Principal, request: Request) -> OrderModel:
    db = request.state.db
    log = request.app.state.log

    db_order = await load_order(db, order_id)
    allowed = (
        principal.role in ("admin", "restaurant")
        or db_order.user_id == principal.subject
        or (principal.role == "delivery" and db_order.driver_id in (None, principal.subject))
    )
    if not allowed:
        await log.log_warning("order", "Доступ к чужому заказу", {"order_id": order_id, "user": principal.subject})
        raise ForbiddenError("Нет доступа к этому заказу")

    await log.log_info("order", "Заказ загружен", {"order_id": order_id})
    return db_order


async def read_user_orders_service(principal: Principal, request: Request) -> list[OrderModel]:
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.user_id == principal.subject)
        .order_by(OrderModel.id.desc())
    )
    orders = result.scalars().all()

    await log.log_info("order", f"{len(orders)} заказов пользователя загружено", {"user": principal.subject})
    return orders


async def read_restaurant_orders_service(restaurant_id: str, status: str | None,
                                         request: Request) -> list[OrderModel]:
    db = request.state.db
    log = request.app.state.log

    stmt = select(OrderModel).where(OrderModel.restaurant_id == restaurant_id)
    if status:
        stmt = stmt.where(OrderModel.status == parse_status(status).value)
    result = await db.execute(stmt.order_by(OrderModel.id.desc()))
    orders = result.scalars().all()

    await log.log_info("order", f"{len(orders)} заказов ресторана загружено", {"restaurant_id": restaurant_id})
    return orders


# ────────────── STATUS ──────────────
async def update_order_status_service(order_id: str, new_status: str, principal: Principal,
                                      request: Request) -> OrderModel:
    """Смена статуса рестораном/курьером/админом через условную запись по текущему статусу."""
    db = request.state.db
    log = request.app.state.log

    if principal.role not in STATUS_UPDATE_ROLES:
        raise ForbiddenError(f"Роль {principal.role} не может менять статус заказа")

    target = parse_status(new_status)
    if target == OrderStatus.CANCELED:
        return await cancel_order_service(order_id, principal, request)

    db_order = await load_order(db, order_id)
    current = db_order.status
    try:
        check_transition(current, target)
    except ConflictError:
        await log.log_warning("order", "Недопустимый переход статуса", {
            "order_id": order_id, "from": current, "to": target.value,
        })
        raise

    if not await compare_and_set(db, order_id, {"status": current}, {"status": target.value}):
        await log.log_warning("order", "Статус изменён параллельно", {"order_id": order_id, "expected": current})
        raise ConflictError("Статус заказа изменился, повторите запрос")

    db_order = await load_order(db, order_id)
    await log.log_info("order", "Статус заказа обновлён", {
        "order_id": order_id, "from": current, "to": target.value, "by": principal.role,
    })
    request.app.state.notifier.order_status_changed(db_order)
    return db_order


# ────────────── CANCEL ──────────────
async def cancel_order_service(order_id: str, principal: Principal, request: Request) -> OrderModel:
    """
    Отмена заказа. Сначала статус меняется условной записью (чтобы не
    отменить заказ, который параллельно стал delivered), затем для карты
    выполняется возврат, результат фиксируется в refund_status.
    """
    db = request.state.db
    log = request.app.state.log

    db_order = await load_order(db, order_id)
    if principal.role not in ("admin", "restaurant") and db_order.user_id != principal.subject:
        raise ForbiddenError("Нет прав на отмену этого заказа")

    current = db_order.status
    if is_terminal(current):
        await log.log_warning("order", "Отмена невозможна", {"order_id": order_id, "status": current})
        raise ConflictError(f"Заказ нельзя отменить: он уже {current}")

    needs_refund = refund_required(db_order)
    changed = await compare_and_set(
        db, order_id,
        {"status": current},
        {"status": OrderStatus.CANCELED.value, "refund_status": "requested" if needs_refund else "none"},
    )
    if not changed:
        db_order = await load_order(db, order_id)
        await log.log_warning("order", "Отмена проиграла параллельному изменению", {
            "order_id": order_id, "status": db_order.status,
        })
        raise ConflictError(f"Заказ нельзя отменить: статус изменился на {db_order.status}")

    await log.log_info("order", "Заказ отменён", {"order_id": order_id, "from": current, "refund": needs_refund})
    if needs_refund:
        await settle_refund(db_order, request)

    db_order = await load_order(db, order_id)
    request.app.state.notifier.order_status_changed(db_order)
    return db_order


async def settle_refund(db_order: OrderModel, request: Request) -> bool:
    """Возврат по заказу в refund_status=requested; итог пишется как refunded/failed."""
    db = request.state.db
    refunded = await refund_payment(
        db_order.payment_authorization_id, request.app.state.gateway, request.app.state.log, db_order.order_id
    )
    await compare_and_set(
        db, db_order.order_id,
        {"refund_status": "requested"},
        {"refund_status": "refunded" if refunded else "failed"},
    )
    return refunded


async def retry_refund_service(order_id: str, principal: Principal, request: Request) -> OrderModel:
    """Повтор неудавшегося возврата по отменённому заказу (сверка, только admin)."""
    db = request.state.db
    log = request.app.state.log

    if not principal.is_admin:
        raise ForbiddenError("Повтор возврата доступен только администратору")

    db_order = await load_order(db, order_id)
    if db_order.status != OrderStatus.CANCELED.value or db_order.refund_status != "failed":
        raise ConflictError(f"Возврат не требуется: статус {db_order.status}, возврат {db_order.refund_status}")

    # захватываем возврат, чтобы параллельный повтор не вернул деньги дважды
    if not await compare_and_set(db, order_id, {"refund_status": "failed"}, {"refund_status": "requested"}):
        raise ConflictError("Возврат уже выполняется")

    refunded = await settle_refund(db_order, request)
    await log.log_info("order", "Повтор возврата", {"order_id": order_id, "refunded": refunded})
    return await load_order(db, order_id)
