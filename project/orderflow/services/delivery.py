# orderflow/services/delivery.py

"""
Назначение курьера и завершение доставки.

Курьеры опрашивают ленту и принимают заказы одновременно, поэтому
назначение — это один условный UPDATE (driver_id IS NULL AND
status = out_for_delivery), а не чтение с последующей записью.
Побеждает первый записавший; ни блокировок, ни мьютексов в приложении нет.
"""

from sqlalchemy.future import select
from fastapi import Request

from orderflow.models.order import Order as OrderModel
from orderflow.schemas.auth import Principal
from orderflow.services.order import compare_and_set, load_order
from orderflow.services.state_machine import OrderStatus, parse_status
from orderflow.utils.errors import (
    AlreadyAssignedError,
    ForbiddenError,
    NotAssignedError,
    NotEligibleError,
    ValidationError,
)


def resolve_driver_id(principal: Principal, driver_id: str | None) -> str:
    """Курьер действует только от своего имени; admin может указать любого."""
    if principal.role == "delivery":
        if driver_id and driver_id != principal.subject:
            raise ForbiddenError("Курьер не может действовать от имени другого курьера")
        return principal.subject
    if principal.is_admin:
        if not driver_id:
            raise ValidationError("Не указан driver_id")
        return driver_id
    raise ForbiddenError("Операция доступна только курьерам")


async def assign_driver_service(order_id: str, driver_id: str, request: Request) -> OrderModel:
    db = request.state.db
    log = request.app.state.log

    assigned = await compare_and_set(
        db, order_id,
        {"status": OrderStatus.OUT_FOR_DELIVERY.value, "driver_id": None},
        {"driver_id": driver_id},
    )
    db_order = await load_order(db, order_id)

    if not assigned:
        if db_order.driver_id == driver_id:
            # повторное принятие тем же курьером
            await log.log_info("delivery", "Заказ уже назначен этому курьеру", {
                "order_id": order_id, "driver_id": driver_id,
            })
            return db_order
        if db_order.driver_id is not None:
            await log.log_warning("delivery", "Заказ уже принят другим курьером", {
                "order_id": order_id, "driver_id": driver_id, "owner": db_order.driver_id,
            })
            raise AlreadyAssignedError(f"Заказ {order_id} уже принят другим курьером")
        await log.log_warning("delivery", "Заказ недоступен для назначения", {
            "order_id": order_id, "status": db_order.status,
        })
        raise NotEligibleError(f"Заказ {order_id} в статусе {db_order.status}, назначение невозможно")

    await log.log_info("delivery", "Курьер назначен", {"order_id": order_id, "driver_id": driver_id})
    request.app.state.notifier.driver_assigned(db_order)
    return db_order


async def complete_delivery_service(order_id: str, driver_id: str, request: Request) -> OrderModel:
    db = request.state.db
    log = request.app.state.log

    delivered = await compare_and_set(
        db, order_id,
        {"status": OrderStatus.OUT_FOR_DELIVERY.value, "driver_id": driver_id},
        {"status": OrderStatus.DELIVERED.value},
    )
    db_order = await load_order(db, order_id)

    if not delivered:
        await log.log_warning("delivery", "Завершение доставки отклонено", {
            "order_id": order_id, "driver_id": driver_id,
            "owner": db_order.driver_id, "status": db_order.status,
        })
        if db_order.driver_id != driver_id:
            raise NotAssignedError(f"Заказ {order_id} не назначен курьеру {driver_id}")
        raise NotAssignedError(f"Заказ {order_id} в статусе {db_order.status}, завершение невозможно")

    await log.log_info("delivery", "Заказ доставлен", {
        "order_id": order_id, "driver_id": driver_id, "total": db_order.total,
    })
    request.app.state.notifier.order_status_changed(db_order)
    return db_order


async def read_available_deliveries_service(request: Request, skip: int = 0, limit: int = 100) -> list[OrderModel]:
    """Заказы в пути без курьера — лента для принятия."""
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.status == OrderStatus.OUT_FOR_DELIVERY.value, OrderModel.driver_id.is_(None))
        .order_by(OrderModel.id)
        .offset(skip)
        .limit(limit)
    )
    orders = result.scalars().all()

    await log.log_info("delivery", f"{len(orders)} заказов доступно для доставки")
    return orders


async def read_driver_orders_service(driver_id: str, status: str | None, request: Request) -> list[OrderModel]:
    db = request.state.db
    log = request.app.state.log

    stmt = select(OrderModel).where(OrderModel.driver_id == driver_id)
    if status:
        stmt = stmt.where(OrderModel.status == parse_status(status).value)
    result = await db.execute(stmt.order_by(OrderModel.id.desc()))
    orders = result.scalars().all()

    await log.log_info("delivery", f"{len(orders)} заказов курьера загружено", {"driver_id": driver_id})
    return orders
