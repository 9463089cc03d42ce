# orderflow/services/driver_stats.py

from decimal import Decimal

from sqlalchemy.future import select
from fastapi import Request

from orderflow.models.order import Order as OrderModel
from orderflow.schemas.order import DriverStats
from orderflow.services.pricing import round2
from orderflow.services.state_machine import OrderStatus


async def get_driver_stats_service(driver_id: str, request: Request) -> DriverStats:
    """
    Статистика курьера, каждый раз заново по доставленным заказам.

    Счётчиков не храним: пересчёт идемпотентен и годится для сверки задним
    числом, читаются только уже зафиксированные заказы в статусе delivered.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(
        select(OrderModel.total).where(
            OrderModel.driver_id == driver_id,
            OrderModel.status == OrderStatus.DELIVERED.value,
        )
    )
    totals = result.scalars().all()
    earnings = round2(sum((Decimal(str(t)) for t in totals), Decimal("0")))

    stats = DriverStats(
        driver_id=driver_id,
        completed_orders=len(totals),
        total_earnings=float(earnings),
    )
    await log.log_info("driver_stats", "Статистика курьера пересчитана", stats.model_dump())
    return stats
