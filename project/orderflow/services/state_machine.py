# orderflow/services/state_machine.py

"""
Статусы заказа и правила переходов.

pending → confirmed → preparing → out_for_delivery → delivered
canceled — из любого нетерминального статуса.

По умолчанию переходы между нетерминальными статусами не ограничены
(так работают ресторан и курьеры сейчас); STRICT_STATUS_SEQUENCE=true
разрешает только движение вперёд.
"""

from enum import Enum

from orderflow.config import settings
from orderflow.utils.errors import ConflictError, ValidationError


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELED = "canceled"


SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]
TERMINAL = {OrderStatus.DELIVERED, OrderStatus.CANCELED}

# роли, которым разрешено менять статус
STATUS_UPDATE_ROLES = {"admin", "restaurant", "delivery"}


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Неизвестный статус заказа: {value}")


def is_terminal(status: str) -> bool:
    return OrderStatus(status) in TERMINAL


def check_transition(current: str, target: OrderStatus, strict: bool | None = None) -> None:
    """ConflictError, если переход current → target запрещён."""
    current = OrderStatus(current)
    strict = settings.STRICT_STATUS_SEQUENCE if strict is None else strict

    if current in TERMINAL:
        raise ConflictError(f"Заказ уже в статусе {current.value}, изменение невозможно")
    if target == OrderStatus.CANCELED:
        return
    if target == OrderStatus.DELIVERED and current != OrderStatus.OUT_FOR_DELIVERY:
        raise ConflictError("Доставленным можно отметить только заказ в статусе out_for_delivery")
    if strict and SEQUENCE.index(target) <= SEQUENCE.index(current):
        raise ConflictError(f"Переход {current.value} → {target.value} запрещён")


def refund_required(order) -> bool:
    """Отмена карточного заказа с авторизацией требует возврата через шлюз."""
    return order.payment_method == "card" and bool(order.payment_authorization_id)
