# orderflow/services/pricing.py

"""
Пересчёт стоимости заказа на сервере.

Итог клиента только сверяется: в заказ и в списание всегда идёт
серверный итог, посчитанный по ценам меню, а не по ценам из корзины.
Из сумм клиента берётся только стоимость доставки.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from orderflow.config import settings
from orderflow.schemas.order import OrderCreate
from orderflow.utils.errors import ValidationError

CENT = Decimal("0.01")
PAYMENT_METHODS = ("card", "cash")


def round2(value) -> Decimal:
    """Округление до цента (half-up), вход — число или строка."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def delivery_fee_for(option: str) -> Decimal:
    fees = {
        "standard": settings.DEFAULT_DELIVERY_FEE,
        "express": settings.EXPRESS_DELIVERY_FEE,
        "pickup": 0,
    }
    if option not in fees:
        raise ValidationError(f"Неизвестный способ доставки: {option}")
    return round2(fees[option])


@dataclass
class PricedOrder:
    items: list
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal
    client_total: Decimal | None = None
    warnings: list = field(default_factory=list)

    @property
    def discrepancy(self) -> Decimal | None:
        if self.client_total is None:
            return None
        return abs(self.client_total - self.total)


def validate_order_request(payload: OrderCreate) -> None:
    """Проверка полноты заказа до любых внешних вызовов."""
    if not payload.items:
        raise ValidationError("Заказ должен содержать хотя бы одну позицию")
    if not payload.restaurant_id:
        raise ValidationError("Не указан ресторан")

    customer = payload.customer
    missing = [name for name in ("full_name", "address", "phone") if not getattr(customer, name)]
    if missing:
        raise ValidationError(f"Не заполнены данные покупателя: {', '.join(missing)}")

    method = payload.payment.method
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Неизвестный способ оплаты: {method}")
    if method == "card" and not payload.payment.payment_method_id:
        raise ValidationError("Для оплаты картой нужен payment_method_id")


def reconcile_pricing(
    items: list,
    menu_prices: dict,
    client_total=None,
    delivery_fee=None,
    tax_rate=None,
    tolerance=None,
) -> PricedOrder:
    """
    Пересчитывает subtotal/tax/delivery_fee/total.

    items: позиции корзины (id, quantity); цена берётся из menu_prices[id]["price"].
    delivery_fee: стоимость доставки из заказа, иначе тариф по умолчанию.
    Расхождение с client_total больше tolerance попадает в warnings, итог остаётся серверным.
    """
    rate = Decimal(str(settings.TAX_RATE if tax_rate is None else tax_rate))
    limit = Decimal(str(settings.PRICE_TOLERANCE if tolerance is None else tolerance))

    priced_items = []
    subtotal = Decimal("0")
    for item in items:
        entry = menu_prices.get(item.id)
        if entry is None:
            raise ValidationError(f"Позиция {item.id} отсутствует в меню ресторана")
        price = round2(entry["price"])
        if price < 0:
            raise ValidationError(f"Отрицательная цена позиции {item.id} в меню ресторана")
        subtotal += price * item.quantity
        priced_items.append({
            "id": item.id,
            "name": entry.get("name") or item.name or item.id,
            "price": float(price),
            "quantity": item.quantity,
        })

    subtotal = round2(subtotal)
    tax = round2(subtotal * rate)
    fee = round2(settings.DEFAULT_DELIVERY_FEE if delivery_fee is None else delivery_fee)
    if fee < 0:
        raise ValidationError("Стоимость доставки не может быть отрицательной")
    total = round2(subtotal + tax + fee)

    priced = PricedOrder(
        items=priced_items,
        subtotal=subtotal,
        tax=tax,
        delivery_fee=fee,
        total=total,
        client_total=None if client_total is None else round2(client_total),
    )
    if priced.discrepancy is not None and priced.discrepancy > limit:
        priced.warnings.append(
            f"Сумма клиента {priced.client_total} не совпадает с серверной {total}; списана серверная"
        )
    return priced


def resolve_delivery_fee(payload: OrderCreate) -> Decimal:
    """Стоимость доставки из заказа, если указана, иначе тариф способа доставки."""
    option_fee = delivery_fee_for(payload.delivery_option)
    if payload.delivery_fee is None:
        return option_fee
    return round2(payload.delivery_fee)


async def price_order(payload: OrderCreate, catalog, log) -> PricedOrder:
    """Загружает цены меню и пересчитывает заказ; расхождение пишется в лог."""
    menu_prices = await catalog.get_prices(payload.restaurant_id)
    priced = reconcile_pricing(
        payload.items,
        menu_prices,
        client_total=payload.total,
        delivery_fee=resolve_delivery_fee(payload),
    )
    if priced.warnings:
        await log.log_warning("pricing", "Расхождение суммы заказа", {
            "restaurant_id": payload.restaurant_id,
            "client_total": priced.client_total,
            "server_total": priced.total,
        })
    return priced
