# orderflow/services/payment.py

"""
Авторизация оплаты заказа.

Наличные: платёж pending, внешних вызовов нет.
Карта: один синхронный вызов шлюза на сумму, посчитанную сервером.
Повторов нет — повтор авторизации может списать деньги дважды;
клиент сам решает, отправлять ли заказ заново.
"""

from dataclasses import dataclass
from decimal import Decimal

import httpx

from orderflow.config import settings
from orderflow.schemas.order import CustomerIn, PaymentIn
from orderflow.utils.errors import PaymentError


class GatewayError(Exception):
    """Ошибка шлюза. declined=True — отказ в оплате, иначе шлюз недоступен."""

    def __init__(self, message: str, declined: bool = True):
        super().__init__(message)
        self.message = message
        self.declined = declined


class PaymentGatewayClient:
    """HTTP-клиент сервиса Gateway (create-intent / refund)."""

    def __init__(self, base_url: str | None = None, token: str | None = None,
                 timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        token = settings.PAYMENT_GATEWAY_TOKEN if token is None else token
        self.client = httpx.AsyncClient(
            base_url=base_url or settings.PAYMENT_GATEWAY_URL,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT if timeout is None else timeout,
            headers={"Authorization": f"Bearer {token}"} if token else {},
            transport=transport,
        )

    async def _post(self, path: str, body: dict) -> dict:
        try:
            response = await self.client.post(path, json=body)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Таймаут платёжного шлюза: {e}", declined=False) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Платёжный шлюз недоступен: {e}", declined=False) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 500:
            raise GatewayError(data.get("message") or f"Шлюз вернул {response.status_code}", declined=False)
        if response.status_code >= 400 or data.get("success") is False:
            raise GatewayError(data.get("message") or data.get("error") or "Оплата отклонена")
        return data

    async def authorize(self, amount: int, currency: str, method_token: str,
                        description: str, metadata: dict) -> dict:
        data = await self._post("/payments/create-intent", {
            "amount": amount,
            "currency": currency,
            "paymentMethodId": method_token,
            "description": description,
            "metadata": metadata,
        })
        return {
            "authorization_id": data.get("intentId"),
            "status": data.get("status"),
            "client_secret": data.get("clientSecret"),
        }

    async def refund(self, authorization_id: str) -> dict:
        data = await self._post("/payments/refund", {"intentId": authorization_id})
        return {"status": data.get("status", "refunded")}

    async def aclose(self):
        await self.client.aclose()


@dataclass
class PaymentResult:
    method: str
    status: str
    amount: Decimal
    authorization_id: str | None = None
    client_secret: str | None = None
    card_id: str | None = None


# статус шлюза → статус платежа заказа; None — отказ
GATEWAY_STATUS_MAP = {
    None: "completed",
    "succeeded": "completed",
    "completed": "completed",
    "processing": "processing",
    "requires_action": "processing",
    "requires_confirmation": "processing",
    "requires_capture": "processing",
    "pending": "pending",
}


def normalize_gateway_status(raw: str | None) -> str | None:
    return GATEWAY_STATUS_MAP.get(raw)


def to_minor_units(amount: Decimal) -> int:
    """Шлюз принимает сумму в центах."""
    return int((amount * 100).to_integral_value())


async def authorize_payment(payment: PaymentIn, amount: Decimal, customer: CustomerIn,
                            context: dict, gateway, log) -> PaymentResult:
    """
    Авторизует оплату заказа на серверную сумму amount.

    При отказе или недоступности шлюза бросает PaymentError; заказ в этом
    случае не создаётся.
    """
    if payment.method == "cash":
        await log.log_info("payment", "Оплата наличными, платёж ожидает", {"order_id": context.get("order_id")})
        return PaymentResult(method="cash", status="pending", amount=amount)

    try:
        result = await gateway.authorize(
            amount=to_minor_units(amount),
            currency=settings.PAYMENT_CURRENCY,
            method_token=payment.payment_method_id,
            description=f"Order for {customer.full_name}",
            metadata={
                "customer_name": customer.full_name,
                "customer_email": customer.email,
                **context,
            },
        )
    except GatewayError as e:
        await log.log_error("payment", "Авторизация отклонена", {
            "order_id": context.get("order_id"), "declined": e.declined, "error": e.message,
        })
        raise PaymentError(e.message, status_code=402 if e.declined else 502)

    status = normalize_gateway_status(result.get("status"))
    if status is None:
        await log.log_error("payment", "Шлюз вернул неуспешный статус", {
            "order_id": context.get("order_id"), "status": result.get("status"),
        })
        raise PaymentError(f"Оплата не прошла: {result.get('status')}")

    await log.log_info("payment", "Оплата авторизована", {
        "order_id": context.get("order_id"),
        "authorization_id": result.get("authorization_id"),
        "status": status,
    })
    return PaymentResult(
        method="card",
        status=status,
        amount=amount,
        authorization_id=result.get("authorization_id"),
        client_secret=result.get("client_secret"),
        card_id=payment.card_id,
    )


async def refund_payment(authorization_id: str, gateway, log, order_id: str | None = None) -> bool:
    """Запрашивает возврат. True — шлюз подтвердил, False — возврат не удался (ошибка в логе)."""
    try:
        result = await gateway.refund(authorization_id)
    except GatewayError as e:
        await log.log_error("payment", "Возврат не выполнен", {
            "order_id": order_id, "authorization_id": authorization_id, "error": e.message,
        })
        return False

    await log.log_info("payment", "Возврат выполнен", {
        "order_id": order_id, "authorization_id": authorization_id, "status": result.get("status"),
    })
    return True
