# tests/test_payment.py

import json
from decimal import Decimal

import httpx
import pytest

from orderflow.schemas.order import CustomerIn, PaymentIn
from orderflow.services.payment import (
    GatewayError,
    PaymentGatewayClient,
    authorize_payment,
    normalize_gateway_status,
    refund_payment,
    to_minor_units,
)
from orderflow.utils.errors import PaymentError

CUSTOMER = CustomerIn(full_name="Jane Doe", email="jane@example.com", address="1 Main St", phone="+1555")
CARD = PaymentIn(method="card", payment_method_id="pm_card_visa", card_id="card_1")


def test_minor_units():
    assert to_minor_units(Decimal("22.77")) == 2277
    assert to_minor_units(Decimal("0.10")) == 10


@pytest.mark.parametrize("raw, expected", [
    ("succeeded", "completed"),
    (None, "completed"),
    ("processing", "processing"),
    ("requires_action", "processing"),
    ("pending", "pending"),
    ("canceled", None),
    ("requires_payment_method", None),
])
def test_gateway_status_mapping(raw, expected):
    assert normalize_gateway_status(raw) == expected


async def test_cash_never_calls_gateway(gateway, log):
    result = await authorize_payment(PaymentIn(method="cash"), Decimal("22.77"), CUSTOMER, {"order_id": "ORD-1"}, gateway, log)

    assert result.status == "pending"
    assert result.authorization_id is None
    assert gateway.authorizations == []


async def test_card_charges_server_total(gateway, log):
    result = await authorize_payment(CARD, Decimal("22.77"), CUSTOMER, {"order_id": "ORD-1"}, gateway, log)

    assert result.status == "completed"
    assert result.authorization_id == "pi_1"
    assert result.card_id == "card_1"
    call = gateway.authorizations[0]
    assert call["amount"] == 2277
    assert call["method_token"] == "pm_card_visa"
    assert call["description"] == "Order for Jane Doe"
    assert call["metadata"]["order_id"] == "ORD-1"


async def test_card_decline_raises_402(gateway, log):
    gateway.decline = "card_declined"
    with pytest.raises(PaymentError) as exc:
        await authorize_payment(CARD, Decimal("10.00"), CUSTOMER, {}, gateway, log)
    assert exc.value.status_code == 402
    assert exc.value.detail == "card_declined"


async def test_gateway_unreachable_raises_502_without_retry(gateway, log):
    gateway.unreachable = True
    with pytest.raises(PaymentError) as exc:
        await authorize_payment(CARD, Decimal("10.00"), CUSTOMER, {}, gateway, log)
    assert exc.value.status_code == 502
    assert len(gateway.authorizations) == 1


async def test_unsuccessful_gateway_status_is_a_decline(gateway, log):
    gateway.status = "requires_payment_method"
    with pytest.raises(PaymentError):
        await authorize_payment(CARD, Decimal("10.00"), CUSTOMER, {}, gateway, log)


async def test_refund_failure_is_reported_not_raised(gateway, log):
    gateway.refund_fails = True
    assert await refund_payment("pi_9", gateway, log, "ORD-1") is False
    assert "Возврат не выполнен" in " ".join(log.messages("payment"))


# ────────────── HTTP-клиент шлюза ──────────────
def gateway_client(handler):
    return PaymentGatewayClient(
        base_url="http://gateway/api", token="svc", timeout=1, transport=httpx.MockTransport(handler),
    )


async def test_client_create_intent_request_and_response():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "intentId": "pi_42", "clientSecret": "cs_42"})

    client = gateway_client(handler)
    result = await client.authorize(2277, "usd", "pm_1", "Order for Jane", {"order_id": "ORD-1"})
    await client.aclose()

    assert seen["path"] == "/api/payments/create-intent"
    assert seen["auth"] == "Bearer svc"
    assert seen["body"]["amount"] == 2277
    assert seen["body"]["paymentMethodId"] == "pm_1"
    assert result == {"authorization_id": "pi_42", "status": None, "client_secret": "cs_42"}


async def test_client_maps_http_errors():
    def declined(request):
        return httpx.Response(400, json={"success": False, "message": "Your card was declined"})

    def broken(request):
        return httpx.Response(500, json={"success": False, "message": "Payment service error"})

    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    for handler, is_decline in ((declined, True), (broken, False), (timeout, False)):
        client = gateway_client(handler)
        with pytest.raises(GatewayError) as exc:
            await client.authorize(100, "usd", "pm_1", "d", {})
        await client.aclose()
        assert exc.value.declined is is_decline


async def test_client_refund():
    def handler(request):
        assert request.url.path == "/api/payments/refund"
        assert json.loads(request.content) == {"intentId": "pi_1"}
        return httpx.Response(200, json={"success": True, "status": "succeeded"})

    client = gateway_client(handler)
    assert await client.refund("pi_1") == {"status": "succeeded"}
    await client.aclose()
