# tests/test_orders.py

import re

import pytest

import orderflow.services.order as order_service
from conftest import ADMIN, CUSTOMER, RESTAURANT, auth_headers, count_orders, order_payload


# ────────────── CREATE ──────────────
async def test_cash_order_is_priced_on_server_and_pending(client, create_order, gateway, notifier):
    order = await create_order("cash")

    assert re.fullmatch(r"ORD-\d{13}-[0-9A-F]{6}", order["order_id"])
    assert order["subtotal"] == 17.98
    assert order["tax"] == 1.80
    assert order["delivery_fee"] == 2.99
    assert order["total"] == 22.77
    assert order["status"] == "pending"
    assert order["payment"] == {
        "method": "cash", "card_id": None, "authorization_id": None,
        "status": "pending", "amount": 22.77, "refund_status": "none",
    }
    assert order["user_id"] == "user-1"
    assert order["driver_id"] is None
    assert gateway.authorizations == []
    assert notifier.events == [("status", order["order_id"], "pending")]


async def test_card_order_completes_payment_but_order_stays_pending(client, create_order, gateway):
    order = await create_order("card")

    assert order["status"] == "pending"
    assert order["payment"]["status"] == "completed"
    assert order["payment"]["authorization_id"] == "pi_1"
    assert gateway.authorizations[0]["amount"] == 2277


async def test_card_decline_creates_no_order(client, gateway, log):
    gateway.decline = "card_declined"

    response = await client.post("/orders/", json=order_payload("card"), headers=CUSTOMER)

    assert response.status_code == 402
    assert response.json()["detail"] == "card_declined"
    assert await count_orders() == 0


async def test_gateway_unreachable_creates_no_order(client, gateway):
    gateway.unreachable = True

    response = await client.post("/orders/", json=order_payload("card"), headers=CUSTOMER)

    assert response.status_code == 502
    assert await count_orders() == 0


async def test_client_total_mismatch_is_logged_and_server_total_charged(client, gateway, log):
    payload = order_payload("card", total=1.00)

    response = await client.post("/orders/", json=payload, headers=CUSTOMER)

    assert response.status_code == 201
    body = response.json()
    assert body["order"]["total"] == 22.77
    assert body["order"]["payment"]["amount"] == 22.77
    assert body["warnings"] and body["order"]["notes"] == body["warnings"]
    assert gateway.authorizations[0]["amount"] == 2277
    assert any("Расхождение" in m for m in log.messages("pricing"))


async def test_small_client_mismatch_is_silent(client, log):
    response = await client.post("/orders/", json=order_payload("cash", total=23.50), headers=CUSTOMER)

    assert response.status_code == 201
    assert response.json()["warnings"] == []
    assert log.messages("pricing") == []


async def test_express_delivery_fee(create_order):
    order = await create_order("cash", delivery_option="express", delivery_fee=None)
    assert order["delivery_fee"] == 4.99
    assert order["total"] == 24.77


async def test_delivery_fee_from_order_overrides_option(create_order, gateway):
    order = await create_order("card", delivery_fee=0.0, total=19.78)

    assert order["delivery_fee"] == 0.0
    assert order["total"] == 19.78
    assert order["notes"] == []
    assert gateway.authorizations[0]["amount"] == 1978


async def test_negative_delivery_fee_is_rejected(client, gateway):
    response = await client.post("/orders/", json=order_payload("card", delivery_fee=-1.0), headers=CUSTOMER)

    assert response.status_code == 422
    assert gateway.authorizations == []
    assert await count_orders() == 0


@pytest.mark.parametrize("overrides", [
    {"items": []},
    {"customer": {"full_name": "Jane Doe"}},
    {"payment": {}},
    {"payment": {"method": "card"}},
    {"items": [{"id": "unknown", "quantity": 1}]},
])
async def test_invalid_order_is_rejected_before_payment(client, gateway, overrides):
    response = await client.post("/orders/", json=order_payload("cash", **overrides), headers=CUSTOMER)

    assert response.status_code == 422
    assert gateway.authorizations == []
    assert await count_orders() == 0


async def test_save_failure_after_charge_refunds(client, create_order, gateway, monkeypatch):
    existing = await create_order("cash")
    monkeypatch.setattr(order_service, "generate_order_id", lambda: existing["order_id"])

    response = await client.post("/orders/", json=order_payload("card"), headers=CUSTOMER)

    assert response.status_code == 500
    assert "возвращена" in response.json()["detail"]
    assert gateway.refunds == ["pi_1"]
    assert await count_orders() == 1


async def test_save_failure_with_failed_refund_is_reported(client, create_order, gateway, monkeypatch):
    existing = await create_order("cash")
    monkeypatch.setattr(order_service, "generate_order_id", lambda: existing["order_id"])
    gateway.refund_fails = True

    response = await client.post("/orders/", json=order_payload("card"), headers=CUSTOMER)

    assert response.status_code == 500
    assert "pi_1" in response.json()["detail"]


async def test_missing_token_is_unauthorized(client):
    response = await client.post("/orders/", json=order_payload("cash"))
    assert response.status_code == 401


# ────────────── READ ──────────────
async def test_read_own_and_foreign_orders(client, create_order):
    order = await create_order("cash")

    own = await client.get(f"/orders/{order['order_id']}", headers=CUSTOMER)
    foreign = await client.get(f"/orders/{order['order_id']}", headers=auth_headers("user-2"))
    missing = await client.get("/orders/ORD-0-000", headers=CUSTOMER)

    assert own.status_code == 200
    assert own.json()["customer"]["address"] == "1 Main St"
    assert foreign.status_code == 403
    assert missing.status_code == 404


async def test_list_user_and_restaurant_orders(client, create_order):
    first = await create_order("cash")
    await create_order("cash", headers=auth_headers("user-2"))

    mine = await client.get("/orders/user/me", headers=CUSTOMER)
    restaurant = await client.get("/orders/restaurant/r1", headers=RESTAURANT)
    filtered = await client.get("/orders/restaurant/r1?status=delivered", headers=RESTAURANT)
    forbidden = await client.get("/orders/restaurant/r1", headers=CUSTOMER)

    assert [o["order_id"] for o in mine.json()] == [first["order_id"]]
    assert len(restaurant.json()) == 2
    assert filtered.json() == []
    assert forbidden.status_code == 403


# ────────────── STATUS ──────────────
async def test_restaurant_moves_order_forward(client, create_order, notifier):
    order = await create_order("cash")

    for status in ("confirmed", "preparing", "out_for_delivery"):
        response = await client.put(f"/orders/{order['order_id']}/status", json={"status": status}, headers=RESTAURANT)
        assert response.status_code == 200
        assert response.json()["status"] == status

    assert [e[2] for e in notifier.events] == ["pending", "confirmed", "preparing", "out_for_delivery"]


async def test_customer_cannot_update_status(client, create_order):
    order = await create_order("cash")
    response = await client.put(f"/orders/{order['order_id']}/status", json={"status": "confirmed"}, headers=CUSTOMER)
    assert response.status_code == 403


async def test_unknown_status_and_missing_order(client, create_order):
    order = await create_order("cash")

    bad = await client.put(f"/orders/{order['order_id']}/status", json={"status": "lost"}, headers=RESTAURANT)
    missing = await client.put("/orders/ORD-0-000/status", json={"status": "confirmed"}, headers=RESTAURANT)

    assert bad.status_code == 422
    assert missing.status_code == 404


async def test_delivered_requires_out_for_delivery(client, create_order):
    order = await create_order("cash")
    response = await client.put(f"/orders/{order['order_id']}/status", json={"status": "delivered"}, headers=RESTAURANT)
    assert response.status_code == 409


async def test_terminal_order_status_is_frozen(client, create_order):
    order = await create_order("cash")
    await client.put(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER)

    response = await client.put(f"/orders/{order['order_id']}/status", json={"status": "pending"}, headers=RESTAURANT)

    assert response.status_code == 409


# ────────────── CANCEL ──────────────
async def test_cancel_cash_order(client, create_order, gateway):
    order = await create_order("cash")

    response = await client.put(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER)

    assert response.status_code == 200
    assert response.json()["status"] == "canceled"
    assert response.json()["payment"]["refund_status"] == "none"
    assert gateway.refunds == []


async def test_cancel_card_order_refunds(client, create_order, gateway):
    order = await create_order("card")

    response = await client.put(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER)

    body = response.json()
    assert body["status"] == "canceled"
    assert body["payment"]["refund_status"] == "refunded"
    assert body["payment"]["status"] == "completed"
    assert body["payment"]["amount"] == 22.77
    assert gateway.refunds == ["pi_1"]


async def test_cancel_card_order_with_pending_authorization_refunds(client, create_order, gateway):
    gateway.status = "pending"
    order = await create_order("card")
    assert order["payment"]["status"] == "pending"

    response = await client.put(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER)

    body = response.json()
    assert body["status"] == "canceled"
    assert body["payment"]["refund_status"] == "refunded"
    assert gateway.refunds == ["pi_1"]


async def test_cancel_via_status_update_also_refunds(client, create_order, gateway):
    order = await create_order("card")

    response = await client.put(f"/orders/{order['order_id']}/status", json={"status": "canceled"}, headers=RESTAURANT)

    assert response.json()["status"] == "canceled"
    assert gateway.refunds == ["pi_1"]


@pytest.mark.parametrize("final_step", ["cancel", "deliver"])
async def test_cancel_terminal_order_conflicts_and_leaves_record(client, dispatch_order, final_step):
    order = await dispatch_order("cash")
    order_id = order["order_id"]
    if final_step == "cancel":
        await client.put(f"/orders/{order_id}/cancel", headers=CUSTOMER)
    else:
        await client.post(f"/delivery/{order_id}/assign", headers=auth_headers("driver-a", "delivery"))
        await client.post(f"/delivery/{order_id}/complete", headers=auth_headers("driver-a", "delivery"))
    before = (await client.get(f"/orders/{order_id}", headers=ADMIN)).json()

    response = await client.put(f"/orders/{order_id}/cancel", headers=CUSTOMER)

    assert response.status_code == 409
    after = (await client.get(f"/orders/{order_id}", headers=ADMIN)).json()
    assert after == before


async def test_other_customer_cannot_cancel(client, create_order):
    order = await create_order("cash")
    response = await client.put(f"/orders/{order['order_id']}/cancel", headers=auth_headers("user-2"))
    assert response.status_code == 403


async def test_failed_refund_is_recorded_and_retried(client, create_order, gateway):
    order = await create_order("card")
    gateway.refund_fails = True

    canceled = await client.put(f"/orders/{order['order_id']}/cancel", headers=CUSTOMER)
    assert canceled.json()["status"] == "canceled"
    assert canceled.json()["payment"]["refund_status"] == "failed"

    forbidden = await client.post(f"/orders/{order['order_id']}/refund/retry", headers=CUSTOMER)
    assert forbidden.status_code == 403

    gateway.refund_fails = False
    retried = await client.post(f"/orders/{order['order_id']}/refund/retry", headers=ADMIN)
    assert retried.json()["payment"]["refund_status"] == "refunded"
    assert gateway.refunds == ["pi_1", "pi_1"]

    again = await client.post(f"/orders/{order['order_id']}/refund/retry", headers=ADMIN)
    assert again.status_code == 409
