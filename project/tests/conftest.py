# tests/conftest.py

import os
import tempfile

# окружение до импорта orderflow: settings и engine читаются при импорте
_tmp = tempfile.mkdtemp(prefix="orderflow-tests-")
os.environ["AUTH_SECRET_KEY"] = "orderflow-test-secret-key-0123456789abcdef"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp, 'orders.db')}"
os.environ["LOG_DIR"] = os.path.join(_tmp, "log")
os.environ["STRICT_STATUS_SEQUENCE"] = "false"

import httpx
import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from orderflow.main import app
from orderflow.models.order import Order as OrderModel
from orderflow.routes.auth import create_access_token
from orderflow.services.payment import GatewayError
from orderflow.utils.database import AsyncSessionLocal, drop_db, engine, init_db
from orderflow.utils.errors import ValidationError
from orderflow.utils.log import Log


class RecordingLog(Log):
    """Log без файлов: записи копятся в памяти для проверок."""

    def __init__(self):
        super().__init__()
        self.records = []

    async def log_info(self, target="", message="", data=None, is_console=False):
        self.records.append((target, message, data or {}))

    def messages(self, target=None):
        return [m for t, m, _ in self.records if target is None or t == target]


class FakeGateway:
    def __init__(self):
        self.authorizations = []
        self.refunds = []
        self.decline = None
        self.unreachable = False
        self.status = "succeeded"
        self.refund_fails = False

    async def authorize(self, amount, currency, method_token, description, metadata):
        self.authorizations.append({
            "amount": amount,
            "currency": currency,
            "method_token": method_token,
            "description": description,
            "metadata": metadata,
        })
        if self.decline:
            raise GatewayError(self.decline)
        if self.unreachable:
            raise GatewayError("connection refused", declined=False)
        return {
            "authorization_id": f"pi_{len(self.authorizations)}",
            "status": self.status,
            "client_secret": f"secret_{len(self.authorizations)}",
        }

    async def refund(self, authorization_id):
        self.refunds.append(authorization_id)
        if self.refund_fails:
            raise GatewayError("refund rejected", declined=False)
        return {"status": "refunded"}


class FakeCatalog:
    def __init__(self):
        self.menus = {
            "r1": {
                "m1": {"name": "Margherita", "price": 8.99},
                "m2": {"name": "Garlic Bread", "price": 3.5},
                "m3": {"name": "Cola", "price": 1.25},
            },
        }

    async def get_prices(self, restaurant_id):
        if restaurant_id not in self.menus:
            raise ValidationError(f"Ресторан {restaurant_id} не найден")
        return self.menus[restaurant_id]


class FakeNotifier:
    def __init__(self):
        self.events = []

    def order_status_changed(self, order):
        self.events.append(("status", order.order_id, order.status))

    def driver_assigned(self, order):
        self.events.append(("driver", order.order_id, order.driver_id))


def auth_headers(subject: str, role: str = "customer") -> dict:
    token = create_access_token({"sub": subject, "role": role})
    return {"Authorization": f"Bearer {token}"}


CUSTOMER = auth_headers("user-1")
RESTAURANT = auth_headers("rest-owner", "restaurant")
ADMIN = auth_headers("admin-1", "admin")


def order_payload(method: str = "cash", **overrides) -> dict:
    payload = {
        "restaurant_id": "r1",
        "items": [{"id": "m1", "name": "Margherita", "price": 8.99, "quantity": 2}],
        "customer": {
            "full_name": "Jane Doe",
            "email": "jane@example.com",
            "phone": "+15550100",
            "address": "1 Main St",
            "city": "Springfield",
        },
        "payment": {"method": method},
        "subtotal": 17.98,
        "tax": 1.80,
        "delivery_fee": 2.99,
        "total": 22.77,
    }
    if method == "card":
        payload["payment"]["payment_method_id"] = "pm_card_visa"
    payload.update(overrides)
    return payload


async def count_orders() -> int:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(func.count(OrderModel.id)))
        return result.scalar_one()


@pytest.fixture
async def database():
    await drop_db()
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
def log():
    return RecordingLog()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
async def client(database, log, gateway, catalog, notifier):
    app.state.log = log
    app.state.gateway = gateway
    app.state.catalog = catalog
    app.state.notifier = notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def create_order(client):
    async def _create(method: str = "cash", headers: dict = CUSTOMER, **overrides) -> dict:
        response = await client.post("/orders/", json=order_payload(method, **overrides), headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["order"]
    return _create


@pytest.fixture
def dispatch_order(client, create_order):
    """Заказ, доведённый рестораном до out_for_delivery."""
    async def _dispatch(method: str = "cash", **overrides) -> dict:
        order = await create_order(method, **overrides)
        response = await client.put(
            f"/orders/{order['order_id']}/status",
            json={"status": "out_for_delivery"},
            headers=RESTAURANT,
        )
        assert response.status_code == 200, response.text
        return response.json()
    return _dispatch
