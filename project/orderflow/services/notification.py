# orderflow/services/notification.py

import asyncio

import httpx

from orderflow.config import settings


class NotificationDispatcher:
    """
    Уведомления о смене статуса заказа.

    Отправка идёт фоновой задачей: координатор не ждёт ответа сервиса
    уведомлений, ошибки только пишутся в лог.
    """

    def __init__(self, log, base_url: str | None = None, timeout: float | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.log = log
        self.client = httpx.AsyncClient(
            base_url=base_url or settings.NOTIFICATION_SERVICE_URL,
            timeout=settings.HTTP_TIMEOUT if timeout is None else timeout,
            transport=transport,
        )
        self.tasks: set[asyncio.Task] = set()

    @staticmethod
    def recipient(order) -> dict:
        customer = order.customer or {}
        return {
            "name": customer.get("full_name"),
            "phone": customer.get("phone"),
            "email": customer.get("email"),
        }

    def order_status_changed(self, order) -> None:
        self.dispatch("/order-status", {
            "orderId": order.order_id,
            "userId": order.user_id,
            "status": order.status,
            "recipient": self.recipient(order),
        })

    def driver_assigned(self, order) -> None:
        self.dispatch("/driver-assignment", {
            "orderId": order.order_id,
            "driverId": order.driver_id,
            "restaurantId": order.restaurant_id,
            "customerAddress": (order.customer or {}).get("address") or "Address not provided",
        })

    def dispatch(self, path: str, payload: dict) -> None:
        task = asyncio.create_task(self.send(path, payload))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def send(self, path: str, payload: dict) -> None:
        try:
            response = await self.client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            await self.log.log_warning("notification", f"Уведомление не доставлено: {e}", {
                "path": path, "order_id": payload.get("orderId"),
            })
            return
        await self.log.log_info("notification", "Уведомление отправлено", {
            "path": path, "order_id": payload.get("orderId"),
        })

    async def drain(self) -> None:
        """Дождаться отправки всех поставленных уведомлений."""
        if self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)

    async def aclose(self):
        await self.drain()
        await self.client.aclose()
