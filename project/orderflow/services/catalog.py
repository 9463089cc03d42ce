# orderflow/services/catalog.py

import httpx

from orderflow.config import settings
from orderflow.utils.errors import ServiceUnavailableError, ValidationError


class MenuCatalogClient:
    """
    Цены меню из сервиса Restaurant.
    Только чтение: get_prices(restaurant_id) → {meal_id: {"name", "price"}}.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.client = httpx.AsyncClient(
            base_url=base_url or settings.RESTAURANT_SERVICE_URL,
            timeout=settings.HTTP_TIMEOUT if timeout is None else timeout,
            transport=transport,
        )

    async def get_prices(self, restaurant_id: str) -> dict:
        try:
            response = await self.client.get(f"/meals/public/restaurants/{restaurant_id}/meals")
        except httpx.HTTPError as e:
            raise ServiceUnavailableError(f"Меню ресторана недоступно: {e}") from e

        if response.status_code == 404:
            raise ValidationError(f"Ресторан {restaurant_id} не найден")
        if response.status_code >= 400:
            raise ServiceUnavailableError(f"Сервис ресторанов вернул {response.status_code}")

        body = response.json()
        meals = body.get("data", body) if isinstance(body, dict) else body
        return {
            str(meal.get("_id") or meal.get("id")): {"name": meal.get("name"), "price": meal.get("price", 0)}
            for meal in meals
        }

    async def aclose(self):
        await self.client.aclose()
