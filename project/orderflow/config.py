# orderflow/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    AUTH_SECRET_KEY: str
    AUTH_ALGORITHM: str = "HS256"
    AUTH_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str = "sqlite+aiosqlite:///./orderflow.db"

    # внешние сервисы
    PAYMENT_GATEWAY_URL: str = "http://localhost:5008/api"
    PAYMENT_GATEWAY_TOKEN: str = ""
    PAYMENT_GATEWAY_TIMEOUT: float = 15.0   # без ретраев: таймаут = отказ в создании заказа
    PAYMENT_CURRENCY: str = "usd"
    RESTAURANT_SERVICE_URL: str = "http://localhost:5003/api"
    NOTIFICATION_SERVICE_URL: str = "http://localhost:5007/api/notifications"
    HTTP_TIMEOUT: float = 5.0

    # ценообразование
    TAX_RATE: float = 0.10
    DEFAULT_DELIVERY_FEE: float = 2.99
    EXPRESS_DELIVERY_FEE: float = 4.99
    PRICE_TOLERANCE: float = 1.0

    # False — любые переходы между нетерминальными статусами
    STRICT_STATUS_SEQUENCE: bool = False

    LOG_DIR: str = "orderflow/log"
    LOG_PRINT: str = "0"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
