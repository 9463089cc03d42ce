# orderflow/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
from dotenv import load_dotenv
from contextlib import asynccontextmanager

# --- загрузка переменных окружения до чтения settings ---
load_dotenv()

from orderflow.utils.log import Log
from orderflow.utils.database import init_db
from orderflow.middleware.db_middleware import DBSessionMiddleware
from orderflow.services.catalog import MenuCatalogClient
from orderflow.services.notification import NotificationDispatcher
from orderflow.services.payment import PaymentGatewayClient

boot_log = Log()

# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup начат")

    await init_db()
    boot_log.log_info_sync(target="startup", message="База инициализирована")

    app.state.log = Log()
    app.state.gateway = PaymentGatewayClient()
    app.state.catalog = MenuCatalogClient()
    app.state.notifier = NotificationDispatcher(app.state.log)
    await app.state.log.log_info(target="startup", message="Клиенты внешних сервисов созданы")

    yield

    # shutdown
    await app.state.notifier.aclose()
    await app.state.catalog.aclose()
    await app.state.gateway.aclose()
    await app.state.log.log_info(target="shutdown", message="Остановка приложения")
    await app.state.log.shutdown()
    boot_log.log_info_sync(target="shutdown", message="Log корректно завершён")

# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="Order Lifecycle API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)

@app.get("/")
def read_root():
    return {"service": "orderflow", "status": "ok"}

# ────────────── Подключение роутов ──────────────
from orderflow.routes import order, delivery

app.include_router(order.router, prefix="/orders", tags=["orders"])
app.include_router(delivery.router, prefix="/delivery", tags=["delivery"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="Запуск uvicorn.run")
    uvicorn.run(
        "orderflow.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
