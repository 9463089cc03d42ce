# orderflow/utils/database.py

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from orderflow.config import settings

# ────────────── Base для моделей ──────────────
Base = declarative_base()

# ────────────── Асинхронный движок ──────────────
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False  # True можно включить для отладки SQL
)

# ────────────── Асинхронная сессия ──────────────
# expire_on_commit=False: заказ возвращается клиенту уже после commit
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# ────────────── Инициализация базы данных ──────────────
async def init_db():
    """Создаёт таблицы заказов, если их ещё нет."""
    from orderflow.models import order  # noqa: F401  регистрирует модель в Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Удаляет все таблицы (используется тестами)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
