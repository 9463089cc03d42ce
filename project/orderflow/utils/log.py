# orderflow/utils/log.py
# Журнал событий координатора заказов

import os
import datetime
import logging
from aiologger import Logger
from aiologger.handlers.files import AsyncFileHandler

from orderflow.config import settings


class Log:
    """
    Журнал с разбивкой по дням: LOG_DIR/2025/10/04.log.
    Для каждой цели (order, payment, delivery, ...) держим свой aiologger,
    при смене дня обработчик пересоздаётся.
    """

    def __init__(self, log_dir: str | None = None):
        self.log_dir = log_dir or settings.LOG_DIR
        os.makedirs(self.log_dir, exist_ok=True)
        self.handlers = {}
        self.log_print = str(settings.LOG_PRINT).lower() in ("1", "true", "yes")

    def build_log_path(self, now: datetime.datetime) -> str:
        base_dir = os.path.join(self.log_dir, f"{now.year}", f"{now:%m}")
        os.makedirs(base_dir, exist_ok=True)
        return os.path.join(base_dir, f"{now:%d}.log")

    def format_line(self, target: str, message: str, data: dict | None, now: datetime.datetime) -> str:
        line = f"{now:%d.%m.%Y %H:%M:%S} {target}: {message}"
        if data:
            line += f": {self.safe_serialize(data)}"
        return line

    async def get_logger(self, target: str, now: datetime.datetime) -> Logger:
        """Асинхронный логгер для target, привязанный к файлу текущего дня."""
        log_path = self.build_log_path(now)
        current = self.handlers.get(target)
        if current is not None and current["path"] == log_path:
            return current["logger"]

        target_logger = Logger(name=f"orderflow_{target}")
        target_logger.add_handler(AsyncFileHandler(filename=log_path, mode="a", encoding="utf-8"))

        if current is not None:
            await current["logger"].shutdown()

        self.handlers[target] = {"path": log_path, "logger": target_logger}
        return target_logger

    # ────────────── async ──────────────
    async def log_info(self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None):
        now = datetime.datetime.now()
        line = self.format_line(target, message, data, now)

        target_logger = await self.get_logger(target, now)
        await target_logger.info(line)

        if self.log_print if is_console is None else is_console:
            print(line)

    async def log_warning(self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None):
        await self.log_info(target, f"WARNING: {message}", data, is_console)

    async def log_error(self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = True):
        await self.log_info(target, f"ERROR: {message}", data, is_console)

    # ────────────── sync (старт/остановка приложения) ──────────────
    def log_info_sync(self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None):
        now = datetime.datetime.now()
        line = self.format_line(target, message, data, now)

        logger = logging.getLogger(f"orderflow_sync_{target}")
        logger.setLevel(logging.INFO)
        if not logger.handlers:
            handler = logging.FileHandler(self.build_log_path(now), mode="a", encoding="utf-8")
            handler.setFormatter(logging.Formatter("%(message)s"))
            logger.addHandler(handler)
        logger.info(line)

        if self.log_print if is_console is None else is_console:
            print(line)

    def log_error_sync(self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None):
        self.log_info_sync(target, f"ERROR: {message}", data, is_console)

    def safe_serialize(self, obj):
        """
        Приводит данные к виду, пригодному для записи в лог:
        Decimal и datetime в строку, pydantic через model_dump,
        ORM-объекты через публичные атрибуты.
        """
        if obj is None or isinstance(obj, (str, int, float, bool)):
            return obj
        if isinstance(obj, dict):
            return {k: self.safe_serialize(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple, set)):
            return [self.safe_serialize(v) for v in obj]
        if hasattr(obj, "model_dump"):
            return self.safe_serialize(obj.model_dump())
        if hasattr(obj, "isoformat") or type(obj).__name__ == "Decimal":
            return str(obj)
        if hasattr(obj, "__dict__"):
            return {k: self.safe_serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
        return f"<{type(obj).__name__}>"

    async def shutdown(self):
        for h in list(self.handlers.values()):
            await h["logger"].shutdown()
        self.handlers.clear()
