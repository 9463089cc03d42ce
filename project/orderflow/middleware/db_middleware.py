# orderflow/middleware/db_middleware.py

from starlette.types import ASGIApp, Receive, Scope, Send
from orderflow.utils.database import AsyncSessionLocal

class DBSessionMiddleware:
    """Одна сессия БД на HTTP-запрос, доступна как request.state.db."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        session = AsyncSessionLocal()
        state["db"] = session
        try:
            await self.app(scope, receive, send)
        finally:
            # незакоммиченное откатывается при закрытии
            await session.close()
