# orderflow/schemas/auth.py

from pydantic import BaseModel
from typing import Optional

ROLES = ("customer", "restaurant", "delivery", "admin")

class Principal(BaseModel):
    """
    Аутентифицированный участник, явно передаётся в каждую операцию.
    Для роли delivery subject — это ID курьера.
    """
    subject: str
    role: str = "customer"
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
