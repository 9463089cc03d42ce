# orderflow/routes/auth.py

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jwt import encode, decode, ExpiredSignatureError, InvalidTokenError
from datetime import datetime, timedelta, timezone
from typing import Optional

from orderflow.config import settings
from orderflow.schemas.auth import Principal, ROLES

# Токены выдаёт сервис пользователей; здесь только проверка подписи
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Создаёт JWT (используется тестами и межсервисными вызовами).
    Вход: dict, например {"sub": "u1", "role": "customer"}
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return encode(to_encode, settings.AUTH_SECRET_KEY, algorithm=settings.AUTH_ALGORITHM)


async def get_current_principal(request: Request, token: str = Depends(oauth2_scheme)) -> Principal:
    """
    Проверяет JWT и возвращает Principal (subject, role, name).

    - 401 – токен истёк, неверный или без идентификатора пользователя
    """
    log = getattr(request.app.state, "log", None)
    try:
        payload = decode(token, settings.AUTH_SECRET_KEY, algorithms=[settings.AUTH_ALGORITHM])
    except ExpiredSignatureError:
        if log:
            await log.log_warning("auth", "Токен истёк")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except InvalidTokenError:
        if log:
            await log.log_warning("auth", "Неверный токен")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalid")

    # сервис пользователей кладёт id под разными ключами
    subject = payload.get("sub") or payload.get("id") or payload.get("_id") or payload.get("userId")
    if not subject:
        if log:
            await log.log_error("auth", "Токен не содержит идентификатор пользователя")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    role = payload.get("role") or "customer"
    if role == "user":
        role = "customer"
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role: {role}")

    return Principal(subject=str(subject), role=role, name=payload.get("name"))


def require_roles(*roles: str):
    """Зависимость: пропускает только перечисленные роли."""
    async def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Доступ запрещён")
        return principal
    return checker
