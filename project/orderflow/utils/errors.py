# orderflow/utils/errors.py

"""
Ошибки координатора заказов.

Все классы наследуют HTTPException: сервисы бросают их, маршруты
пробрасывают без изменений, FastAPI сам отдаёт нужный статус и detail.
"""

from fastapi import HTTPException, status


class OrderFlowError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Ошибка обработки заказа"

    def __init__(self, detail: str | None = None, status_code: int | None = None):
        super().__init__(
            status_code=status_code or self.status_code,
            detail=detail or self.default_detail,
        )


class ValidationError(OrderFlowError):
    """Неполные или некорректные входные данные. Внешние вызовы не выполнялись."""
    status_code = 422
    default_detail = "Неверные данные заказа"


class PaymentError(OrderFlowError):
    """Платёжный шлюз отклонил оплату или недоступен. Заказ не сохранён."""
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "Оплата не прошла"


class NotFoundError(OrderFlowError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Заказ не найден"


class ConflictError(OrderFlowError):
    """Недопустимый переход статуса."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Недопустимый переход статуса"


class AlreadyAssignedError(ConflictError):
    default_detail = "Заказ уже принят другим курьером"


class NotEligibleError(ConflictError):
    default_detail = "Заказ недоступен для назначения курьера"


class NotAssignedError(OrderFlowError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Заказ не назначен этому курьеру"


class ForbiddenError(OrderFlowError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Доступ запрещён"


class PersistenceError(OrderFlowError):
    """Сбой записи после внешнего побочного эффекта (например, после списания)."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Ошибка сохранения заказа"


class ServiceUnavailableError(OrderFlowError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Внешний сервис недоступен"
