# orderflow/schemas/order.py

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

# ────────────── Входные данные корзины ──────────────
class OrderItemIn(BaseModel):
    id: str = Field(..., description="ID позиции меню")
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, description="Цена клиента, справочно; не используется")
    quantity: int = Field(..., ge=1)

class CustomerIn(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

class PaymentIn(BaseModel):
    method: Optional[str] = Field(None, description="card | cash")
    payment_method_id: Optional[str] = Field(None, description="Токен платёжного метода (card)")
    card_id: Optional[str] = None

class OrderCreate(BaseModel):
    restaurant_id: Optional[str] = None
    items: List[OrderItemIn] = Field(default_factory=list)
    customer: CustomerIn = Field(default_factory=CustomerIn)
    payment: PaymentIn = Field(default_factory=PaymentIn)

    # суммы клиента, только для сверки
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    delivery_fee: Optional[float] = None
    total: Optional[float] = None

    delivery_option: str = Field("standard", description="standard | express | pickup")
    special_instructions: Optional[str] = None

class OrderStatusUpdate(BaseModel):
    status: str

class DriverAssign(BaseModel):
    driver_id: Optional[str] = Field(None, description="Только для admin; курьер берётся из токена")

# ────────────── Ответы ──────────────
class OrderItemOut(BaseModel):
    id: str
    name: str
    price: float
    quantity: int

class PaymentOut(BaseModel):
    method: str
    card_id: Optional[str] = None
    authorization_id: Optional[str] = None
    status: str
    amount: float
    refund_status: str = "none"

class Order(BaseModel):
    id: int
    order_id: str
    user_id: str
    restaurant_id: str
    items: List[OrderItemOut]
    customer: CustomerIn
    payment: PaymentOut
    status: str
    driver_id: Optional[str] = None
    subtotal: float
    tax: float
    delivery_fee: float
    total: float
    delivery_option: str
    special_instructions: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    notes: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, db_order) -> "Order":
        """ORM-запись → ответ API; платёжные поля собираются во вложенный объект."""
        return cls(
            id=db_order.id,
            order_id=db_order.order_id,
            user_id=db_order.user_id,
            restaurant_id=db_order.restaurant_id,
            items=db_order.items,
            customer=db_order.customer,
            payment=PaymentOut(
                method=db_order.payment_method,
                card_id=db_order.payment_card_id,
                authorization_id=db_order.payment_authorization_id,
                status=db_order.payment_status,
                amount=float(db_order.payment_amount),
                refund_status=db_order.refund_status,
            ),
            status=db_order.status,
            driver_id=db_order.driver_id,
            subtotal=float(db_order.subtotal),
            tax=float(db_order.tax),
            delivery_fee=float(db_order.delivery_fee),
            total=float(db_order.total),
            delivery_option=db_order.delivery_option,
            special_instructions=db_order.special_instructions,
            estimated_delivery_time=db_order.estimated_delivery_time,
            notes=db_order.notes or [],
            created_at=db_order.created_at,
            updated_at=db_order.updated_at,
        )

class OrderCreated(BaseModel):
    order: Order
    warnings: List[str] = Field(default_factory=list)
    client_secret: Optional[str] = None

class DriverStats(BaseModel):
    driver_id: str
    completed_orders: int
    total_earnings: float
