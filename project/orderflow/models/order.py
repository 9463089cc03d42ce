# orderflow/models/order.py

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, JSON
from sqlalchemy.sql import func
from orderflow.utils.database import Base

# деньги храним с точностью до цента
Money = Numeric(10, 2, asdecimal=True)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)  # автоинкремент

    order_id      = Column(String, unique=True, nullable=False, index=True)  # ORD-<ms>-<rnd>, неизменяемый
    user_id       = Column(String, nullable=False, default="guest")          # кто оформил
    restaurant_id = Column(String, nullable=False, index=True)

    items    = Column(JSON, nullable=False)   # [{id, name, price, quantity}] по серверным ценам
    customer = Column(JSON, nullable=False)   # снимок контактов доставки, не ссылка

    payment_method           = Column(String, nullable=False)                 # card | cash
    payment_card_id          = Column(String, nullable=True)
    payment_authorization_id = Column(String, nullable=True)
    payment_status           = Column(String, nullable=False, default="pending")
    payment_amount           = Column(Money, nullable=False)
    refund_status            = Column(String, nullable=False, default="none")  # none | requested | refunded | failed

    status    = Column(String, nullable=False, default="pending", index=True)
    driver_id = Column(String, nullable=True, index=True)                      # ставится один раз арбитром

    subtotal        = Column(Money, nullable=False)
    tax             = Column(Money, nullable=False)
    delivery_fee    = Column(Money, nullable=False)
    total           = Column(Money, nullable=False)
    delivery_option = Column(String, nullable=False, default="standard")

    special_instructions    = Column(Text, nullable=True)
    estimated_delivery_time = Column(DateTime(timezone=True), nullable=True)
    notes                   = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
