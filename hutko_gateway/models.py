from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from hutko_gateway.database import Base


def utcnow() -> datetime:
    # sqlite drops tzinfo, so timestamps are stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class OrderStatus:
    CREATED = "created"
    PROCESSING = "processing"
    ON_HOLD = "on-hold"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    amount = Column(Integer, nullable=False)                 # minor units
    currency = Column(String(3), nullable=False)
    status = Column(String, nullable=False, default=OrderStatus.CREATED)
    payment_reference = Column(String, index=True)           # {order_id}_{timestamp}
    transaction_id = Column(String)                          # hutko payment_id
    paid_at = Column(DateTime)

    billing_first_name = Column(String, default="")
    billing_last_name = Column(String, default="")
    billing_email = Column(String, default="")
    billing_phone = Column(String, default="")
    billing_address = Column(String, default="")
    billing_city = Column(String, default="")
    billing_state = Column(String, default="")
    billing_postcode = Column(String, default="")
    billing_country = Column(String, default="")

    items = relationship("OrderItem", lazy="selectin", order_by="OrderItem.id")
    notes = relationship("OrderNote", lazy="selectin", order_by="OrderNote.id")

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(Integer)
    name = Column(String, default="")
    price = Column(Integer, default=0)                       # minor units
    quantity = Column(Integer, default=1)
    total = Column(Integer, default=0)                       # minor units


class OrderNote(Base):
    __tablename__ = "order_notes"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    customer_email = Column(String, index=True, nullable=False)
    product_id = Column(Integer)
    quantity = Column(Integer, default=1)


class CheckoutToken(Base):
    __tablename__ = "checkout_tokens"

    key = Column(String, primary_key=True)                   # session_token_<md5>
    token = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)


class CallbackFailure(Base):
    __tablename__ = "callback_failures"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    error_kind = Column(String, nullable=False)
    message = Column(Text)
    request_method = Column(String)
    request_uri = Column(String)
    client_host = Column(String)
    payload = Column(Text)                                   # normalized payload as JSON
    raw_body = Column(Text)
