"""
SQLAlchemy ORM Models for the Checkout Backend

Orders are keyed by (user_id, order_id); order_id is indexed on its own so
gateway notifications can locate an order without knowing its owner.
Raw gateway notifications live in an insert-only table.
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, ForeignKey, Text, JSON,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship

from ..services.status_mapping import OrderStatus

Base = declarative_base()

ORDER_STATUSES = tuple(s.value for s in OrderStatus)


def utc_now() -> datetime:
    """Naive UTC timestamp, the form SQLite DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class OrderModel(Base):
    """
    ORM model for orders table.

    Monetary breakdown, customer-facing status, internal payment sub-status
    and the gateway identifiers attached after charge creation.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    order_id = Column(String, nullable=False, index=True)

    product_subtotal = Column(Float, nullable=False)
    shipping_cost = Column(Float, nullable=False)
    tax_amount = Column(Float, nullable=False)
    discount_applied = Column(Float)
    total_amount = Column(Float, nullable=False)
    applied_promo_code = Column(String)

    status = Column(String, nullable=False, default="pending", index=True)
    payment_status_internal = Column(String)
    payment_method = Column(String)

    gateway_transaction_id = Column(String)
    gateway_payment_type = Column(String)
    gateway_transaction_status = Column(String)
    gateway_fraud_status = Column(String)
    gateway_status_code = Column(String)
    gateway_status_message = Column(String)
    gateway_actions = Column(JSON)
    gateway_last_transaction_time = Column(DateTime)
    virtual_account_number = Column(String)
    bank = Column(String)
    qris_data_string = Column(Text)

    address = Column(JSON)
    items = Column(JSON)
    delivery_date = Column(DateTime)
    error_details = Column(Text)

    order_date = Column(DateTime, nullable=False, default=utc_now)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    notifications = relationship(
        "OrderNotificationModel",
        back_populates="order",
        order_by="OrderNotificationModel.id"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "order_id", name="uq_orders_user_order"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in ORDER_STATUSES) + ")",
            name="order_status_check"
        ),
    )


class OrderNotificationModel(Base):
    """
    ORM model for order_notifications table.

    Append-only history of raw gateway notification payloads.
    """
    __tablename__ = "order_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_pk = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    received_at = Column(DateTime, nullable=False, default=utc_now)

    order = relationship("OrderModel", back_populates="notifications")


class PromoCodeModel(Base):
    """
    ORM model for promo_codes table.

    Keyed by the normalized (trimmed, uppercased) code. discount_type is free
    text so that unknown types surface as a negative verdict, not a DB error.
    """
    __tablename__ = "promo_codes"

    code = Column(String, primary_key=True)
    is_active = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime)
    valid_until = Column(DateTime)
    min_purchase_amount = Column(Float)
    total_usage_limit = Column(Integer)
    current_total_usage = Column(Integer)
    discount_type = Column(String, nullable=False)
    discount_value = Column(Float, nullable=False)
    description = Column(String)
