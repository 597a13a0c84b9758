"""
SQLAlchemy Database Models

Tables:
- orders:          one placed order with its snapshotted line items
- menu_items:      the catalog the pipeline reads prices from
- order_sequences: atomic per-day counter behind human-readable order numbers
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, Enum, Boolean, JSON,
)
from sqlalchemy.sql import func
from app.database import Base
import enum


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class PaymentStatus(str, enum.Enum):
    """Payment axis, independent from the order status."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    COD = "cod"
    UPI = "upi"
    CARD = "card"
    WALLET = "wallet"


class CancellationReason(str, enum.Enum):
    CUSTOMER_REQUEST = "customer-request"
    OUT_OF_STOCK = "out-of-stock"
    RESTAURANT_CLOSED = "restaurant-closed"
    DELIVERY_ISSUE = "delivery-issue"
    PAYMENT_FAILED = "payment-failed"
    OTHER = "other"


class OrderSource(str, enum.Enum):
    """Channel the order was placed through."""
    MOBILE_APP = "mobile-app"
    WEB = "web"
    PHONE = "phone"
    WALK_IN = "walk-in"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Order(Base):
    """
    Main Order table - stores every placed order.

    Line items are stored as a JSON snapshot so later menu price changes
    never affect placed orders.
    """
    __tablename__ = "orders"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(20), nullable=False, unique=True, index=True)

    # =========================================================================
    # CUSTOMER
    # =========================================================================
    customer_id = Column(String(64), nullable=False, index=True)
    customer_name = Column(String(100), nullable=False, default="")

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)
    source = Column(
        Enum(OrderSource, values_callable=_enum_values, name="order_source"),
        default=OrderSource.MOBILE_APP,
        nullable=False,
    )

    # =========================================================================
    # STATUS
    # =========================================================================
    status = Column(
        Enum(OrderStatus, values_callable=_enum_values, name="order_status"),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    assigned_to = Column(String(64), nullable=True)

    # =========================================================================
    # PAYMENT
    # =========================================================================
    payment_method = Column(
        Enum(PaymentMethod, values_callable=_enum_values, name="payment_method"),
        nullable=False,
    )
    payment_status = Column(
        Enum(PaymentStatus, values_callable=_enum_values, name="payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True
    )
    payment_transaction_id = Column(String(100), nullable=True)
    payment_gateway = Column(String(50), nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # =========================================================================
    # DELIVERY
    # =========================================================================
    delivery_info = Column(JSON, nullable=False)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False, default=0.0)
    delivery_fee = Column(Float, nullable=False, default=0.0)
    discount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)

    # =========================================================================
    # NOTES
    # =========================================================================
    customer_note = Column(Text, nullable=True)
    kitchen_note = Column(Text, nullable=True)
    delivery_note = Column(Text, nullable=True)

    # =========================================================================
    # RATING
    # =========================================================================
    rating = Column(Integer, nullable=True)
    review = Column(Text, nullable=True)
    review_date = Column(DateTime, nullable=True)

    # =========================================================================
    # CANCELLATION
    # =========================================================================
    cancellation_reason = Column(
        Enum(CancellationReason, values_callable=_enum_values, name="cancellation_reason"),
        nullable=True,
    )
    cancellation_note = Column(Text, nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    estimated_delivery_time = Column(DateTime, nullable=True)
    actual_delivery_time = Column(DateTime, nullable=True)
    preparation_started_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now, index=True)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @property
    def order_duration_minutes(self) -> Optional[int]:
        """Minutes from placement to delivery, once delivered."""
        if self.actual_delivery_time and self.created_at:
            return round((self.actual_delivery_time - self.created_at).total_seconds() / 60)
        return None

    def is_delayed(self, now: datetime) -> bool:
        """True when the ETA has passed by `now` and the order is still open."""
        return bool(
            self.estimated_delivery_time
            and now > self.estimated_delivery_time
            and self.status not in TERMINAL_STATUSES
        )

    def __repr__(self):
        return f"<Order {self.order_number} - {self.customer_name} - {self.status.value}>"


class MenuItem(Base):
    """Catalog entry. The pipeline only reads it and bumps popularity."""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    price = Column(Float, nullable=False)
    category = Column(String(30), nullable=False, default="beverages", index=True)
    is_available = Column(Boolean, nullable=False, default=True)
    popularity = Column(Integer, nullable=False, default=0)
    preparation_time = Column(Integer, nullable=False, default=10)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price}>"


class OrderSequence(Base):
    """
    Per-day order-number counter.

    One row per calendar day (YYMMDD); last_value is bumped with a single
    upsert so concurrent creators never observe the same value.
    """
    __tablename__ = "order_sequences"

    day = Column(String(6), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<OrderSequence {self.day}={self.last_value}>"
