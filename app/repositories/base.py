"""
Order Repository Abstract Base Class

Defines the persistence contract the order pipeline depends on. The
pipeline never touches a session or a query directly; it asks the
repository, which owns transactions and the concurrency guarantees of the
underlying store (atomic per-day sequence, atomic popularity increments).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Sequence

from app.models import MenuItem, Order, OrderStatus, PaymentMethod


@dataclass
class OrderPage:
    """One page of an order listing plus the unpaginated count."""
    total: int
    orders: list[Order] = field(default_factory=list)


@dataclass
class RevenueSummary:
    total_revenue: float = 0.0
    total_orders: int = 0
    average_order_value: float = 0.0


@dataclass
class DailyRevenue:
    day: date
    revenue: float
    orders: int


@dataclass
class CategoryRevenue:
    """Line-item revenue of one menu category; orders counts distinct orders."""
    category: str
    revenue: float
    orders: int


@dataclass
class StatusCount:
    status: OrderStatus
    count: int


@dataclass
class PaymentMethodBreakdown:
    payment_method: PaymentMethod
    count: int
    revenue: float


@dataclass
class DeliveryTimeStats:
    """Placement-to-delivery minutes over delivered orders."""
    orders: int
    average_minutes: float
    min_minutes: float
    max_minutes: float


class BaseOrderRepository(ABC):
    """Abstract persistence interface for orders and the menu catalog."""

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    @abstractmethod
    async def commit(self) -> None:
        """Make all pending writes durable."""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Discard all pending writes."""
        pass

    @abstractmethod
    def detach(self, order: Order) -> None:
        """Stop tracking a committed order; its loaded state stays readable."""
        pass

    # -------------------------------------------------------------------------
    # Menu catalog
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_available_menu_items(self, menu_item_ids: Sequence[int]) -> dict[int, MenuItem]:
        """Batch lookup of menu items that exist and are available, keyed by id."""
        pass

    @abstractmethod
    async def list_menu_items(self, available_only: bool = True) -> list[MenuItem]:
        pass

    @abstractmethod
    async def increment_popularity(self, quantities: dict[int, int]) -> None:
        """Atomically add each quantity to the matching menu item's popularity."""
        pass

    @abstractmethod
    async def most_popular_items(self, limit: int = 5) -> list[MenuItem]:
        pass

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    @abstractmethod
    async def next_order_sequence(self, day: str) -> int:
        """
        Reserve the next order sequence value for a calendar day.

        Must be atomic: two concurrent callers never receive the same value
        for the same day. The reservation belongs to the current unit of
        work and is released on rollback.
        """
        pass

    @abstractmethod
    async def add_order(self, order: Order) -> Order:
        """Stage a new order in the current unit of work and assign its id."""
        pass

    @abstractmethod
    async def save_order(self, order: Order) -> Order:
        """Persist changes made to a loaded order and commit."""
        pass

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_orders(
        self,
        customer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> OrderPage:
        """Orders newest first, optionally filtered."""
        pass

    @abstractmethod
    async def count_orders(
        self,
        statuses: Optional[Sequence[OrderStatus]] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        customer_id: Optional[str] = None,
    ) -> int:
        pass

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    @abstractmethod
    async def revenue_summary(self, start: datetime, end: datetime) -> RevenueSummary:
        """Paid, non-cancelled revenue created in [start, end)."""
        pass

    @abstractmethod
    async def daily_revenue(self, start: datetime, end: datetime) -> list[DailyRevenue]:
        pass

    @abstractmethod
    async def category_revenue(self, start: datetime, end: datetime) -> list[CategoryRevenue]:
        """Paid, non-cancelled line-item revenue grouped by menu category, highest first."""
        pass

    @abstractmethod
    async def status_breakdown(self, start: datetime, end: datetime) -> list[StatusCount]:
        """Order count per status for orders created in [start, end), largest first."""
        pass

    @abstractmethod
    async def payment_method_breakdown(self, start: datetime, end: datetime) -> list[PaymentMethodBreakdown]:
        """Order count and total per payment method, highest revenue first."""
        pass

    @abstractmethod
    async def delivery_time_stats(self, start: datetime, end: datetime) -> Optional[DeliveryTimeStats]:
        """Delivery durations of delivered orders created in [start, end); None if there are none."""
        pass
