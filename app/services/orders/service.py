"""
Order Service

The order lifecycle: intake (pricing + numbering), status transitions,
customer cancellation, rating, and the administrative operations around
them. Collaborators are injected:

    repository   - persistence (BaseOrderRepository)
    dispatcher   - customer notifications (NotificationDispatcher)
    broadcaster  - admin real-time events (BaseBroadcaster)

Side effects (popularity counters, notifications, broadcasts) run after
the primary write has committed. Their failures are logged and never
reach the caller.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Optional, Union

from app.core.auth import CurrentUser
from app.core.config import Settings, get_settings
from app.core.exceptions import (
    AlreadyRated,
    Forbidden,
    InvalidState,
    InvalidStateTransition,
    ItemsUnavailable,
    NotFound,
    ValidationError,
)
from app.models import (
    CancellationReason,
    MenuItem,
    Order,
    OrderStatus,
    PaymentStatus,
)
from app.repositories.base import (
    BaseOrderRepository,
    CategoryRevenue,
    DailyRevenue,
    DeliveryTimeStats,
    OrderPage,
    PaymentMethodBreakdown,
    RevenueSummary,
    StatusCount,
)
from app.schemas import OrderCreate
from app.services.notifications import NotificationDispatcher, StatusNotification
from app.services.orders.numbering import day_key, format_order_number
from app.services.orders.pricing import calculate_pricing, line_total, recalculate_pricing
from app.services.orders.transitions import ensure_transition_allowed
from app.services.realtime import BaseBroadcaster, OrderEvent

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING)
MAX_REVIEW_LENGTH = 500
WEEKLY_WINDOW = timedelta(days=7)
MONTHLY_WINDOW = timedelta(days=30)


@dataclass
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class OrderListing:
    orders: list[Order]
    pagination: Pagination


@dataclass
class MonthlyRevenue:
    month: str
    revenue: float
    orders: int


@dataclass
class DashboardStats:
    generated_at: datetime
    today_orders: int
    today_revenue: float
    active_orders: int
    popular_items: list[MenuItem] = field(default_factory=list)
    recent_orders: list[Order] = field(default_factory=list)
    weekly_revenue: list[DailyRevenue] = field(default_factory=list)
    monthly_revenue: list[MonthlyRevenue] = field(default_factory=list)


@dataclass
class RevenueReport:
    start_date: date
    end_date: date
    summary: RevenueSummary
    daily: list[DailyRevenue] = field(default_factory=list)
    categories: list[CategoryRevenue] = field(default_factory=list)


@dataclass
class OrdersReport:
    start_date: date
    end_date: date
    statuses: list[StatusCount] = field(default_factory=list)
    payment_methods: list[PaymentMethodBreakdown] = field(default_factory=list)
    delivery_times: Optional[DeliveryTimeStats] = None


class OrderService:
    """Order intake and lifecycle operations."""

    def __init__(
        self,
        repository: BaseOrderRepository,
        dispatcher: NotificationDispatcher,
        broadcaster: BaseBroadcaster,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()
        self.clock = clock

    # =========================================================================
    # INTAKE
    # =========================================================================

    async def create_order(self, caller: CurrentUser, payload: OrderCreate) -> Order:
        """
        Place a new order for the caller.

        Every line must name a distinct menu item that exists and is
        available; otherwise nothing is written. The order number is
        reserved from the per-day sequence in the same transaction as the
        insert.

        Raises:
            ValidationError: empty item list or bad quantity
            ItemsUnavailable: fewer available menu items than order lines
        """
        if not payload.items:
            raise ValidationError("At least one item is required")

        requested_ids = [item.menu_item for item in payload.items]
        catalog = await self.repository.get_available_menu_items(requested_ids)
        # One available catalog entry per line; repeating an item on two lines also fails
        if len(catalog) != len(requested_ids):
            missing = sorted(set(requested_ids) - set(catalog))
            logger.info(
                f"Rejecting order from {caller.id}: {len(catalog)} of {len(requested_ids)} "
                f"item(s) available (missing {missing})"
            )
            raise ItemsUnavailable(missing, "Some items are not available")

        line_items = []
        for item in payload.items:
            menu_item = catalog[item.menu_item]
            try:
                total_price = line_total(menu_item.price, item.quantity)
            except ValueError as e:
                raise ValidationError(str(e))
            line_items.append({
                "menu_item_id": menu_item.id,
                "name": menu_item.name,
                "price": menu_item.price,
                "quantity": item.quantity,
                "customization": [option.model_dump() for option in item.customization],
                "special_instructions": item.special_instructions,
                "total_price": total_price,
            })

        pricing = calculate_pricing(
            (line["total_price"] for line in line_items),
            free_threshold=self.settings.free_delivery_threshold,
            flat_fee=self.settings.delivery_fee,
        )

        now = self.clock()
        order = Order(
            customer_id=caller.id,
            customer_name=caller.name or payload.delivery_info.name,
            items=line_items,
            source=payload.source,
            status=OrderStatus.PENDING,
            payment_method=payload.payment_method,
            payment_status=PaymentStatus.PENDING,
            delivery_info=payload.delivery_info.model_dump(),
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            delivery_fee=pricing.delivery_fee,
            discount=pricing.discount,
            total=pricing.total,
            customer_note=payload.notes.customer if payload.notes else None,
            estimated_delivery_time=now + timedelta(minutes=self.settings.estimated_delivery_minutes),
            created_at=now,
            updated_at=now,
        )

        day = day_key(now)
        try:
            sequence = await self.repository.next_order_sequence(day)
            order.order_number = format_order_number(self.settings.order_number_prefix, day, sequence)
            await self.repository.add_order(order)
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise

        # Keep the committed state readable even if a later side effect rolls back
        self.repository.detach(order)

        logger.info(
            f"Order {order.order_number} created for {caller.id}: "
            f"{len(line_items)} line(s), total {order.total}"
        )

        quantities = Counter()
        for line in line_items:
            quantities[line["menu_item_id"]] += line["quantity"]
        await self._bump_popularity(dict(quantities))

        await self._broadcast(OrderEvent.NEW_ORDER, {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "customerName": order.customer_name,
            "total": order.total,
            "status": order.status.value,
        })

        return order

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order(self, caller: CurrentUser, order_id: int) -> Order:
        """Fetch one order the caller owns (or any order for staff)."""
        order = await self._load(order_id)
        if order.customer_id != caller.id and not caller.is_staff:
            raise Forbidden("Access denied")
        return order

    async def track_order(self, order_number: str) -> Order:
        """Public lookup by order number."""
        order = await self.repository.get_order_by_number(order_number)
        if order is None:
            raise NotFound("Order not found")
        return order

    async def list_menu(self, available_only: bool = True) -> list[MenuItem]:
        return await self.repository.list_menu_items(available_only)

    async def list_customer_orders(
        self,
        caller: CurrentUser,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> OrderListing:
        """The caller's own orders, newest first."""
        result = await self.repository.list_orders(
            customer_id=caller.id,
            status=status,
            skip=(page - 1) * limit,
            limit=limit,
        )
        return self._listing(result, page, limit)

    async def list_all_orders(
        self,
        status: Optional[OrderStatus] = None,
        day: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
    ) -> OrderListing:
        """Staff view over every order, optionally for one calendar day."""
        created_from = created_to = None
        if day is not None:
            created_from = datetime.combine(day, time.min)
            created_to = created_from + timedelta(days=1)

        result = await self.repository.list_orders(
            status=status,
            created_from=created_from,
            created_to=created_to,
            skip=(page - 1) * limit,
            limit=limit,
        )
        return self._listing(result, page, limit)

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def update_status(
        self,
        order_id: int,
        status: Union[OrderStatus, str],
        notes: Optional[str] = None,
    ) -> Order:
        """
        Move an order to a new status (staff operation).

        preparing records kitchen notes and the preparation start,
        out-for-delivery records delivery notes, delivered stamps the
        actual delivery time. The customer is notified and admins are
        told about the change.

        Raises:
            ValidationError: unknown status value
            NotFound: no such order
            InvalidStateTransition: order is delivered/cancelled (or the
                move breaks the strict workflow when enabled)
        """
        target = self._parse_status(status)
        order = await self._load(order_id)
        ensure_transition_allowed(order.status, target, self.settings.strict_status_transitions)

        now = self.clock()
        previous = order.status
        order.status = target

        if target == OrderStatus.PREPARING:
            order.preparation_started_at = now
            if notes:
                order.kitchen_note = notes
        elif target == OrderStatus.OUT_FOR_DELIVERY:
            if notes:
                order.delivery_note = notes
        elif target == OrderStatus.DELIVERED:
            order.actual_delivery_time = now
        elif target == OrderStatus.CANCELLED:
            order.cancellation_reason = order.cancellation_reason or CancellationReason.OTHER
            if notes:
                order.cancellation_note = notes

        order.updated_at = now
        await self._save(order)

        logger.info(f"Order {order.order_number}: {previous.value} -> {target.value}")

        await self._notify_customer(order)
        await self._broadcast(OrderEvent.STATUS_UPDATED, {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "newStatus": order.status.value,
            "customerName": order.customer_name,
        })

        return order

    async def cancel_order(
        self,
        caller: CurrentUser,
        order_id: int,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Cancel an open order (owner or staff).

        Raises:
            NotFound, Forbidden, InvalidStateTransition
        """
        order = await self._load(order_id)
        is_owner = order.customer_id == caller.id
        if not is_owner and not caller.is_staff:
            raise Forbidden("Access denied")
        if order.status.is_terminal:
            raise InvalidStateTransition("Order cannot be cancelled")

        now = self.clock()
        order.status = OrderStatus.CANCELLED
        order.cancellation_reason = (
            CancellationReason.CUSTOMER_REQUEST
            if is_owner and not caller.is_staff
            else CancellationReason.OTHER
        )
        order.cancellation_note = reason or ""
        order.updated_at = now
        await self._save(order)

        logger.info(
            f"Order {order.order_number} cancelled by {caller.id} "
            f"({order.cancellation_reason.value})"
        )

        await self._notify_customer(order)
        await self._broadcast(OrderEvent.CANCELLED, {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "customerName": order.customer_name,
            "cancellationReason": order.cancellation_reason.value,
        })

        return order

    # =========================================================================
    # RATING
    # =========================================================================

    async def rate_order(
        self,
        caller: CurrentUser,
        order_id: int,
        rating: int,
        review: Optional[str] = None,
    ) -> Order:
        """
        Attach the customer's rating to a delivered order. Only once.

        Raises:
            ValidationError, NotFound, Forbidden, InvalidState, AlreadyRated
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")
        if review is not None and len(review) > MAX_REVIEW_LENGTH:
            raise ValidationError("Review too long")

        order = await self._load(order_id)
        if order.customer_id != caller.id:
            raise Forbidden("Access denied")
        if order.status != OrderStatus.DELIVERED:
            raise InvalidState("Can only rate delivered orders")
        if order.rating is not None:
            raise AlreadyRated("Order already rated")

        now = self.clock()
        order.rating = rating
        order.review = review
        order.review_date = now
        order.updated_at = now
        await self._save(order)

        logger.info(f"Order {order.order_number} rated {rating}/5")
        return order

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    async def assign_order(self, order_id: int, staff_id: str) -> Order:
        """Assign an order to a staff member."""
        if not staff_id or not staff_id.strip():
            raise ValidationError("Valid staff ID required")

        order = await self._load(order_id)
        order.assigned_to = staff_id.strip()
        order.updated_at = self.clock()
        await self._save(order)

        logger.info(f"Order {order.order_number} assigned to {order.assigned_to}")
        return order

    async def record_payment(
        self,
        order_id: int,
        payment_status: Union[PaymentStatus, str],
        transaction_id: Optional[str] = None,
        gateway: Optional[str] = None,
    ) -> Order:
        """
        Record the outcome of a payment. The payment axis is independent
        of the order status, except that a cancelled order can only be
        marked failed or refunded.
        """
        try:
            target = PaymentStatus(payment_status)
        except ValueError:
            raise ValidationError(f"Invalid payment status: {payment_status}")

        order = await self._load(order_id)
        if order.status == OrderStatus.CANCELLED and target in (PaymentStatus.PENDING, PaymentStatus.PAID):
            raise InvalidState("Cancelled orders can only be marked failed or refunded")

        now = self.clock()
        order.payment_status = target
        if transaction_id:
            order.payment_transaction_id = transaction_id
        if gateway:
            order.payment_gateway = gateway
        if target == PaymentStatus.PAID:
            order.paid_at = now
        order.updated_at = now
        await self._save(order)

        logger.info(f"Order {order.order_number} payment -> {target.value}")
        return order

    async def recalculate_pricing(self, order_id: int) -> Order:
        """Recompute subtotal and total from the stored line items."""
        order = await self._load(order_id)
        pricing = recalculate_pricing(order.items, order.tax, order.delivery_fee, order.discount)
        order.subtotal = pricing.subtotal
        order.total = pricing.total
        order.updated_at = self.clock()
        return await self._save(order)

    async def dashboard_stats(self) -> DashboardStats:
        """
        Figures for the admin dashboard: today's orders and paid revenue,
        kitchen load, best sellers, the latest orders, and paid revenue
        per day over the last week and per month over the last 30 days.
        """
        now = self.clock()
        today = datetime.combine(now.date(), time.min)
        tomorrow = today + timedelta(days=1)

        today_orders = await self.repository.count_orders(created_from=today, created_to=tomorrow)
        revenue = await self.repository.revenue_summary(today, tomorrow)
        active = await self.repository.count_orders(statuses=ACTIVE_STATUSES)
        popular = await self.repository.most_popular_items(5)
        recent = await self.repository.list_orders(limit=10)
        weekly = await self.repository.daily_revenue(now - WEEKLY_WINDOW, tomorrow)
        last_month = await self.repository.daily_revenue(now - MONTHLY_WINDOW, tomorrow)

        return DashboardStats(
            generated_at=now,
            today_orders=today_orders,
            today_revenue=revenue.total_revenue,
            active_orders=active,
            popular_items=popular,
            recent_orders=recent.orders,
            weekly_revenue=weekly,
            monthly_revenue=self._by_month(last_month),
        )

    async def revenue_report(self, start_date: date, end_date: date) -> RevenueReport:
        """Paid, non-cancelled revenue between two dates (both inclusive)."""
        start, end = self._date_range(start_date, end_date)

        return RevenueReport(
            start_date=start_date,
            end_date=end_date,
            summary=await self.repository.revenue_summary(start, end),
            daily=await self.repository.daily_revenue(start, end),
            categories=await self.repository.category_revenue(start, end),
        )

    async def orders_report(self, start_date: date, end_date: date) -> OrdersReport:
        """
        Order mix between two dates (both inclusive): count per status,
        count and total per payment method, and delivery durations of the
        delivered orders. Unlike the revenue report, every order counts
        regardless of payment or cancellation.
        """
        start, end = self._date_range(start_date, end_date)

        return OrdersReport(
            start_date=start_date,
            end_date=end_date,
            statuses=await self.repository.status_breakdown(start, end),
            payment_methods=await self.repository.payment_method_breakdown(start, end),
            delivery_times=await self.repository.delivery_time_stats(start, end),
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _date_range(start_date: date, end_date: date) -> tuple[datetime, datetime]:
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        start = datetime.combine(start_date, time.min)
        return start, datetime.combine(end_date, time.min) + timedelta(days=1)

    @staticmethod
    def _by_month(daily: list[DailyRevenue]) -> list[MonthlyRevenue]:
        months: dict[str, MonthlyRevenue] = {}
        for row in daily:
            key = row.day.strftime("%Y-%m")
            month = months.setdefault(key, MonthlyRevenue(month=key, revenue=0.0, orders=0))
            month.revenue = round(month.revenue + row.revenue, 2)
            month.orders += row.orders
        return [months[key] for key in sorted(months)]

    @staticmethod
    def _parse_status(status: Union[OrderStatus, str]) -> OrderStatus:
        try:
            return OrderStatus(status)
        except ValueError:
            valid = [s.value for s in OrderStatus]
            raise ValidationError(f"Invalid status. Options: {valid}")

    @staticmethod
    def _listing(result: OrderPage, page: int, limit: int) -> OrderListing:
        return OrderListing(
            orders=result.orders,
            pagination=Pagination(page=page, limit=limit, total=result.total),
        )

    async def _load(self, order_id: int) -> Order:
        order = await self.repository.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    async def _save(self, order: Order) -> Order:
        try:
            return await self.repository.save_order(order)
        except Exception:
            await self.repository.rollback()
            raise

    async def _bump_popularity(self, quantities: dict[int, int]) -> None:
        try:
            await self.repository.increment_popularity(quantities)
        except Exception as e:
            logger.exception(f"Failed to update menu popularity: {e}")
            await self._safe_rollback()

    async def _safe_rollback(self) -> None:
        try:
            await self.repository.rollback()
        except Exception as e:
            logger.error(f"Rollback after side-effect failure failed: {e}")

    async def _notify_customer(self, order: Order) -> None:
        delivery = order.delivery_info or {}
        notification = StatusNotification(
            order_id=order.id,
            order_number=order.order_number,
            customer_name=order.customer_name or delivery.get("name", ""),
            customer_phone=delivery.get("phone", ""),
            status=order.status.value,
        )
        try:
            await self.dispatcher.dispatch(notification)
        except Exception as e:
            logger.error(f"Failed to send notification for order {order.order_number}: {e}")

    async def _broadcast(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self.broadcaster.publish(event, payload)
        except Exception as e:
            logger.error(f"Failed to broadcast {event} for order {payload.get('orderNumber')}: {e}")
