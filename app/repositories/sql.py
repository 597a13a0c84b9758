"""
SQLAlchemy Order Repository

Async implementation of BaseOrderRepository over one AsyncSession
(one per request). Runs on PostgreSQL (psycopg) in deployment and on
SQLite (aiosqlite) in tests; both support INSERT .. ON CONFLICT .. RETURNING,
which backs the atomic per-day order sequence.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Optional, Sequence

from sqlalchemy import select, func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import MenuItem, Order, OrderSequence, OrderStatus, PaymentStatus
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

logger = logging.getLogger(__name__)

_UPSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SqlOrderRepository(BaseOrderRepository):
    """Order repository backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # -------------------------------------------------------------------------
    # Unit of work
    # -------------------------------------------------------------------------

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    def detach(self, order: Order) -> None:
        if order in self.session:
            self.session.expunge(order)

    # -------------------------------------------------------------------------
    # Menu catalog
    # -------------------------------------------------------------------------

    async def get_available_menu_items(self, menu_item_ids: Sequence[int]) -> dict[int, MenuItem]:
        if not menu_item_ids:
            return {}
        result = await self.session.execute(
            select(MenuItem).where(
                MenuItem.id.in_(set(menu_item_ids)),
                MenuItem.is_available.is_(True),
            )
        )
        return {item.id: item for item in result.scalars().all()}

    async def list_menu_items(self, available_only: bool = True) -> list[MenuItem]:
        query = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
        if available_only:
            query = query.where(MenuItem.is_available.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def increment_popularity(self, quantities: dict[int, int]) -> None:
        for menu_item_id, quantity in quantities.items():
            await self.session.execute(
                update(MenuItem)
                .where(MenuItem.id == menu_item_id)
                .values(popularity=MenuItem.popularity + quantity)
            )
        await self.session.commit()

    async def most_popular_items(self, limit: int = 5) -> list[MenuItem]:
        result = await self.session.execute(
            select(MenuItem).order_by(MenuItem.popularity.desc(), MenuItem.id).limit(limit)
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def next_order_sequence(self, day: str) -> int:
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Order sequences are not supported on {dialect}")

        stmt = (
            insert(OrderSequence)
            .values(day=day, last_value=1)
            .on_conflict_do_update(
                index_elements=[OrderSequence.day],
                set_={"last_value": OrderSequence.last_value + 1},
            )
            .returning(OrderSequence.last_value)
        )
        result = await self.session.execute(stmt)
        value = result.scalar_one()
        logger.debug(f"Reserved order sequence {day}/{value}")
        return value

    async def add_order(self, order: Order) -> Order:
        self.session.add(order)
        await self.session.flush()
        return order

    async def save_order(self, order: Order) -> Order:
        self.session.add(order)
        await self.session.commit()
        return order

    async def get_order(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(select(Order).where(Order.id == order_id))
        return result.scalar_one_or_none()

    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        result = await self.session.execute(
            select(Order).where(Order.order_number == order_number)
        )
        return result.scalar_one_or_none()

    def _filtered(
        self,
        query,
        customer_id: Optional[str] = None,
        statuses: Optional[Sequence[OrderStatus]] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ):
        if customer_id is not None:
            query = query.where(Order.customer_id == customer_id)
        if statuses:
            query = query.where(Order.status.in_(list(statuses)))
        if created_from is not None:
            query = query.where(Order.created_at >= created_from)
        if created_to is not None:
            query = query.where(Order.created_at < created_to)
        return query

    async def list_orders(
        self,
        customer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> OrderPage:
        statuses = [status] if status else None
        total = await self.count_orders(statuses, created_from, created_to, customer_id)

        query = self._filtered(
            select(Order), customer_id, statuses, created_from, created_to
        ).order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)

        return OrderPage(total=total, orders=list(result.scalars().all()))

    async def count_orders(
        self,
        statuses: Optional[Sequence[OrderStatus]] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        customer_id: Optional[str] = None,
    ) -> int:
        query = self._filtered(
            select(func.count(Order.id)), customer_id, statuses, created_from, created_to
        )
        result = await self.session.execute(query)
        return result.scalar() or 0

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _revenue_filter(self, query, start: datetime, end: datetime):
        return query.where(
            Order.created_at >= start,
            Order.created_at < end,
            Order.status != OrderStatus.CANCELLED,
            Order.payment_status == PaymentStatus.PAID,
        )

    async def revenue_summary(self, start: datetime, end: datetime) -> RevenueSummary:
        query = self._revenue_filter(
            select(func.sum(Order.total), func.count(Order.id), func.avg(Order.total)),
            start,
            end,
        )
        revenue, orders, average = (await self.session.execute(query)).one()
        return RevenueSummary(
            total_revenue=round(revenue or 0.0, 2),
            total_orders=orders or 0,
            average_order_value=round(average or 0.0, 2),
        )

    async def daily_revenue(self, start: datetime, end: datetime) -> list[DailyRevenue]:
        day = func.date(Order.created_at)
        query = self._revenue_filter(
            select(day, func.sum(Order.total), func.count(Order.id)),
            start,
            end,
        ).group_by(day).order_by(day)
        rows = (await self.session.execute(query)).all()

        return [
            DailyRevenue(
                day=value if isinstance(value, date) else date.fromisoformat(str(value)),
                revenue=round(revenue or 0.0, 2),
                orders=orders,
            )
            for value, revenue, orders in rows
        ]

    async def category_revenue(self, start: datetime, end: datetime) -> list[CategoryRevenue]:
        rows = (await self.session.execute(
            self._revenue_filter(select(Order.id, Order.items), start, end)
        )).all()

        menu_item_ids = {line["menu_item_id"] for _, items in rows for line in items or []}
        if not menu_item_ids:
            return []
        categories = dict((await self.session.execute(
            select(MenuItem.id, MenuItem.category).where(MenuItem.id.in_(menu_item_ids))
        )).all())

        revenue: dict[str, float] = defaultdict(float)
        orders: dict[str, set[int]] = defaultdict(set)
        for order_id, items in rows:
            for line in items or []:
                category = categories.get(line["menu_item_id"])
                # Lines whose menu item has since been deleted are left out
                if category is None:
                    continue
                revenue[category] += line["total_price"]
                orders[category].add(order_id)

        breakdown = [
            CategoryRevenue(category=category, revenue=round(total, 2), orders=len(orders[category]))
            for category, total in revenue.items()
        ]
        return sorted(breakdown, key=lambda row: (-row.revenue, row.category))

    async def status_breakdown(self, start: datetime, end: datetime) -> list[StatusCount]:
        count = func.count(Order.id)
        query = self._filtered(
            select(Order.status, count), created_from=start, created_to=end
        ).group_by(Order.status)
        rows = (await self.session.execute(query)).all()

        breakdown = [StatusCount(status=status, count=total) for status, total in rows]
        return sorted(breakdown, key=lambda row: (-row.count, row.status.value))

    async def payment_method_breakdown(self, start: datetime, end: datetime) -> list[PaymentMethodBreakdown]:
        query = self._filtered(
            select(Order.payment_method, func.count(Order.id), func.sum(Order.total)),
            created_from=start,
            created_to=end,
        ).group_by(Order.payment_method)
        rows = (await self.session.execute(query)).all()

        breakdown = [
            PaymentMethodBreakdown(payment_method=method, count=total, revenue=round(revenue or 0.0, 2))
            for method, total, revenue in rows
        ]
        return sorted(breakdown, key=lambda row: (-row.revenue, row.payment_method.value))

    async def delivery_time_stats(self, start: datetime, end: datetime) -> Optional[DeliveryTimeStats]:
        query = self._filtered(
            select(Order.created_at, Order.actual_delivery_time),
            statuses=[OrderStatus.DELIVERED],
            created_from=start,
            created_to=end,
        ).where(Order.actual_delivery_time.is_not(None))
        rows = (await self.session.execute(query)).all()
        if not rows:
            return None

        minutes = [(delivered - created).total_seconds() / 60 for created, delivered in rows]
        return DeliveryTimeStats(
            orders=len(minutes),
            average_minutes=round(sum(minutes) / len(minutes), 2),
            min_minutes=round(min(minutes), 2),
            max_minutes=round(max(minutes), 2),
        )
