import asyncio
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import Settings
from app.core.exceptions import (
    AlreadyRated,
    Forbidden,
    InvalidState,
    InvalidStateTransition,
    ItemsUnavailable,
    NotFound,
    ValidationError,
)
from app.database import Base
from app.models import (
    CancellationReason,
    MenuItem,
    Order,
    OrderSequence,
    OrderStatus,
    PaymentStatus,
)
from app.repositories import SqlOrderRepository
from app.services.orders import OrderService

from conftest import order_payload


async def count_orders(session_maker) -> int:
    async with session_maker() as session:
        return (await session.execute(select(func.count(Order.id)))).scalar()


# =============================================================================
# INTAKE
# =============================================================================

async def test_small_order_is_priced_with_delivery_fee(service, customer, menu, broadcaster, clock):
    order = await service.create_order(
        customer, order_payload((menu["Masala Chai"], 2), (menu["Samosa"], 1))
    )

    assert order.order_number == "CP260305001"
    assert order.subtotal == 450.0
    assert order.delivery_fee == 20.0
    assert order.total == 470.0
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert order.customer_id == "cust-1"
    assert order.estimated_delivery_time == clock.now + timedelta(minutes=45)
    assert [line["total_price"] for line in order.items] == [200.0, 250.0]
    assert order.items[0]["name"] == "Masala Chai"

    assert broadcaster.events == [
        ("new-order", {
            "orderId": order.id,
            "orderNumber": "CP260305001",
            "customerName": "Asha Rao",
            "total": 470.0,
            "status": "pending",
        })
    ]


async def test_large_order_ships_free(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Paneer Roll"], 2)))

    assert order.subtotal == 600.0
    assert order.delivery_fee == 0.0
    assert order.total == 600.0


async def test_popularity_is_bumped_by_quantity(service, customer, menu, session_maker):
    await service.create_order(customer, order_payload((menu["Masala Chai"], 2), (menu["Samosa"], 1)))
    await service.create_order(customer, order_payload((menu["Masala Chai"], 1)))

    async with session_maker() as session:
        rows = dict((await session.execute(select(MenuItem.name, MenuItem.popularity))).all())

    assert rows["Masala Chai"] == 3
    assert rows["Samosa"] == 1
    assert rows["Paneer Roll"] == 0


async def test_repeated_menu_item_lines_are_rejected(service, customer, menu, session_maker, broadcaster):
    with pytest.raises(ItemsUnavailable) as exc_info:
        await service.create_order(
            customer, order_payload((menu["Masala Chai"], 1), (menu["Masala Chai"], 1))
        )

    assert exc_info.value.missing_ids == []
    assert await count_orders(session_maker) == 0
    assert broadcaster.events == []


async def test_unavailable_item_rejects_whole_order(service, customer, menu, session_maker, broadcaster):
    with pytest.raises(ItemsUnavailable) as exc_info:
        await service.create_order(
            customer,
            order_payload((menu["Masala Chai"], 1), (menu["Seasonal Special"], 1), (9999, 1)),
        )

    assert exc_info.value.missing_ids == sorted([menu["Seasonal Special"], 9999])
    assert await count_orders(session_maker) == 0
    assert broadcaster.events == []


async def test_failed_insert_releases_order_number(session, dispatcher, broadcaster, settings, clock, customer, menu):
    class FailingRepository(SqlOrderRepository):
        async def add_order(self, order):
            raise RuntimeError("disk full")

    failing = OrderService(FailingRepository(session), dispatcher, broadcaster, settings, clock=clock)
    with pytest.raises(RuntimeError):
        await failing.create_order(customer, order_payload((menu["Masala Chai"], 1)))

    working = OrderService(SqlOrderRepository(session), dispatcher, broadcaster, settings, clock=clock)
    order = await working.create_order(customer, order_payload((menu["Masala Chai"], 1)))

    assert order.order_number == "CP260305001"


async def test_side_effect_failures_do_not_fail_order(session, dispatcher, broadcaster, settings, clock, customer, menu, session_maker):
    class BrokenPopularity(SqlOrderRepository):
        async def increment_popularity(self, quantities):
            raise RuntimeError("popularity update failed")

    broadcaster.fail = True
    service = OrderService(BrokenPopularity(session), dispatcher, broadcaster, settings, clock=clock)

    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    assert order.order_number == "CP260305001"
    assert order.total == 270.0
    assert await count_orders(session_maker) == 1


async def test_order_numbers_reset_each_day(service, customer, menu, clock):
    first = await service.create_order(customer, order_payload((menu["Masala Chai"], 1)))
    second = await service.create_order(customer, order_payload((menu["Masala Chai"], 1)))
    clock.now = clock.now + timedelta(days=1)
    next_day = await service.create_order(customer, order_payload((menu["Masala Chai"], 1)))

    assert first.order_number == "CP260305001"
    assert second.order_number == "CP260305002"
    assert next_day.order_number == "CP260306001"


async def test_concurrent_orders_get_unique_numbers(tmp_path, dispatcher, broadcaster, settings, clock, customer):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with maker() as session:
        chai = MenuItem(name="Masala Chai", price=100.0)
        session.add(chai)
        await session.commit()

    async def place_order() -> str:
        async with maker() as session:
            service = OrderService(SqlOrderRepository(session), dispatcher, broadcaster, settings, clock=clock)
            order = await service.create_order(customer, order_payload((chai.id, 1)))
            return order.order_number

    try:
        numbers = await asyncio.gather(*(place_order() for _ in range(10)))

        async with maker() as session:
            sequence = await session.get(OrderSequence, "260305")
            popularity = (await session.get(MenuItem, chai.id)).popularity
    finally:
        await engine.dispose()

    assert len(set(numbers)) == 10
    assert sorted(numbers) == [f"CP260305{n:03d}" for n in range(1, 11)]
    assert sequence.last_value == 10
    assert popularity == 10


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

async def test_preparing_records_kitchen_note(service, customer, menu, notifier, broadcaster, clock):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    clock.now = clock.now + timedelta(minutes=5)

    updated = await service.update_status(order.id, "preparing", "started")

    assert updated.status == OrderStatus.PREPARING
    assert updated.kitchen_note == "started"
    assert updated.preparation_started_at == clock.now
    assert updated.updated_at == clock.now

    assert [n.status for n in notifier.notifications] == ["preparing"]
    assert notifier.notifications[0].customer_phone == "9876543210"
    assert broadcaster.events[-1] == ("order-status-updated", {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "newStatus": "preparing",
        "customerName": "Asha Rao",
    })


async def test_out_for_delivery_records_delivery_note(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    updated = await service.update_status(order.id, OrderStatus.OUT_FOR_DELIVERY, "rider Ravi")

    assert updated.delivery_note == "rider Ravi"
    assert updated.kitchen_note is None


async def test_delivered_is_terminal(service, customer, staff, menu, clock):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    clock.now = clock.now + timedelta(minutes=40)

    delivered = await service.update_status(order.id, OrderStatus.DELIVERED)

    assert delivered.actual_delivery_time == clock.now
    assert delivered.order_duration_minutes == 40

    with pytest.raises(InvalidStateTransition):
        await service.update_status(order.id, OrderStatus.PREPARING)
    with pytest.raises(InvalidStateTransition):
        await service.cancel_order(staff, order.id)


async def test_unknown_status_is_rejected(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    with pytest.raises(ValidationError):
        await service.update_status(order.id, "teleported")


async def test_status_update_on_missing_order(service):
    with pytest.raises(NotFound):
        await service.update_status(4242, OrderStatus.CONFIRMED)


async def test_notification_failure_does_not_block_status_change(service, customer, menu, notifier, broadcaster):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    notifier.fail = True
    broadcaster.fail = True

    updated = await service.update_status(order.id, OrderStatus.CONFIRMED)

    assert updated.status == OrderStatus.CONFIRMED


async def test_strict_mode_rejects_skipping_steps(session, dispatcher, broadcaster, clock, customer, menu):
    strict = Settings(env_mode="development", strict_status_transitions=True)
    service = OrderService(SqlOrderRepository(session), dispatcher, broadcaster, strict, clock=clock)
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    with pytest.raises(InvalidStateTransition):
        await service.update_status(order.id, OrderStatus.DELIVERED)

    confirmed = await service.update_status(order.id, OrderStatus.CONFIRMED)
    assert confirmed.status == OrderStatus.CONFIRMED


# =============================================================================
# CANCELLATION
# =============================================================================

async def test_owner_cancellation_is_customer_request(service, customer, menu, broadcaster, notifier):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    cancelled = await service.cancel_order(customer, order.id, "changed my mind")

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancellation_reason == CancellationReason.CUSTOMER_REQUEST
    assert cancelled.cancellation_note == "changed my mind"
    assert broadcaster.events[-1] == ("order-cancelled", {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "customerName": "Asha Rao",
        "cancellationReason": "customer-request",
    })
    assert [n.status for n in notifier.notifications] == ["cancelled"]


async def test_staff_cancellation_is_other(service, customer, staff, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    cancelled = await service.cancel_order(staff, order.id)

    assert cancelled.cancellation_reason == CancellationReason.OTHER
    assert cancelled.cancellation_note == ""


async def test_stranger_cannot_cancel(service, customer, other_customer, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    with pytest.raises(Forbidden):
        await service.cancel_order(other_customer, order.id)


async def test_cancelled_order_cannot_be_cancelled_again(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    await service.cancel_order(customer, order.id)

    with pytest.raises(InvalidStateTransition):
        await service.cancel_order(customer, order.id)
    with pytest.raises(InvalidStateTransition):
        await service.update_status(order.id, OrderStatus.PENDING)


# =============================================================================
# RATING
# =============================================================================

async def test_rating_rules(service, customer, other_customer, menu, clock):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    with pytest.raises(InvalidState):
        await service.rate_order(customer, order.id, 5)

    await service.update_status(order.id, OrderStatus.DELIVERED)

    with pytest.raises(Forbidden):
        await service.rate_order(other_customer, order.id, 5)
    with pytest.raises(ValidationError):
        await service.rate_order(customer, order.id, 6)

    rated = await service.rate_order(customer, order.id, 4, "Crispy samosa")
    assert rated.rating == 4
    assert rated.review == "Crispy samosa"
    assert rated.review_date == clock.now

    with pytest.raises(AlreadyRated):
        await service.rate_order(customer, order.id, 5)


async def test_review_length_is_limited(service, customer):
    with pytest.raises(ValidationError):
        await service.rate_order(customer, 1, 5, "x" * 501)


# =============================================================================
# QUERIES
# =============================================================================

async def test_get_order_access(service, customer, other_customer, staff, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    assert (await service.get_order(customer, order.id)).id == order.id
    assert (await service.get_order(staff, order.id)).id == order.id
    with pytest.raises(Forbidden):
        await service.get_order(other_customer, order.id)
    with pytest.raises(NotFound):
        await service.get_order(customer, 4242)


async def test_track_order_by_number(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    assert (await service.track_order(order.order_number)).id == order.id
    with pytest.raises(NotFound):
        await service.track_order("CP000000000")


async def test_customer_listing_is_paginated_newest_first(service, customer, other_customer, menu):
    created = [
        await service.create_order(customer, order_payload((menu["Samosa"], 1)))
        for _ in range(3)
    ]
    await service.create_order(other_customer, order_payload((menu["Samosa"], 1)))

    listing = await service.list_customer_orders(customer, page=1, limit=2)

    assert listing.pagination.total == 3
    assert listing.pagination.pages == 2
    assert [o.id for o in listing.orders] == [created[2].id, created[1].id]

    second_page = await service.list_customer_orders(customer, page=2, limit=2)
    assert [o.id for o in second_page.orders] == [created[0].id]


async def test_admin_listing_filters_by_day_and_status(service, customer, menu, clock):
    first = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    clock.now = clock.now + timedelta(days=1)
    second = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    await service.update_status(second.id, OrderStatus.CONFIRMED)

    by_day = await service.list_all_orders(day=date(2026, 3, 5))
    by_status = await service.list_all_orders(status=OrderStatus.CONFIRMED)

    assert [o.id for o in by_day.orders] == [first.id]
    assert [o.id for o in by_status.orders] == [second.id]


# =============================================================================
# ADMINISTRATION
# =============================================================================

async def test_assign_order(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    assigned = await service.assign_order(order.id, "staff-7")

    assert assigned.assigned_to == "staff-7"
    with pytest.raises(ValidationError):
        await service.assign_order(order.id, "  ")


async def test_record_payment(service, customer, menu, clock):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1), payment_method="upi"))

    paid = await service.record_payment(order.id, "paid", transaction_id="UPI-123", gateway="razorpay")

    assert paid.payment_status == PaymentStatus.PAID
    assert paid.paid_at == clock.now
    assert paid.payment_transaction_id == "UPI-123"
    assert paid.payment_gateway == "razorpay"


async def test_cancelled_order_only_accepts_refund_or_failure(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    await service.cancel_order(customer, order.id)

    with pytest.raises(InvalidState):
        await service.record_payment(order.id, PaymentStatus.PAID)

    refunded = await service.record_payment(order.id, PaymentStatus.REFUNDED)
    assert refunded.payment_status == PaymentStatus.REFUNDED


async def test_revenue_counts_paid_open_orders_only(service, customer, menu, clock):
    kept = await service.create_order(customer, order_payload((menu["Masala Chai"], 2), (menu["Samosa"], 1)))
    await service.record_payment(kept.id, PaymentStatus.PAID)

    dropped = await service.create_order(customer, order_payload((menu["Paneer Roll"], 2)))
    await service.record_payment(dropped.id, PaymentStatus.PAID)
    await service.cancel_order(customer, dropped.id)

    await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    clock.now = datetime(2026, 3, 6, 9, 0)
    next_day = await service.create_order(customer, order_payload((menu["Paneer Roll"], 2)))
    await service.record_payment(next_day.id, PaymentStatus.PAID)

    report = await service.revenue_report(date(2026, 3, 5), date(2026, 3, 6))

    assert report.summary.total_revenue == 1070.0
    assert report.summary.total_orders == 2
    assert report.summary.average_order_value == 535.0
    assert [(row.day, row.revenue, row.orders) for row in report.daily] == [
        (date(2026, 3, 5), 470.0, 1),
        (date(2026, 3, 6), 600.0, 1),
    ]

    assert [(row.category, row.revenue, row.orders) for row in report.categories] == [
        ("snacks", 850.0, 2),
        ("beverages", 200.0, 1),
    ]

    single_day = await service.revenue_report(date(2026, 3, 5), date(2026, 3, 5))
    assert single_day.summary.total_revenue == 470.0


async def test_revenue_report_rejects_inverted_range(service):
    with pytest.raises(ValidationError):
        await service.revenue_report(date(2026, 3, 6), date(2026, 3, 5))


async def test_dashboard_stats(service, customer, menu):
    first = await service.create_order(customer, order_payload((menu["Masala Chai"], 3)))
    second = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    third = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    await service.record_payment(first.id, PaymentStatus.PAID)
    await service.update_status(second.id, OrderStatus.READY)
    await service.cancel_order(customer, third.id)

    stats = await service.dashboard_stats()

    assert stats.today_orders == 3
    assert stats.today_revenue == 320.0
    assert stats.active_orders == 1
    assert stats.popular_items[0].name == "Masala Chai"
    assert len(stats.recent_orders) == 3


async def test_dashboard_revenue_trend(service, customer, menu, clock):
    clock.now = datetime(2026, 2, 20, 10, 0)
    february = await service.create_order(customer, order_payload((menu["Paneer Roll"], 2)))
    clock.now = datetime(2026, 3, 1, 19, 0)
    early_march = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    clock.now = datetime(2026, 3, 5, 12, 30)
    today = await service.create_order(customer, order_payload((menu["Masala Chai"], 3)))
    unpaid = await service.create_order(customer, order_payload((menu["Samosa"], 1)))
    for order in (february, early_march, today):
        await service.record_payment(order.id, PaymentStatus.PAID)

    stats = await service.dashboard_stats()

    assert stats.generated_at == clock.now
    assert [(row.day, row.revenue, row.orders) for row in stats.weekly_revenue] == [
        (date(2026, 3, 1), 270.0, 1),
        (date(2026, 3, 5), 320.0, 1),
    ]
    assert [(row.month, row.revenue, row.orders) for row in stats.monthly_revenue] == [
        ("2026-02", 600.0, 1),
        ("2026-03", 590.0, 2),
    ]
    assert stats.today_orders == 2
    assert stats.today_revenue == 320.0
    assert unpaid.payment_status == PaymentStatus.PENDING


async def test_orders_report(service, customer, menu, clock):
    first = await service.create_order(
        customer, order_payload((menu["Masala Chai"], 2), (menu["Samosa"], 1))
    )
    second = await service.create_order(
        customer, order_payload((menu["Paneer Roll"], 2), payment_method="upi")
    )
    third = await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    start = clock.now
    clock.now = start + timedelta(minutes=40)
    await service.update_status(first.id, OrderStatus.DELIVERED)
    clock.now = start + timedelta(minutes=60)
    await service.update_status(second.id, OrderStatus.DELIVERED)
    await service.cancel_order(customer, third.id)

    report = await service.orders_report(date(2026, 3, 5), date(2026, 3, 5))

    assert [(row.status, row.count) for row in report.statuses] == [
        (OrderStatus.DELIVERED, 2),
        (OrderStatus.CANCELLED, 1),
    ]
    assert [(row.payment_method.value, row.count, row.revenue) for row in report.payment_methods] == [
        ("cod", 2, 740.0),
        ("upi", 1, 600.0),
    ]
    assert report.delivery_times.orders == 2
    assert report.delivery_times.average_minutes == 50.0
    assert report.delivery_times.min_minutes == 40.0
    assert report.delivery_times.max_minutes == 60.0


async def test_orders_report_without_deliveries(service, customer, menu):
    await service.create_order(customer, order_payload((menu["Samosa"], 1)))

    report = await service.orders_report(date(2026, 3, 1), date(2026, 3, 31))

    assert [(row.status, row.count) for row in report.statuses] == [(OrderStatus.PENDING, 1)]
    assert report.delivery_times is None

    with pytest.raises(ValidationError):
        await service.orders_report(date(2026, 3, 31), date(2026, 3, 1))


async def test_recalculate_pricing_from_line_items(service, customer, menu):
    order = await service.create_order(customer, order_payload((menu["Masala Chai"], 2), (menu["Samosa"], 1)))

    recalculated = await service.recalculate_pricing(order.id)

    assert recalculated.subtotal == 450.0
    assert recalculated.total == 470.0
