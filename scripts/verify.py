"""
Order Integrity Verification Script

Checks the orders table after a simulation: unique order numbers,
per-day sequences without duplicates, and the pricing invariant
total = subtotal + tax + delivery_fee - discount.
Run from project root: python scripts/verify.py
"""

import asyncio
import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from sqlalchemy import func, select

from app.database import async_session_maker, engine
from app.models import Order, OrderSequence, OrderStatus
from app.services.orders.numbering import order_number_pattern
from app.core.config import get_settings


async def verify_orders() -> bool:
    """Verify order table integrity after simulation."""
    settings = get_settings()
    pattern = order_number_pattern(settings.order_number_prefix)

    print("=" * 60)
    print("🔍 ORDER VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    async with async_session_maker() as session:
        orders = list((await session.execute(select(Order).order_by(Order.id))).scalars().all())
        sequences = {
            row.day: row.last_value
            for row in (await session.execute(select(OrderSequence))).scalars().all()
        }
        by_status = dict(
            (await session.execute(
                select(Order.status, func.count(Order.id)).group_by(Order.status)
            )).all()
        )

    ok = True

    print(f"\n📊 STATISTICS:")
    print(f"   Total Orders: {len(orders)}")
    for status in OrderStatus:
        print(f"   {status.value:<17} {by_status.get(status, 0)}")

    numbers = [order.order_number for order in orders]
    duplicates = len(numbers) - len(set(numbers))
    if duplicates:
        ok = False
        print(f"\n⚠️ {duplicates} duplicate order numbers found!")
    else:
        print(f"\n✅ No duplicate order numbers")

    malformed = [n for n in numbers if not pattern.match(n)]
    if malformed:
        ok = False
        print(f"⚠️ Malformed order numbers: {malformed[:5]}")
    else:
        print(f"✅ All order numbers well-formed")

    per_day: dict[str, int] = {}
    for number in numbers:
        day = number[len(settings.order_number_prefix):len(settings.order_number_prefix) + 6]
        per_day[day] = per_day.get(day, 0) + 1
    for day, count in sorted(per_day.items()):
        if sequences.get(day, 0) < count:
            ok = False
            print(f"⚠️ Day {day}: {count} orders but sequence at {sequences.get(day, 0)}")

    mispriced = [
        order.order_number
        for order in orders
        if abs(order.total - (order.subtotal + order.tax + order.delivery_fee - order.discount)) > 0.005
        or abs(order.subtotal - sum(line["total_price"] for line in order.items)) > 0.005
    ]
    if mispriced:
        ok = False
        print(f"⚠️ Pricing mismatch on: {mispriced[:5]}")
    else:
        print(f"✅ Pricing consistent on every order")

    print(f"\n📋 RECENT ORDERS:")
    print("-" * 60)
    for order in orders[-5:]:
        print(f"   {order.order_number}  {order.customer_name:<20} ₹{order.total:>8.2f}  {order.status.value}")

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FOUND PROBLEMS")
    print("=" * 60)

    return ok


async def main() -> bool:
    try:
        return await verify_orders()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(main()) else 1)
