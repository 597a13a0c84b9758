"""
Rush Hour Simulation Script

Fires concurrent orders at a running API and checks that every order got
a distinct order number, then walks a few of them through the kitchen
workflow.
Run from project root: python scripts/simulate.py
"""

import argparse
import asyncio
import os
import random
import re
import sys
import time
from datetime import datetime
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
ORDER_NUMBER = re.compile(r"^CP\d{6}\d{3,}$")

FIRST_NAMES = ["Asha", "Vikram", "Meera", "Rohan", "Priya", "Arjun", "Kavya", "Neha", "Karan", "Isha"]
LAST_NAMES = ["Rao", "Shah", "Iyer", "Mehta", "Nair", "Gupta", "Reddy", "Das", "Kapoor", "Joshi"]
STREETS = ["MG Road", "Brigade Road", "Church Street", "100 Feet Road", "CMH Road", "Residency Road"]
STAFF_HEADERS = {"X-User-Id": "sim-staff", "X-User-Role": "staff", "X-User-Name": "Simulator"}


def generate_random_customer() -> dict[str, str]:
    """Generate random delivery info."""
    return {
        "name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "phone": f"9{random.randint(100000000, 999999999)}",
        "address": f"{random.randint(1, 999)}, {random.choice(STREETS)}, Bengaluru",
        "city": "Bengaluru",
    }


def generate_order_payload(menu_ids: list[int]) -> dict[str, Any]:
    """Random order over the available menu."""
    picks = random.sample(menu_ids, k=min(len(menu_ids), random.randint(1, 3)))
    return {
        "items": [{"menuItem": item_id, "quantity": random.randint(1, 3)} for item_id in picks],
        "paymentMethod": random.choice(["cod", "upi", "card", "wallet"]),
        "deliveryInfo": generate_random_customer(),
        "notes": {"customer": random.choice([None, "Less sugar", "Extra chutney", "Ring the bell"])},
    }


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    menu_ids: list[int],
) -> dict[str, Any]:
    """Place one order as a random customer."""
    headers = {"X-User-Id": f"sim-customer-{order_num}", "X-User-Role": "user"}
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(menu_ids),
            headers=headers,
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            order = response.json()["order"]
            return {
                "order_num": order_num,
                "success": True,
                "order_id": order["_id"],
                "order_number": order["orderNumber"],
                "total": order["total"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def walk_workflow(client: httpx.AsyncClient, order_id: int) -> bool:
    """Move one order from pending to delivered."""
    for status in ["confirmed", "preparing", "ready", "out-for-delivery", "delivered"]:
        response = await client.patch(
            f"{API_BASE_URL}/api/orders/{order_id}/status",
            json={"status": status, "notes": "simulated"},
            headers=STAFF_HEADERS,
        )
        if response.status_code != 200:
            print(f"   ❌ Order {order_id} stuck before {status}: {response.text[:100]}")
            return False
    return True


async def run_simulation(num_orders: int = TOTAL_ORDERS, workflow_samples: int = 5) -> bool:
    """
    Run the rush hour simulation.

    Args:
        num_orders: Number of concurrent orders
        workflow_samples: How many orders to push through to delivered
    """
    print("=" * 70)
    print("🔥 RUSH HOUR SIMULATION - CONCURRENT ORDER INTAKE")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        menu = await client.get(f"{API_BASE_URL}/api/menu")
        menu.raise_for_status()
        menu_ids = [item["_id"] for item in menu.json()["items"]]
        if not menu_ids:
            print("\n❌ Menu is empty. Run: python scripts/seed.py")
            return False

        start = time.time()
        results = await asyncio.gather(
            *(send_order(client, n, menu_ids) for n in range(1, num_orders + 1))
        )
        total_time = round(time.time() - start, 3)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]
        numbers = [r["order_number"] for r in successful]
        duplicates = len(numbers) - len(set(numbers))
        malformed = [n for n in numbers if not ORDER_NUMBER.match(n)]

        print("\n" + "=" * 70)
        print("📊 SIMULATION RESULTS")
        print("=" * 70)
        print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
        print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
        print(f"⏱️  Total Time: {total_time}s")

        if successful:
            times = [r["time"] for r in successful]
            print(f"\n📈 Performance Metrics:")
            print(f"   Average Response: {round(sum(times) / len(times), 3)}s")
            print(f"   Fastest: {min(times)}s")
            print(f"   Slowest: {max(times)}s")
            print(f"   💰 Order Value: ₹{sum(r['total'] for r in successful):.2f}")

        print(f"\n🔢 Order Numbers:")
        print(f"   Duplicates: {duplicates}")
        print(f"   Malformed: {len(malformed)}")

        if failed:
            print(f"\n⚠️  Failed Order Details (showing first 5):")
            for f in failed[:5]:
                print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

        print(f"\n🍳 Walking {min(workflow_samples, len(successful))} orders through the kitchen...")
        walked = [await walk_workflow(client, r["order_id"]) for r in successful[:workflow_samples]]

    ok = not failed and duplicates == 0 and not malformed and all(walked)
    print("\n" + "=" * 70)
    print("✅ SIMULATION PASSED" if ok else "❌ SIMULATION FOUND PROBLEMS")
    print("   Next: python scripts/verify.py")
    print("=" * 70)
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush Hour Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--workflow", type=int, default=5, help="Orders to push through to delivered")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    passed = asyncio.run(run_simulation(num_orders=args.orders, workflow_samples=args.workflow))
    sys.exit(0 if passed else 1)
