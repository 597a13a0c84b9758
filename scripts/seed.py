"""
Menu Seed Script

Creates the tables and loads a starter menu so orders can be placed.
Run from project root: python scripts/seed.py
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from sqlalchemy import func, select

from app.database import async_session_maker, engine, init_db
from app.models import MenuItem

MENU = [
    {"name": "Masala Chai", "price": 40.0, "category": "beverages", "preparation_time": 5},
    {"name": "Ginger Lemon Tea", "price": 50.0, "category": "beverages", "preparation_time": 5},
    {"name": "Cold Coffee", "price": 120.0, "category": "beverages", "preparation_time": 7},
    {"name": "Samosa", "price": 30.0, "category": "snacks", "preparation_time": 10},
    {"name": "Bun Maska", "price": 60.0, "category": "snacks", "preparation_time": 5},
    {"name": "Paneer Kathi Roll", "price": 180.0, "category": "snacks", "preparation_time": 15},
    {"name": "Vada Pav", "price": 45.0, "category": "snacks", "preparation_time": 8},
    {"name": "Veg Maggi", "price": 90.0, "category": "meals", "preparation_time": 10},
    {"name": "Chole Bhature", "price": 220.0, "category": "meals", "preparation_time": 20},
    {"name": "Gulab Jamun", "price": 70.0, "category": "desserts", "preparation_time": 3},
]


async def seed_menu() -> int:
    """Insert the starter menu when the catalog is empty."""
    await init_db()

    async with async_session_maker() as session:
        existing = (await session.execute(select(func.count(MenuItem.id)))).scalar() or 0
        if existing:
            print(f"ℹ️  Menu already has {existing} items, nothing to do")
            return 0

        session.add_all(MenuItem(**item) for item in MENU)
        await session.commit()

    print(f"✅ Seeded {len(MENU)} menu items")
    return len(MENU)


async def main():
    try:
        await seed_menu()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
