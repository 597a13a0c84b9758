"""
Shared fixtures: an in-memory SQLite database, a seeded menu, recording
fakes for notifications and admin broadcasts, and an HTTP client wired
to the FastAPI app through dependency overrides.
"""

import os

os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["NOTIFICATIONS_VIA_QUEUE"] = "false"
os.environ["MOCK_NOTIFICATION_FAILURE_RATE"] = "0"

from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.auth import CurrentUser, UserRole
from app.core.config import Settings
from app.database import Base, get_db
from app.main import app as fastapi_app
from app.main import get_clock
from app.models import MenuItem
from app.repositories import SqlOrderRepository
from app.schemas import DeliveryInfo, OrderCreate, OrderItemCreate
from app.services.notifications import (
    BaseNotificationService,
    NotificationDispatcher,
    NotificationResult,
    StatusNotification,
    get_notification_dispatcher,
)
from app.services.orders import OrderService
from app.services.realtime import BaseBroadcaster, get_broadcaster


# =============================================================================
# FAKES
# =============================================================================

class RecordingBroadcaster(BaseBroadcaster):
    """Keeps every published event; can be told to fail."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    @property
    def provider_name(self) -> str:
        return "recording"

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("broadcast channel down")
        self.events.append((event, payload))

    async def health_check(self) -> bool:
        return True

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class RecordingNotifier(BaseNotificationService):
    """Keeps every status notification; can be told to fail."""

    def __init__(self):
        self.notifications: list[StatusNotification] = []
        self.fail = False

    @property
    def provider_name(self) -> str:
        return "recording"

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        return NotificationResult(success=True, message_id="sms_test", provider="recording")

    async def send_order_status_update(self, notification: StatusNotification) -> NotificationResult:
        if self.fail:
            raise ConnectionError("sms gateway down")
        self.notifications.append(notification)
        return NotificationResult(success=True, message_id="sms_test", provider="recording")

    async def health_check(self) -> bool:
        return True


class FakeClock:
    """Settable replacement for datetime.now."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def menu(session_maker) -> dict[str, int]:
    """Seed the catalog; returns item ids by name."""
    items = [
        MenuItem(name="Masala Chai", price=100.0, category="beverages"),
        MenuItem(name="Samosa", price=250.0, category="snacks"),
        MenuItem(name="Paneer Roll", price=300.0, category="snacks"),
        MenuItem(name="Seasonal Special", price=180.0, category="snacks", is_available=False),
    ]
    async with session_maker() as session:
        session.add_all(items)
        await session.commit()
        return {item.name: item.id for item in items}


# =============================================================================
# SERVICE LAYER
# =============================================================================

@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier)


@pytest.fixture
def settings() -> Settings:
    return Settings(env_mode="development", strict_status_transitions=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 5, 12, 30))


@pytest.fixture
def service(session, dispatcher, broadcaster, settings, clock) -> OrderService:
    return OrderService(SqlOrderRepository(session), dispatcher, broadcaster, settings, clock=clock)


@pytest.fixture
def customer() -> CurrentUser:
    return CurrentUser(id="cust-1", role=UserRole.USER, name="Asha Rao")


@pytest.fixture
def other_customer() -> CurrentUser:
    return CurrentUser(id="cust-2", role=UserRole.USER, name="Vikram Shah")


@pytest.fixture
def staff() -> CurrentUser:
    return CurrentUser(id="staff-1", role=UserRole.STAFF, name="Kitchen")


def order_payload(*lines: tuple[int, int], payment_method: str = "cod") -> OrderCreate:
    """Build an OrderCreate from (menu_item_id, quantity) pairs."""
    return OrderCreate(
        items=[OrderItemCreate(menu_item=item_id, quantity=qty) for item_id, qty in lines],
        payment_method=payment_method,
        delivery_info=DeliveryInfo(
            name="Asha Rao",
            phone="9876543210",
            address="12 MG Road, Indiranagar",
            city="Bengaluru",
        ),
    )


# =============================================================================
# HTTP
# =============================================================================

def user_headers(user_id: str = "cust-1", role: str = "user", name: str = "Asha Rao") -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Role": role, "X-User-Name": name}


@pytest_asyncio.fixture
async def client(session_maker, dispatcher, broadcaster, clock):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    fastapi_app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    fastapi_app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()
