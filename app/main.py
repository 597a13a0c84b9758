"""
FastAPI Application Entry Point

Food Ordering Pipeline - order intake, status workflow and admin
notifications for a single restaurant.

Endpoints:
    - POST /api/orders: Place an order
    - GET /api/orders: Caller's orders
    - GET /api/orders/tracking/{order_number}: Public tracking
    - PATCH /api/orders/{id}/status | /cancel, POST /api/orders/{id}/rating
    - /api/admin/*: Dashboard, order management, revenue and order reports
    - GET /api/menu: Available menu items
    - WS /ws/admin: Real-time order events for staff
    - GET /health: System health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from datetime import date, datetime
from http import HTTPStatus
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import WS_1008_POLICY_VIOLATION

# Windows-specific event loop policy (psycopg async needs a selector loop)
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from app.core.auth import CurrentUser, get_current_user, require_admin, require_staff, resolve_user
from app.core.config import get_settings, setup_logging
from app.core.exceptions import OrderPipelineError
from app.database import engine, get_db, init_db
from app.models import OrderStatus
from app.repositories import SqlOrderRepository
from app.schemas import (
    AssignRequest,
    AssignResponse,
    CancelRequest,
    CancelResponse,
    CategoryRevenueResponse,
    DailyRevenueResponse,
    DeliveryTimeStatsResponse,
    DashboardResponse,
    ErrorResponse,
    HealthResponse,
    MenuItemResponse,
    MenuResponse,
    MonthlyRevenueResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    OrdersReportResponse,
    OrderSummary,
    PaginationResponse,
    PaymentMethodBreakdownResponse,
    PaymentUpdate,
    PaymentUpdateResponse,
    RatingCreate,
    RatingResponse,
    RatingResultResponse,
    RevenueReportResponse,
    RevenueSummaryResponse,
    StatusCountResponse,
    StatusUpdate,
    StatusUpdateResponse,
    TrackingResponse,
)
from app.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
    get_notification_service,
)
from app.services.orders import OrderListing, OrderService
from app.services.realtime import BaseBroadcaster, get_admin_hub, get_broadcaster
from app.services.realtime.redis_pubsub import RedisBroadcaster

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    notification_service = get_notification_service()
    broadcaster = get_broadcaster()
    logger.info(f"✅ Notification Service: {notification_service.provider_name}")
    logger.info(f"✅ Realtime Broadcaster: {broadcaster.provider_name}")
    if settings.notifications_via_queue:
        logger.info("✅ Notifications queued through Celery")

    relay_task = None
    if isinstance(broadcaster, RedisBroadcaster):
        relay_task = asyncio.create_task(broadcaster.relay())

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    if relay_task is not None:
        relay_task.cancel()
        with suppress(asyncio.CancelledError):
            await relay_task
    await broadcaster.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order intake, status workflow and real-time admin notifications. "
        "Mock services in development, Twilio and Redis in production."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_clock() -> Callable[[], datetime]:
    """Time source for order timestamps and delay checks."""
    return datetime.now


def get_order_service(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    broadcaster: BaseBroadcaster = Depends(get_broadcaster),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OrderService:
    """One OrderService per request, bound to the request's session."""
    return OrderService(SqlOrderRepository(db), dispatcher, broadcaster, settings, clock=clock)


def _order_list_response(listing: OrderListing, now: datetime) -> OrderListResponse:
    return OrderListResponse(
        orders=[OrderResponse.from_order(order, now) for order in listing.orders],
        pagination=PaginationResponse(
            page=listing.pagination.page,
            limit=listing.pagination.limit,
            total=listing.pagination.total,
            pages=listing.pagination.pages,
        ),
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍵 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    broadcaster: BaseBroadcaster = Depends(get_broadcaster),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    realtime_status = "healthy" if await broadcaster.health_check() else "unhealthy"

    notification_service = get_notification_service()
    notification_status = "healthy" if await notification_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, realtime_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        realtime=realtime_status,
        notification_service=notification_status,
        admin_connections=get_admin_hub().connection_count,
        timestamp=datetime.now(),
    )


# =============================================================================
# MENU
# =============================================================================

@app.get("/api/menu", response_model=MenuResponse, tags=["Menu"])
async def list_menu(
    service: OrderService = Depends(get_order_service),
) -> MenuResponse:
    """Menu items currently available for ordering."""
    items = await service.list_menu()
    return MenuResponse(items=[MenuItemResponse.from_item(item) for item in items])


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderCreateResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
) -> OrderCreateResponse:
    """Create a new order for the calling customer."""
    order = await service.create_order(user, order_data)

    return OrderCreateResponse(
        message="Order placed successfully",
        order=OrderSummary(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            total=order.total,
            estimated_delivery_time=order.estimated_delivery_time,
        ),
    )


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List My Orders",
)
async def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    status: Optional[OrderStatus] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """The caller's orders, newest first."""
    listing = await service.list_customer_orders(user, status=status, page=page, limit=limit)
    return _order_list_response(listing, service.clock())


@app.get(
    "/api/orders/tracking/{order_number}",
    response_model=TrackingResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def track_order(
    order_number: str,
    service: OrderService = Depends(get_order_service),
) -> TrackingResponse:
    """Public order tracking by order number."""
    order = await service.track_order(order_number)
    return TrackingResponse.from_order(order, service.clock())


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderDetailResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
) -> OrderDetailResponse:
    """Get a specific order (owner or staff)."""
    order = await service.get_order(user, order_id)
    return OrderDetailResponse(order=OrderResponse.from_order(order, service.clock()))


async def _update_status(service: OrderService, order_id: int, update: StatusUpdate) -> StatusUpdateResponse:
    order = await service.update_status(order_id, update.status, update.notes)
    return StatusUpdateResponse(
        message="Order status updated",
        status=order.status,
        updated_at=order.updated_at,
    )


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=StatusUpdateResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def update_order_status(
    order_id: int,
    update: StatusUpdate,
    user: CurrentUser = Depends(require_staff),
    service: OrderService = Depends(get_order_service),
) -> StatusUpdateResponse:
    """Move an order through the workflow (staff only)."""
    return await _update_status(service, order_id, update)


@app.patch(
    "/api/orders/{order_id}/cancel",
    response_model=CancelResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def cancel_order(
    order_id: int,
    cancellation: Optional[CancelRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
) -> CancelResponse:
    """Cancel an open order (owner or staff)."""
    reason = cancellation.reason if cancellation else None
    order = await service.cancel_order(user, order_id, reason)
    return CancelResponse(
        message="Order cancelled successfully",
        status=order.status,
        cancellation_reason=order.cancellation_reason,
    )


@app.post(
    "/api/orders/{order_id}/rating",
    response_model=RatingResultResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def rate_order(
    order_id: int,
    rating: RatingCreate,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
) -> RatingResultResponse:
    """Rate a delivered order (owner only, once)."""
    order = await service.rate_order(user, order_id, rating.rating, rating.review)
    return RatingResultResponse(
        message="Rating submitted successfully",
        rating=RatingResponse(rating=order.rating, review=order.review, review_date=order.review_date),
    )


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@app.get("/api/admin/dashboard", response_model=DashboardResponse, tags=["Admin"])
async def admin_dashboard(
    user: CurrentUser = Depends(require_staff),
    service: OrderService = Depends(get_order_service),
) -> DashboardResponse:
    """Today's figures, kitchen load, best sellers and recent revenue trend."""
    stats = await service.dashboard_stats()
    return DashboardResponse(
        today_orders=stats.today_orders,
        today_revenue=stats.today_revenue,
        active_orders=stats.active_orders,
        popular_items=[MenuItemResponse.from_item(item) for item in stats.popular_items],
        recent_orders=[OrderResponse.from_order(order, stats.generated_at) for order in stats.recent_orders],
        weekly_revenue=[
            DailyRevenueResponse(day=row.day, revenue=row.revenue, orders=row.orders)
            for row in stats.weekly_revenue
        ],
        monthly_revenue=[
            MonthlyRevenueResponse(month=row.month, revenue=row.revenue, orders=row.orders)
            for row in stats.monthly_revenue
        ],
    )


@app.get("/api/admin/orders", response_model=OrderListResponse, tags=["Admin"])
async def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    day: Optional[date] = Query(None, alias="date"),
    user: CurrentUser = Depends(require_staff),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Every order, optionally filtered by status and calendar day."""
    listing = await service.list_all_orders(status=status, day=day, page=page, limit=limit)
    return _order_list_response(listing, service.clock())


@app.patch(
    "/api/admin/orders/{order_id}/status",
    response_model=StatusUpdateResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def admin_update_order_status(
    order_id: int,
    update: StatusUpdate,
    user: CurrentUser = Depends(require_staff),
    service: OrderService = Depends(get_order_service),
) -> StatusUpdateResponse:
    return await _update_status(service, order_id, update)


@app.patch(
    "/api/admin/orders/{order_id}/assign",
    response_model=AssignResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def admin_assign_order(
    order_id: int,
    assignment: AssignRequest,
    user: CurrentUser = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> AssignResponse:
    """Assign an order to a staff member (admin only)."""
    order = await service.assign_order(order_id, assignment.assigned_to)
    return AssignResponse(message="Order assigned successfully", assigned_to=order.assigned_to)


@app.patch(
    "/api/admin/orders/{order_id}/payment",
    response_model=PaymentUpdateResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def admin_record_payment(
    order_id: int,
    payment: PaymentUpdate,
    user: CurrentUser = Depends(require_staff),
    service: OrderService = Depends(get_order_service),
) -> PaymentUpdateResponse:
    """Record a payment outcome."""
    order = await service.record_payment(
        order_id,
        payment.payment_status,
        transaction_id=payment.transaction_id,
        gateway=payment.gateway,
    )
    return PaymentUpdateResponse(
        message="Payment status updated",
        payment_status=order.payment_status,
        paid_at=order.paid_at,
    )


@app.get(
    "/api/admin/reports/revenue",
    response_model=RevenueReportResponse,
    responses={400: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def admin_revenue_report(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    user: CurrentUser = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> RevenueReportResponse:
    """Paid revenue between two dates, both inclusive (admin only)."""
    report = await service.revenue_report(start_date, end_date)
    return RevenueReportResponse(
        start_date=report.start_date,
        end_date=report.end_date,
        summary=RevenueSummaryResponse(
            total_revenue=report.summary.total_revenue,
            total_orders=report.summary.total_orders,
            average_order_value=report.summary.average_order_value,
        ),
        daily_revenue=[
            DailyRevenueResponse(day=row.day, revenue=row.revenue, orders=row.orders)
            for row in report.daily
        ],
        category_revenue=[
            CategoryRevenueResponse(category=row.category, revenue=row.revenue, orders=row.orders)
            for row in report.categories
        ],
    )


@app.get(
    "/api/admin/reports/orders",
    response_model=OrdersReportResponse,
    responses={400: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def admin_orders_report(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    user: CurrentUser = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
) -> OrdersReportResponse:
    """Status mix, payment methods and delivery times between two dates (admin only)."""
    report = await service.orders_report(start_date, end_date)
    delivery = report.delivery_times
    return OrdersReportResponse(
        start_date=report.start_date,
        end_date=report.end_date,
        status_breakdown=[
            StatusCountResponse(status=row.status, count=row.count) for row in report.statuses
        ],
        payment_breakdown=[
            PaymentMethodBreakdownResponse(
                payment_method=row.payment_method, count=row.count, revenue=row.revenue
            )
            for row in report.payment_methods
        ],
        delivery_time_stats=DeliveryTimeStatsResponse(
            orders=delivery.orders,
            average_minutes=delivery.average_minutes,
            min_minutes=delivery.min_minutes,
            max_minutes=delivery.max_minutes,
        ) if delivery else None,
    )


# =============================================================================
# REAL-TIME ADMIN CHANNEL
# =============================================================================

@app.websocket("/ws/admin")
async def admin_channel(
    websocket: WebSocket,
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    x_user_role: Optional[str] = Header(None, alias="x-user-role"),
    x_user_name: Optional[str] = Header(None, alias="x-user-name"),
) -> None:
    """
    Staff subscribe here to receive new-order, order-status-updated and
    order-cancelled events. Identity comes from the gateway headers only,
    the same ones the REST endpoints trust.
    """
    user = resolve_user(x_user_id, x_user_role, x_user_name)

    if user is None or not user.is_staff:
        caller = f"{user.id} as {user.role.value}" if user else "anonymous"
        logger.warning(f"Rejected admin channel connection ({caller})")
        await websocket.close(code=WS_1008_POLICY_VIOLATION)
        return

    hub = get_admin_hub()
    await hub.connect(websocket)
    try:
        while True:
            # Client messages are ignored; receiving detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(websocket)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def _error(status_code: int, error: str, detail: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


@app.exception_handler(OrderPipelineError)
async def order_pipeline_exception_handler(request: Request, exc: OrderPipelineError) -> JSONResponse:
    """Domain errors carry their own status code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.detail}")
    return _error(exc.status_code, exc.error, exc.detail)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query parameters are a 400, not a 422."""
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
    return _error(400, "validation_error", "; ".join(messages))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error = HTTPStatus(exc.status_code).phrase.lower().replace(" ", "_")
    return _error(exc.status_code, error, str(exc.detail))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return _error(
        500,
        "Internal Server Error",
        str(exc) if settings.debug else "An unexpected error occurred",
    )
