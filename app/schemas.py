"""
Pydantic Schemas for Request/Response Validation

JSON bodies use camelCase field names (menuItem, deliveryInfo,
paymentMethod, ...). Order and menu item ids are exposed as "_id".
Request bodies also accept the snake_case field names.
"""

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models import (
    CancellationReason,
    MenuItem,
    Order,
    OrderSource,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)


class CamelModel(BaseModel):
    """Base model serialising to camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class CustomizationOption(CamelModel):
    """A customization chosen for a line item (stored, not priced)."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Extra ginger"])
    price: float = Field(default=0.0, ge=0)


class OrderItemCreate(CamelModel):
    """Single item in an order."""
    menu_item: int = Field(..., examples=[1])
    quantity: int = Field(..., ge=1, examples=[2])
    customization: List[CustomizationOption] = Field(default_factory=list)
    special_instructions: Optional[str] = Field(None, max_length=200)


class DeliveryInfo(CamelModel):
    """Where and to whom the order is delivered."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    name: str = Field(..., min_length=2, max_length=100, examples=["Asha Rao"])
    phone: str = Field(..., pattern=r"^[0-9]{10}$", examples=["9876543210"])
    address: str = Field(..., min_length=10, max_length=255, examples=["12 MG Road, Indiranagar"])
    city: Optional[str] = Field(None, max_length=50)
    state: Optional[str] = Field(None, max_length=50)
    zip_code: Optional[str] = Field(None, max_length=10)
    instructions: Optional[str] = Field(None, max_length=500)


class OrderNotesCreate(CamelModel):
    customer: Optional[str] = Field(None, max_length=500)


class OrderCreate(CamelModel):
    """Request schema for creating a new order."""
    items: List[OrderItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod = Field(..., examples=["cod"])
    delivery_info: DeliveryInfo
    notes: Optional[OrderNotesCreate] = None
    source: OrderSource = OrderSource.MOBILE_APP


class StatusUpdate(CamelModel):
    """Staff status change."""
    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=500)


class CancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class RatingCreate(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=500)


class AssignRequest(CamelModel):
    assigned_to: str = Field(..., min_length=1, max_length=64)


class PaymentUpdate(CamelModel):
    """Outcome reported by the payment gateway or the delivery rider."""
    payment_status: PaymentStatus
    transaction_id: Optional[str] = Field(None, max_length=100)
    gateway: Optional[str] = Field(None, max_length=50)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class LineItemResponse(CamelModel):
    menu_item: int
    name: str
    price: float
    quantity: int
    customization: List[dict[str, Any]] = Field(default_factory=list)
    special_instructions: Optional[str] = None
    total_price: float


class PricingResponse(CamelModel):
    subtotal: float
    tax: float
    delivery_fee: float
    discount: float
    total: float


class NotesResponse(CamelModel):
    customer: Optional[str] = None
    kitchen: Optional[str] = None
    delivery: Optional[str] = None


class RatingResponse(CamelModel):
    rating: int
    review: Optional[str] = None
    review_date: Optional[datetime] = None


class PaymentDetailsResponse(CamelModel):
    transaction_id: Optional[str] = None
    gateway: Optional[str] = None
    paid_at: Optional[datetime] = None


class OrderResponse(CamelModel):
    """Response schema for a single order."""
    id: int = Field(..., alias="_id")
    order_number: str
    customer_id: str
    customer_name: str
    items: List[LineItemResponse]
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    payment_details: PaymentDetailsResponse
    delivery_info: DeliveryInfo
    pricing: PricingResponse
    notes: NotesResponse
    rating: Optional[RatingResponse] = None
    source: OrderSource
    assigned_to: Optional[str] = None
    cancellation_reason: Optional[CancellationReason] = None
    cancellation_note: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    preparation_started_at: Optional[datetime] = None
    order_duration_minutes: Optional[int] = None
    is_delayed: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order, now: datetime) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            items=[
                LineItemResponse(
                    menu_item=line["menu_item_id"],
                    name=line["name"],
                    price=line["price"],
                    quantity=line["quantity"],
                    customization=line.get("customization") or [],
                    special_instructions=line.get("special_instructions"),
                    total_price=line["total_price"],
                )
                for line in order.items
            ],
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_details=PaymentDetailsResponse(
                transaction_id=order.payment_transaction_id,
                gateway=order.payment_gateway,
                paid_at=order.paid_at,
            ),
            delivery_info=DeliveryInfo.model_validate(order.delivery_info),
            pricing=PricingResponse(
                subtotal=order.subtotal,
                tax=order.tax,
                delivery_fee=order.delivery_fee,
                discount=order.discount,
                total=order.total,
            ),
            notes=NotesResponse(
                customer=order.customer_note,
                kitchen=order.kitchen_note,
                delivery=order.delivery_note,
            ),
            rating=(
                RatingResponse(rating=order.rating, review=order.review, review_date=order.review_date)
                if order.rating is not None else None
            ),
            source=order.source,
            assigned_to=order.assigned_to,
            cancellation_reason=order.cancellation_reason,
            cancellation_note=order.cancellation_note,
            estimated_delivery_time=order.estimated_delivery_time,
            actual_delivery_time=order.actual_delivery_time,
            preparation_started_at=order.preparation_started_at,
            order_duration_minutes=order.order_duration_minutes,
            is_delayed=order.is_delayed(now),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderSummary(CamelModel):
    """The slice of a new order returned to the customer."""
    id: int = Field(..., alias="_id")
    order_number: str
    status: OrderStatus
    total: float
    estimated_delivery_time: Optional[datetime] = None


class OrderCreateResponse(CamelModel):
    """Response after successfully creating an order."""
    success: bool = True
    message: str
    order: OrderSummary


class PaginationResponse(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(CamelModel):
    """Response for listing multiple orders."""
    success: bool = True
    orders: List[OrderResponse]
    pagination: PaginationResponse


class OrderDetailResponse(CamelModel):
    success: bool = True
    order: OrderResponse


class StatusUpdateResponse(CamelModel):
    success: bool = True
    message: str
    status: OrderStatus
    updated_at: Optional[datetime] = None


class CancelResponse(CamelModel):
    success: bool = True
    message: str
    status: OrderStatus
    cancellation_reason: Optional[CancellationReason] = None


class RatingResultResponse(CamelModel):
    success: bool = True
    message: str
    rating: RatingResponse


class TrackingResponse(CamelModel):
    """Public, read-only projection of an order."""
    order_number: str
    status: OrderStatus
    customer_name: str
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    is_delayed: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order, now: datetime) -> "TrackingResponse":
        return cls(
            order_number=order.order_number,
            status=order.status,
            customer_name=order.customer_name,
            estimated_delivery_time=order.estimated_delivery_time,
            actual_delivery_time=order.actual_delivery_time,
            is_delayed=order.is_delayed(now),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class AssignResponse(CamelModel):
    success: bool = True
    message: str
    assigned_to: str


class PaymentUpdateResponse(CamelModel):
    success: bool = True
    message: str
    payment_status: PaymentStatus
    paid_at: Optional[datetime] = None


class MenuItemResponse(CamelModel):
    id: int = Field(..., alias="_id")
    name: str
    description: Optional[str] = None
    price: float
    category: str
    is_available: bool
    popularity: int
    preparation_time: int

    @classmethod
    def from_item(cls, item: MenuItem) -> "MenuItemResponse":
        return cls(
            id=item.id,
            name=item.name,
            description=item.description,
            price=item.price,
            category=item.category,
            is_available=item.is_available,
            popularity=item.popularity,
            preparation_time=item.preparation_time,
        )


class MenuResponse(CamelModel):
    success: bool = True
    items: List[MenuItemResponse]


class RevenueSummaryResponse(CamelModel):
    total_revenue: float
    total_orders: int
    average_order_value: float


class DailyRevenueResponse(CamelModel):
    day: date = Field(..., alias="date")
    revenue: float
    orders: int


class MonthlyRevenueResponse(CamelModel):
    month: str = Field(..., examples=["2026-03"])
    revenue: float
    orders: int


class CategoryRevenueResponse(CamelModel):
    category: str
    revenue: float
    orders: int


class DashboardResponse(CamelModel):
    success: bool = True
    today_orders: int
    today_revenue: float
    active_orders: int
    popular_items: List[MenuItemResponse]
    recent_orders: List[OrderResponse]
    weekly_revenue: List[DailyRevenueResponse] = Field(default_factory=list)
    monthly_revenue: List[MonthlyRevenueResponse] = Field(default_factory=list)


class RevenueReportResponse(CamelModel):
    success: bool = True
    start_date: date
    end_date: date
    summary: RevenueSummaryResponse
    daily_revenue: List[DailyRevenueResponse]
    category_revenue: List[CategoryRevenueResponse] = Field(default_factory=list)


class StatusCountResponse(CamelModel):
    status: OrderStatus
    count: int


class PaymentMethodBreakdownResponse(CamelModel):
    payment_method: PaymentMethod
    count: int
    revenue: float


class DeliveryTimeStatsResponse(CamelModel):
    """Minutes from placement to delivery."""
    orders: int
    average_minutes: float
    min_minutes: float
    max_minutes: float


class OrdersReportResponse(CamelModel):
    """Order mix for a date range, cancelled and unpaid orders included."""
    success: bool = True
    start_date: date
    end_date: date
    status_breakdown: List[StatusCountResponse]
    payment_breakdown: List[PaymentMethodBreakdownResponse]
    delivery_time_stats: Optional[DeliveryTimeStatsResponse] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    realtime: str
    notification_service: str
    admin_connections: int
    timestamp: datetime
