"""
Order Pipeline

Pricing, order numbering, the status workflow and the OrderService that
ties them to persistence, notifications and real-time events.
"""

from app.services.orders.numbering import day_key, format_order_number
from app.services.orders.pricing import (
    PricingBreakdown,
    calculate_pricing,
    delivery_fee_for,
    line_total,
    recalculate_pricing,
)
from app.services.orders.service import (
    DashboardStats,
    MonthlyRevenue,
    OrderListing,
    OrderService,
    OrdersReport,
    Pagination,
    RevenueReport,
)
from app.services.orders.transitions import (
    STRICT_TRANSITIONS,
    ensure_transition_allowed,
    is_transition_allowed,
)

__all__ = [
    "OrderService",
    "OrderListing",
    "Pagination",
    "DashboardStats",
    "MonthlyRevenue",
    "RevenueReport",
    "OrdersReport",
    "PricingBreakdown",
    "calculate_pricing",
    "delivery_fee_for",
    "line_total",
    "recalculate_pricing",
    "day_key",
    "format_order_number",
    "STRICT_TRANSITIONS",
    "ensure_transition_allowed",
    "is_transition_allowed",
]
