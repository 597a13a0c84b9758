"""
Repository Module

Persistence interface of the order pipeline and its SQLAlchemy
implementation.

Usage:
    from app.repositories import SqlOrderRepository

    repository = SqlOrderRepository(session)
"""

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
from app.repositories.sql import SqlOrderRepository

__all__ = [
    "BaseOrderRepository",
    "CategoryRevenue",
    "DailyRevenue",
    "DeliveryTimeStats",
    "OrderPage",
    "PaymentMethodBreakdown",
    "RevenueSummary",
    "StatusCount",
    "SqlOrderRepository",
]
