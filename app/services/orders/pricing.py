"""
Order Pricing

Line totals are snapshotted at order time; the aggregate follows

    total = subtotal + tax + delivery_fee - discount

Delivery is free when the subtotal is strictly above the configured
threshold (500 in the current deployment), otherwise a flat fee applies.
"""

from dataclasses import dataclass, asdict
from typing import Iterable, Mapping


@dataclass(frozen=True)
class PricingBreakdown:
    """Aggregate pricing of one order."""
    subtotal: float
    tax: float = 0.0
    delivery_fee: float = 0.0
    discount: float = 0.0

    @property
    def total(self) -> float:
        return round(self.subtotal + self.tax + self.delivery_fee - self.discount, 2)

    def to_dict(self) -> dict[str, float]:
        data = asdict(self)
        data["total"] = self.total
        return data


def line_total(price: float, quantity: int) -> float:
    """Total of one line item: unit price times quantity."""
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")
    return round(price * quantity, 2)


def delivery_fee_for(subtotal: float, free_threshold: float, flat_fee: float) -> float:
    """Flat fee unless the subtotal is strictly above the free-delivery threshold."""
    return 0.0 if subtotal > free_threshold else flat_fee


def calculate_pricing(
    line_totals: Iterable[float],
    free_threshold: float,
    flat_fee: float,
    tax: float = 0.0,
    discount: float = 0.0,
) -> PricingBreakdown:
    """Calculate order subtotal, delivery fee and total."""
    subtotal = round(sum(line_totals), 2)
    return PricingBreakdown(
        subtotal=subtotal,
        tax=tax,
        delivery_fee=delivery_fee_for(subtotal, free_threshold, flat_fee),
        discount=discount,
    )


def recalculate_pricing(items: Iterable[Mapping], tax: float, delivery_fee: float,
                        discount: float) -> PricingBreakdown:
    """Recompute the aggregate from stored line items, keeping fee/tax/discount."""
    subtotal = round(sum(item["total_price"] for item in items), 2)
    return PricingBreakdown(
        subtotal=subtotal,
        tax=tax,
        delivery_fee=delivery_fee,
        discount=discount,
    )
