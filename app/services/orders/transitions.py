"""
Order Status Transition Rules

Two policies are supported:

- permissive (default): any status value may be written while the order is
  not terminal. This is how the kitchen staff currently work, including
  skipping steps on a busy night.
- strict: only the kitchen workflow below is allowed, with cancellation
  possible from any open state.

In both policies delivered and cancelled orders are frozen.
"""

from app.core.exceptions import InvalidStateTransition
from app.models import OrderStatus, TERMINAL_STATUSES

STRICT_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def is_transition_allowed(current: OrderStatus, target: OrderStatus, strict: bool = False) -> bool:
    """Check whether an order in `current` may move to `target`."""
    if current in TERMINAL_STATUSES:
        return False
    if not strict:
        return True
    return target in STRICT_TRANSITIONS[current]


def ensure_transition_allowed(current: OrderStatus, target: OrderStatus, strict: bool = False) -> None:
    """Raise InvalidStateTransition when the move is not permitted."""
    if current in TERMINAL_STATUSES:
        raise InvalidStateTransition(
            f"Order is already {current.value}; its status can no longer change"
        )
    if not is_transition_allowed(current, target, strict):
        allowed = sorted(s.value for s in STRICT_TRANSITIONS[current])
        raise InvalidStateTransition(
            f"Cannot move order from {current.value} to {target.value}. Allowed: {allowed}"
        )
