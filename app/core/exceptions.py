"""
Order Pipeline Error Taxonomy

Every request-scoped failure raised by the order pipeline derives from
OrderPipelineError. The HTTP layer turns these into the standard
ErrorResponse body; nothing below the routes knows about status codes
beyond the attribute carried here.
"""

from typing import Optional


class OrderPipelineError(Exception):
    """Base class for failures that map to a structured error response."""

    status_code: int = 400
    error: str = "order_error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.error
        super().__init__(self.detail)


class ValidationError(OrderPipelineError):
    """Request is malformed or missing required fields."""
    status_code = 400
    error = "validation_error"


class ItemsUnavailable(OrderPipelineError):
    """Some items are not available."""
    status_code = 400
    error = "items_unavailable"

    def __init__(self, missing_ids: Optional[list[int]] = None, detail: Optional[str] = None):
        self.missing_ids = sorted(missing_ids or [])
        super().__init__(detail)


class NotFound(OrderPipelineError):
    """Resource not found."""
    status_code = 404
    error = "not_found"


class Forbidden(OrderPipelineError):
    """Access denied."""
    status_code = 403
    error = "forbidden"


class InvalidStateTransition(OrderPipelineError):
    """Operation is not allowed in the order's current status."""
    status_code = 400
    error = "invalid_state_transition"


class InvalidState(OrderPipelineError):
    """Order is not in the status this operation requires."""
    status_code = 400
    error = "invalid_state"


class AlreadyRated(OrderPipelineError):
    """Order already rated."""
    status_code = 400
    error = "already_rated"


__all__ = [
    "OrderPipelineError",
    "ValidationError",
    "ItemsUnavailable",
    "NotFound",
    "Forbidden",
    "InvalidStateTransition",
    "InvalidState",
    "AlreadyRated",
]
