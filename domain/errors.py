"""Domain Errors

Every guard failure in the reservation core raises one of these. They all
derive from ``ValueError`` so callers that only care about "the request was
rejected" can keep catching that, while the HTTP layer and the sweep job can
inspect ``code`` and ``context`` to report what went wrong.
"""
from typing import Any, Dict


class ReservationError(ValueError):
    """Base class for reservation and billing errors"""

    code = "RESERVATION_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "context": {key: _plain(value) for key, value in self.context.items()},
        }


def _plain(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (int, float, bool, str)) or value is None:
        return value
    return str(value)


# ==================== VALIDATION ====================

class ValidationError(ReservationError):
    code = "VALIDATION_ERROR"


class InvalidDateRange(ValidationError):
    code = "INVALID_DATE_RANGE"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class InvalidGuestCount(ValidationError):
    code = "INVALID_GUEST_COUNT"


class NotFoundError(ReservationError):
    code = "NOT_FOUND"


class ReservationNotFound(NotFoundError):
    code = "RESERVATION_NOT_FOUND"


class RoomTypeNotFound(NotFoundError):
    code = "ROOM_TYPE_NOT_FOUND"


class RoomNotFound(NotFoundError):
    code = "ROOM_NOT_FOUND"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"


# ==================== STATE CONFLICTS ====================

class StateConflictError(ReservationError):
    code = "STATE_CONFLICT"


class InvalidStatusForTransition(StateConflictError):
    code = "INVALID_STATUS_FOR_TRANSITION"


class RoomUnavailable(StateConflictError):
    code = "ROOM_UNAVAILABLE"


class AlreadyRefunded(StateConflictError):
    code = "ALREADY_REFUNDED"


class ReservationNotCheckedIn(StateConflictError):
    code = "RESERVATION_NOT_CHECKED_IN"


class InvalidOrderTransition(StateConflictError):
    code = "INVALID_ORDER_TRANSITION"


# ==================== ACCESS / INFRASTRUCTURE ====================

class PermissionDenied(ReservationError):
    code = "PERMISSION_DENIED"


class PolicyNotConfigured(ReservationError):
    code = "POLICY_NOT_CONFIGURED"


class TransactionFailed(ReservationError):
    code = "TRANSACTION_FAILED"
