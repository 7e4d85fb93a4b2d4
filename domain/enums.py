"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    UNCONFIRMED = "UNCONFIRMED"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    REFUNDED = "REFUNDED"


class LedgerEntryType(str, Enum):
    ADVANCE = "ADVANCE"
    PAYMENT = "PAYMENT"
    SETTLEMENT = "SETTLEMENT"
    REFUND = "REFUND"

    @property
    def is_payment(self) -> bool:
        return self is not LedgerEntryType.REFUND


class LedgerEntryStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"
    CLEANING = "CLEANING"


class BillStatus(str, Enum):
    PAID = "PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"


class RoomServiceStatus(str, Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ActivityAction(str, Enum):
    CREATE = "CREATE"
    CONFIRM = "CONFIRM"
    PAYMENT = "PAYMENT"
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    COMPLETE = "COMPLETE"
    EXTEND_STAY = "EXTEND_STAY"
    CHANGE_ROOM = "CHANGE_ROOM"
    CANCEL = "CANCEL"
    AUTO_CANCEL = "AUTO_CANCEL"
    NO_SHOW = "NO_SHOW"
    REFUND = "REFUND"
    REFUND_APPROVED = "REFUND_APPROVED"
    ROOM_SERVICE_CHARGE = "ROOM_SERVICE_CHARGE"
    ROOM_SERVICE_REVERSAL = "ROOM_SERVICE_REVERSAL"


class StaffRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class Capability(str, Enum):
    CREATE_RESERVATION = "CREATE_RESERVATION"
    MANAGE_RESERVATIONS = "MANAGE_RESERVATIONS"
    CANCEL_RESERVATION = "CANCEL_RESERVATION"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    PROCESS_REFUNDS = "PROCESS_REFUNDS"
    APPROVE_REFUNDS = "APPROVE_REFUNDS"
    MANAGE_ROOM_SERVICE = "MANAGE_ROOM_SERVICE"
    MANAGE_HOUSEKEEPING = "MANAGE_HOUSEKEEPING"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"
