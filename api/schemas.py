"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field, validator
from datetime import datetime, time
from decimal import Decimal
from uuid import UUID
from typing import List, Optional

from domain.enums import (
    ActivityAction, BillStatus, LedgerEntryStatus, LedgerEntryType, ReservationStatus,
    RoomServiceStatus, RoomStatus, StaffRole
)


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    guest_id: UUID
    room_type_id: UUID
    check_in: datetime
    check_out: datetime
    adults: int = Field(ge=1, le=10)
    children: int = Field(ge=0, le=10, default=0)
    extra_beds: int = Field(ge=0, le=5, default=0)
    advance_amount: Decimal = Field(ge=0, default=Decimal("0"))
    payment_mode_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v


class CheckInRequest(BaseModel):
    """Check-in request DTO"""
    room_id: UUID


class CheckOutRequest(BaseModel):
    """Check-out request DTO"""
    settled_amount: Decimal = Field(ge=0, default=Decimal("0"))
    payment_mode_id: Optional[str] = None


class CancelReservationRequest(BaseModel):
    """Cancel reservation request DTO"""
    reason: str = Field("Guest changed plans", min_length=1, max_length=500)


class PaymentRequest(BaseModel):
    """Record payment request DTO"""
    amount: Decimal = Field(gt=0)
    payment_mode_id: Optional[str] = None


class ExtendStayRequest(BaseModel):
    """Extend stay request DTO"""
    new_check_out: datetime


class ChangeRoomRequest(BaseModel):
    """Change room request DTO"""
    new_room_id: UUID
    reason: str = ""


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    confirmation_code: str
    guest_id: UUID
    room_type_id: UUID
    room_id: Optional[UUID] = None
    check_in: datetime
    check_out: datetime
    adults: int
    children: int
    extra_beds: int
    room_charges: Decimal
    extra_bed_charges: Decimal
    service_charges: Decimal
    total_amount: Decimal
    advance_amount: Decimal
    pending_amount: Decimal
    settled_amount: Decimal
    no_show_fee: Decimal
    status: ReservationStatus
    requires_admin_refund: bool
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_date: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    modified_at: datetime
    created_by: Optional[UUID] = None
    version: int

    class Config:
        from_attributes = True


# ============================================================================
# LEDGER / BILLING SCHEMAS
# ============================================================================

class LedgerEntryResponse(BaseModel):
    """Ledger entry response DTO"""
    entry_id: UUID
    reservation_id: UUID
    entry_type: LedgerEntryType
    amount: Decimal
    status: LedgerEntryStatus
    payment_mode_id: Optional[str] = None
    processed_by: Optional[UUID] = None
    description: str
    receipt_number: str
    bill_id: Optional[UUID] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BillResponse(BaseModel):
    """Bill response DTO"""
    bill_id: UUID
    bill_number: str
    room_charges: Decimal
    extra_bed_charges: Decimal
    service_charges: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    status: BillStatus
    created_at: datetime

    class Config:
        from_attributes = True


class CheckOutResponse(BaseModel):
    reservation: ReservationResponse
    bill: BillResponse
    settlement: Optional[LedgerEntryResponse] = None


class CancellationResponse(BaseModel):
    reservation: ReservationResponse
    refund: Optional[LedgerEntryResponse] = None


class RefundResponse(BaseModel):
    reservation: ReservationResponse
    refunds: List[LedgerEntryResponse]


class ActivityLogResponse(BaseModel):
    """Activity log entry response DTO"""
    log_id: UUID
    action: ActivityAction
    description: str
    user_id: Optional[UUID] = None
    timestamp: datetime

    class Config:
        from_attributes = True


# ============================================================================
# ROOM SERVICE / HOUSEKEEPING SCHEMAS
# ============================================================================

class PlaceOrderRequest(BaseModel):
    """Room service order request DTO"""
    reservation_id: UUID
    description: str = Field(min_length=1, max_length=200)
    amount: Decimal = Field(gt=0)
    quantity: int = Field(ge=1, default=1)


class UpdateOrderStatusRequest(BaseModel):
    status: RoomServiceStatus


class RoomServiceOrderResponse(BaseModel):
    """Room service order response DTO"""
    order_id: UUID
    reservation_id: UUID
    room_id: Optional[UUID] = None
    description: str
    quantity: int
    amount: Decimal
    status: RoomServiceStatus
    created_at: datetime
    modified_at: datetime

    class Config:
        from_attributes = True


class RoomResponse(BaseModel):
    room_id: UUID
    number: str
    floor: int
    room_type_id: UUID
    status: RoomStatus
    is_active: bool

    class Config:
        from_attributes = True


# ============================================================================
# SETTINGS / CRON SCHEMAS
# ============================================================================

class HotelPolicyRequest(BaseModel):
    """Hotel policy DTO, used for both reading and updating"""
    check_in_time: time = time(14, 0)
    check_out_time: time = time(12, 0)
    no_show_hours: int = Field(default=24, ge=0, le=48)
    anchor_no_show_to_check_in_time: bool = False
    no_show_refund_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    unconfirmed_hold_hours: int = Field(default=24, ge=1, le=72)
    free_cancellation_hours: int = Field(default=48, ge=0)
    cancellation_fee_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    refund_approval_required: bool = False

    class Config:
        from_attributes = True


class SweepErrorResponse(BaseModel):
    reservation_id: UUID
    error: str
    message: str


class SweepReportResponse(BaseModel):
    """Sweep run summary DTO"""
    processed: int
    cancelled: int
    no_shows: int
    skipped: int
    errors: List[SweepErrorResponse]


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str


class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None


class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: StaffRole
    disabled: bool
