"""Charge calculation, room-service adjustments and ledger arithmetic"""
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from domain.entities import LedgerEntry, Reservation, RoomType
from domain.enums import LedgerEntryStatus, LedgerEntryType, ReservationStatus
from domain.errors import InvalidAmount, InvalidDateRange, ReservationNotCheckedIn
from domain.value_objects import DateRange, StayCharges, ZERO, to_money


# ==================== STAY CHARGES ====================

def count_nights(check_in: datetime, check_out: datetime) -> int:
    """Whole nights between two instants, rounding any part-day up"""
    if check_out <= check_in:
        raise InvalidDateRange(
            "Check-out must be after check-in",
            check_in=check_in,
            check_out=check_out
        )
    return DateRange(check_in=check_in, check_out=check_out).nights()


def compute_stay_charges(
    room_type: RoomType,
    check_in: datetime,
    check_out: datetime,
    extra_beds: int = 0
) -> StayCharges:
    """Price a stay from scratch against a room type"""
    if extra_beds < 0:
        raise InvalidAmount("Extra beds cannot be negative", extra_beds=extra_beds)

    nights = count_nights(check_in, check_out)
    room_charges = to_money(room_type.base_price * nights)
    extra_bed_charges = to_money(extra_beds * room_type.extra_bed_charge * nights)
    return StayCharges(
        nights=nights,
        room_charges=room_charges,
        extra_bed_charges=extra_bed_charges,
        total_amount=room_charges + extra_bed_charges
    )


# ==================== ROOM SERVICE ====================

def apply_service_charge(reservation: Reservation, amount: Decimal,
                         now: Optional[datetime] = None) -> Decimal:
    """Add a room-service charge to an in-house reservation"""
    amount = _positive(amount)
    if reservation.status != ReservationStatus.CHECKED_IN:
        raise ReservationNotCheckedIn(
            "Room service can only be charged to checked-in reservations",
            reservation_id=reservation.reservation_id,
            current_status=reservation.status
        )
    reservation.service_charges = to_money(reservation.service_charges + amount)
    reservation.total_amount = to_money(reservation.total_amount + amount)
    reservation.pending_amount = to_money(reservation.pending_amount + amount)
    reservation.touch(now)
    return amount


def reverse_service_charge(reservation: Reservation, amount: Decimal,
                           now: Optional[datetime] = None) -> Decimal:
    """Take back a room-service charge; returns the amount actually reversed"""
    amount = min(_positive(amount), reservation.service_charges)
    reservation.service_charges = to_money(reservation.service_charges - amount)
    reservation.total_amount = max(ZERO, to_money(reservation.total_amount - amount))
    reservation.pending_amount = max(ZERO, to_money(reservation.pending_amount - amount))
    reservation.touch(now)
    return amount


def _positive(amount: Decimal) -> Decimal:
    amount = to_money(amount)
    if amount <= 0:
        raise InvalidAmount("Amount must be greater than 0", amount=amount)
    return amount


# ==================== LEDGER ====================

def total_paid(entries: Iterable[LedgerEntry]) -> Decimal:
    """Sum of completed advance, payment and settlement entries"""
    return to_money(sum(
        (e.amount for e in entries
         if e.entry_type.is_payment and e.status == LedgerEntryStatus.COMPLETED),
        ZERO
    ))


def total_refunded(entries: Iterable[LedgerEntry]) -> Decimal:
    """Positive sum of completed refunds"""
    return to_money(sum(
        (-e.amount for e in entries
         if e.entry_type == LedgerEntryType.REFUND and e.status == LedgerEntryStatus.COMPLETED),
        ZERO
    ))


def pending_refunds(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    return [
        e for e in entries
        if e.entry_type == LedgerEntryType.REFUND and e.status == LedgerEntryStatus.PENDING
    ]


def net_paid(entries: Iterable[LedgerEntry]) -> Decimal:
    entries = list(entries)
    return to_money(total_paid(entries) - total_refunded(entries))


def refundable_amount(entries: Iterable[LedgerEntry]) -> Decimal:
    """Net paid minus refunds already issued, including those awaiting approval"""
    entries = list(entries)
    committed = sum((-e.amount for e in pending_refunds(entries)), ZERO)
    return max(ZERO, to_money(net_paid(entries) - committed))
