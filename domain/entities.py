"""Domain Entities - Aggregates"""
import random
import string
from pydantic import BaseModel, Field, validator
from uuid import UUID, uuid4
from datetime import datetime
from typing import Dict, FrozenSet, Optional
from decimal import Decimal

from domain.clock import utcnow
from domain.enums import (
    ReservationStatus, LedgerEntryType, LedgerEntryStatus, RoomStatus,
    BillStatus, RoomServiceStatus, ActivityAction
)
from domain.errors import (
    InvalidAmount, InvalidDateRange, InvalidStatusForTransition,
    InvalidOrderTransition, RoomUnavailable, StateConflictError
)
from domain.value_objects import DateRange, GuestCount, StayCharges, ZERO, to_money

HOLD_EXPIRED_REASON = "payment not received within hold period"

# Statuses in which a reservation holds (or is about to hold) a physical room
ACTIVE_ROOM_STATUSES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
})

# Statuses in which room_id is set
ROOM_ASSIGNED_STATUSES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.CHECKED_IN,
    ReservationStatus.CHECKED_OUT,
    ReservationStatus.COMPLETED,
})

ALLOWED_TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.UNCONFIRMED: frozenset({
        ReservationStatus.CONFIRMED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.CHECKED_IN,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
        ReservationStatus.REFUNDED,
    }),
    ReservationStatus.CHECKED_IN: frozenset({
        ReservationStatus.CHECKED_OUT,
        ReservationStatus.COMPLETED,
    }),
    ReservationStatus.CHECKED_OUT: frozenset({
        ReservationStatus.COMPLETED,
    }),
    ReservationStatus.CANCELLED: frozenset({
        ReservationStatus.REFUNDED,
    }),
    ReservationStatus.NO_SHOW: frozenset({
        ReservationStatus.REFUNDED,
    }),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.REFUNDED: frozenset(),
}


def generate_code(prefix: str = "", length: int = 8) -> str:
    """Random upper-case code used for confirmations, receipts and bills"""
    code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
    return f"{prefix}{code}"


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity

    Owns the status state machine. Every mutating method checks the current
    status against ``ALLOWED_TRANSITIONS`` before touching any field, so a
    rejected transition leaves the object unchanged.
    """

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)
    confirmation_code: str = Field(default_factory=generate_code)

    # References to other aggregates
    guest_id: UUID
    room_type_id: UUID
    room_id: Optional[UUID] = None

    # Stay
    check_in: datetime
    check_out: datetime
    adults: int = 1
    children: int = 0
    extra_beds: int = 0

    # Charges
    room_charges: Decimal = ZERO
    extra_bed_charges: Decimal = ZERO
    service_charges: Decimal = ZERO
    total_amount: Decimal = ZERO
    advance_amount: Decimal = ZERO
    pending_amount: Decimal = ZERO
    settled_amount: Decimal = ZERO
    no_show_fee: Decimal = ZERO

    # Status
    status: ReservationStatus = ReservationStatus.UNCONFIRMED
    requires_admin_refund: bool = False
    cancellation_reason: Optional[str] = None

    # Transition timestamps
    confirmed_at: Optional[datetime] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_date: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    notes: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[UUID] = None
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        guest_id: UUID,
        room_type_id: UUID,
        date_range: DateRange,
        guest_count: GuestCount,
        charges: StayCharges,
        advance_amount: Decimal = ZERO,
        created_by: Optional[UUID] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> "Reservation":
        """Create new reservation; an advance payment confirms it immediately"""
        now = now or utcnow()
        advance_amount = to_money(advance_amount)
        if advance_amount < 0:
            raise InvalidAmount("Advance amount cannot be negative", advance_amount=advance_amount)
        if advance_amount > charges.total_amount:
            raise InvalidAmount(
                "Advance amount cannot exceed the total amount",
                advance_amount=advance_amount,
                total_amount=charges.total_amount
            )

        confirmed = advance_amount > 0
        return Reservation(
            guest_id=guest_id,
            room_type_id=room_type_id,
            check_in=date_range.check_in,
            check_out=date_range.check_out,
            adults=guest_count.adults,
            children=guest_count.children,
            extra_beds=guest_count.extra_beds,
            room_charges=charges.room_charges,
            extra_bed_charges=charges.extra_bed_charges,
            service_charges=ZERO,
            total_amount=charges.total_amount,
            advance_amount=advance_amount,
            pending_amount=charges.total_amount - advance_amount,
            status=ReservationStatus.CONFIRMED if confirmed else ReservationStatus.UNCONFIRMED,
            confirmed_at=now if confirmed else None,
            notes=notes,
            created_at=now,
            modified_at=now,
            created_by=created_by
        )

    # ==================== STATE TRANSITION METHODS ====================
    def can_transition_to(self, target: ReservationStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _transition(self, target: ReservationStatus, action: str, now: Optional[datetime]) -> None:
        if not self.can_transition_to(target):
            raise InvalidStatusForTransition(
                f"Cannot {action} reservation with status {self.status.value}",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action=action
            )
        self.status = target
        self.touch(now)

    def confirm(self, now: Optional[datetime] = None) -> None:
        """Confirm an unconfirmed reservation once money has been received"""
        if self.status != ReservationStatus.UNCONFIRMED:
            raise InvalidStatusForTransition(
                f"Cannot confirm reservation with status {self.status.value}",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="confirm"
            )
        self._transition(ReservationStatus.CONFIRMED, "confirm", now)
        self.confirmed_at = self.modified_at

    def check_in_guest(self, room_id: UUID, now: Optional[datetime] = None) -> None:
        """Assign a room and mark guest as checked in"""
        if self.status != ReservationStatus.CONFIRMED:
            raise InvalidStatusForTransition(
                "Reservation must be confirmed before check-in",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="check in"
            )
        self._transition(ReservationStatus.CHECKED_IN, "check in", now)
        self.room_id = room_id
        self.check_in_time = self.modified_at

    def check_out_guest(self, settled_amount: Decimal, now: Optional[datetime] = None) -> None:
        """Close the stay; the reservation is COMPLETED only when nothing is owed"""
        if self.status != ReservationStatus.CHECKED_IN:
            raise InvalidStatusForTransition(
                "Only checked-in reservations can be checked out",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="check out"
            )
        settled_amount = to_money(settled_amount)
        if settled_amount < 0:
            raise InvalidAmount("Settled amount cannot be negative", settled_amount=settled_amount)
        if settled_amount > self.pending_amount:
            raise InvalidAmount(
                "Settled amount exceeds the outstanding balance",
                settled_amount=settled_amount,
                pending_amount=self.pending_amount
            )

        self.apply_payment(settled_amount)
        target = (
            ReservationStatus.COMPLETED if self.pending_amount == 0
            else ReservationStatus.CHECKED_OUT
        )
        self._transition(target, "check out", now)
        self.settled_amount = to_money(self.settled_amount + settled_amount)
        self.check_out_time = self.modified_at

    def complete(self, now: Optional[datetime] = None) -> None:
        """Close a checked-out reservation whose balance has been settled"""
        if self.pending_amount > 0:
            raise InvalidStatusForTransition(
                "Cannot complete reservation with an outstanding balance",
                reservation_id=self.reservation_id,
                current_status=self.status,
                pending_amount=self.pending_amount,
                action="complete"
            )
        self._transition(ReservationStatus.COMPLETED, "complete", now)

    def cancel(self, reason: str, now: Optional[datetime] = None) -> Optional[UUID]:
        """Cancel reservation; returns the room that should be released, if any"""
        if self.is_checked_in:
            raise InvalidStatusForTransition(
                "Cannot cancel a reservation that has been checked in",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="cancel"
            )
        self._transition(ReservationStatus.CANCELLED, "cancel", now)
        self.cancellation_reason = reason
        self.cancelled_at = self.modified_at
        self.pending_amount = ZERO
        return self._release_room()

    def expire_hold(self, now: Optional[datetime] = None) -> Optional[UUID]:
        """Cancel an unconfirmed booking whose hold period ran out"""
        if self.status != ReservationStatus.UNCONFIRMED:
            raise InvalidStatusForTransition(
                f"Cannot expire hold of reservation with status {self.status.value}",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="expire hold"
            )
        return self.cancel(HOLD_EXPIRED_REASON, now)

    def mark_no_show(
        self,
        fee: Decimal,
        requires_admin_refund: bool,
        now: Optional[datetime] = None
    ) -> Optional[UUID]:
        """Mark guest as no-show; returns the room that should be released, if any"""
        if self.status != ReservationStatus.CONFIRMED or self.is_checked_in:
            raise InvalidStatusForTransition(
                f"Cannot mark as no-show with status {self.status.value}",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="mark no-show"
            )
        self._transition(ReservationStatus.NO_SHOW, "mark no-show", now)
        self.no_show_fee = to_money(fee)
        self.no_show_date = self.modified_at
        self.requires_admin_refund = requires_admin_refund
        self.pending_amount = ZERO
        return self._release_room()

    def mark_refunded(self, now: Optional[datetime] = None) -> Optional[UUID]:
        """Close the reservation after money has been returned"""
        if self.is_checked_in:
            raise InvalidStatusForTransition(
                "Checked-in reservations cannot be refunded",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="refund"
            )
        self._transition(ReservationStatus.REFUNDED, "refund", now)
        self.refunded_at = self.modified_at
        self.requires_admin_refund = False
        self.pending_amount = ZERO
        return self._release_room()

    # ==================== MODIFICATION METHODS ====================
    def apply_payment(self, amount: Decimal) -> None:
        """Reduce the balance owed, never below zero"""
        self.pending_amount = max(ZERO, to_money(self.pending_amount - amount))

    def extend_stay(self, new_check_out: datetime, charges: StayCharges,
                    now: Optional[datetime] = None) -> Decimal:
        """Move check-out later and reprice the stay; returns the extra charge"""
        if self.status not in (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN):
            raise InvalidStatusForTransition(
                f"Cannot extend stay of reservation with status {self.status.value}",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="extend stay"
            )
        if new_check_out <= self.check_out:
            raise InvalidDateRange(
                "New check-out date must be after current check-out date",
                check_out=self.check_out,
                new_check_out=new_check_out
            )

        previous = self.room_charges + self.extra_bed_charges
        delta = to_money(charges.room_charges + charges.extra_bed_charges - previous)

        self.check_out = new_check_out
        self.room_charges = charges.room_charges
        self.extra_bed_charges = charges.extra_bed_charges
        self.total_amount = to_money(self.room_charges + self.extra_bed_charges + self.service_charges)
        self.pending_amount = max(ZERO, to_money(self.pending_amount + delta))
        self.touch(now)
        return delta

    def move_to_room(self, new_room_id: UUID, now: Optional[datetime] = None) -> UUID:
        """Switch an in-house guest to another room; returns the old room"""
        if self.status != ReservationStatus.CHECKED_IN or self.room_id is None:
            raise InvalidStatusForTransition(
                "Can only change room for checked-in reservations",
                reservation_id=self.reservation_id,
                current_status=self.status,
                action="change room"
            )
        old_room_id = self.room_id
        self.room_id = new_room_id
        self.touch(now)
        return old_room_id

    # ==================== QUERY METHODS ====================
    @property
    def is_checked_in(self) -> bool:
        return self.check_in_time is not None

    @property
    def date_range(self) -> DateRange:
        return DateRange(check_in=self.check_in, check_out=self.check_out)

    def get_nights(self) -> int:
        return self.date_range.nights()

    def holds_room_during(self, check_in: datetime, check_out: datetime) -> bool:
        """True when this stay keeps its room busy for part of the window"""
        return (
            self.room_id is not None
            and self.status in ACTIVE_ROOM_STATUSES
            and self.date_range.overlaps(check_in, check_out)
        )

    def charges_balance(self) -> bool:
        """True when total equals the sum of its parts"""
        return self.total_amount == self.room_charges + self.extra_bed_charges + self.service_charges

    # ==================== PRIVATE METHODS ====================
    def _release_room(self) -> Optional[UUID]:
        room_id = self.room_id
        self.room_id = None
        return room_id

    def touch(self, now: Optional[datetime] = None) -> None:
        self.modified_at = now or utcnow()
        self.version += 1


class RoomType(BaseModel):
    """Pricing and capacity template"""
    room_type_id: UUID = Field(default_factory=uuid4)
    name: str
    base_price: Decimal = Field(ge=0)
    extra_bed_charge: Decimal = Field(ge=0, default=ZERO)
    adult_capacity: int = Field(ge=1, default=2)
    child_capacity: int = Field(ge=0, default=0)
    is_active: bool = True

    class Config:
        from_attributes = True


class Room(BaseModel):
    """Physical room"""
    room_id: UUID = Field(default_factory=uuid4)
    number: str
    floor: int = 0
    room_type_id: UUID
    status: RoomStatus = RoomStatus.AVAILABLE
    is_active: bool = True

    class Config:
        from_attributes = True

    @property
    def is_available(self) -> bool:
        return self.is_active and self.status == RoomStatus.AVAILABLE

    def occupy(self) -> None:
        if not self.is_available:
            raise RoomUnavailable(
                f"Room {self.number} is not available",
                room_id=self.room_id,
                room_status=self.status
            )
        self.status = RoomStatus.OCCUPIED

    def release(self) -> None:
        """Free the room after a reservation that held it ends without a stay"""
        if self.status == RoomStatus.OCCUPIED:
            self.status = RoomStatus.AVAILABLE

    def mark_cleaning(self) -> None:
        self.status = RoomStatus.CLEANING

    def mark_clean(self) -> None:
        if self.status != RoomStatus.CLEANING:
            raise StateConflictError(
                f"Room {self.number} is not waiting for cleaning",
                room_id=self.room_id,
                room_status=self.status
            )
        self.status = RoomStatus.AVAILABLE


class LedgerEntry(BaseModel):
    """Signed money movement against a reservation"""
    entry_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID
    entry_type: LedgerEntryType
    amount: Decimal
    status: LedgerEntryStatus = LedgerEntryStatus.COMPLETED
    payment_mode_id: Optional[str] = None
    processed_by: Optional[UUID] = None
    description: str = ""
    receipt_number: str = ""
    bill_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @validator('amount')
    def amount_sign_matches_type(cls, v, values):
        entry_type = values.get('entry_type')
        if entry_type == LedgerEntryType.REFUND and v > 0:
            raise ValueError('Refund amounts must not be positive')
        if entry_type is not None and entry_type.is_payment and v <= 0:
            raise ValueError('Payment amounts must be positive')
        return v

    @staticmethod
    def payment(
        reservation_id: UUID,
        amount: Decimal,
        entry_type: LedgerEntryType = LedgerEntryType.PAYMENT,
        payment_mode_id: Optional[str] = None,
        processed_by: Optional[UUID] = None,
        description: str = "",
        bill_id: Optional[UUID] = None,
        now: Optional[datetime] = None
    ) -> "LedgerEntry":
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount("Payment amount must be greater than 0", amount=amount)
        now = now or utcnow()
        prefixes = {
            LedgerEntryType.ADVANCE: "ADV-",
            LedgerEntryType.PAYMENT: "PAY-",
            LedgerEntryType.SETTLEMENT: "SET-",
        }
        return LedgerEntry(
            reservation_id=reservation_id,
            entry_type=entry_type,
            amount=amount,
            status=LedgerEntryStatus.COMPLETED,
            payment_mode_id=payment_mode_id,
            processed_by=processed_by,
            description=description,
            receipt_number=generate_code(prefixes[entry_type]),
            bill_id=bill_id,
            created_at=now,
            completed_at=now
        )

    @staticmethod
    def refund(
        reservation_id: UUID,
        amount: Decimal,
        pending: bool = False,
        processed_by: Optional[UUID] = None,
        description: str = "",
        now: Optional[datetime] = None
    ) -> "LedgerEntry":
        """Create a refund; ``amount`` is the positive sum being returned"""
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount("Refund amount must be greater than 0", amount=amount)
        now = now or utcnow()
        return LedgerEntry(
            reservation_id=reservation_id,
            entry_type=LedgerEntryType.REFUND,
            amount=-amount,
            status=LedgerEntryStatus.PENDING if pending else LedgerEntryStatus.COMPLETED,
            processed_by=processed_by,
            description=description,
            receipt_number=generate_code("REF-"),
            created_at=now,
            completed_at=None if pending else now
        )

    @property
    def is_completed(self) -> bool:
        return self.status == LedgerEntryStatus.COMPLETED

    def approve(self, processed_by: Optional[UUID] = None, now: Optional[datetime] = None) -> None:
        """PENDING -> COMPLETED; completed entries are immutable"""
        if self.status != LedgerEntryStatus.PENDING:
            raise StateConflictError(
                f"Cannot approve ledger entry with status {self.status.value}",
                entry_id=self.entry_id,
                entry_status=self.status
            )
        self.status = LedgerEntryStatus.COMPLETED
        self.completed_at = now or utcnow()
        if processed_by is not None:
            self.processed_by = processed_by

    def mark_failed(self) -> None:
        if self.status != LedgerEntryStatus.PENDING:
            raise StateConflictError(
                f"Cannot fail ledger entry with status {self.status.value}",
                entry_id=self.entry_id,
                entry_status=self.status
            )
        self.status = LedgerEntryStatus.FAILED


class ActivityLogEntry(BaseModel):
    """Append-only audit record"""
    log_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID
    action: ActivityAction
    description: str
    user_id: Optional[UUID] = None
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True
        frozen = True


class Bill(BaseModel):
    """Final bill issued at check-out"""
    bill_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID
    bill_number: str = Field(default_factory=lambda: generate_code("BILL-"))
    room_charges: Decimal
    extra_bed_charges: Decimal
    service_charges: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    status: BillStatus
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True

    @staticmethod
    def for_reservation(reservation: Reservation, paid_amount: Decimal,
                        now: Optional[datetime] = None) -> "Bill":
        return Bill(
            reservation_id=reservation.reservation_id,
            room_charges=reservation.room_charges,
            extra_bed_charges=reservation.extra_bed_charges,
            service_charges=reservation.service_charges,
            total_amount=reservation.total_amount,
            paid_amount=to_money(paid_amount),
            pending_amount=reservation.pending_amount,
            status=BillStatus.PAID if reservation.pending_amount == 0 else BillStatus.PARTIALLY_PAID,
            created_at=now or utcnow()
        )


ORDER_TRANSITIONS: Dict[RoomServiceStatus, FrozenSet[RoomServiceStatus]] = {
    RoomServiceStatus.PENDING: frozenset({RoomServiceStatus.PREPARING, RoomServiceStatus.CANCELLED}),
    RoomServiceStatus.PREPARING: frozenset({RoomServiceStatus.READY, RoomServiceStatus.CANCELLED}),
    RoomServiceStatus.READY: frozenset({RoomServiceStatus.DELIVERED, RoomServiceStatus.CANCELLED}),
    RoomServiceStatus.DELIVERED: frozenset(),
    RoomServiceStatus.CANCELLED: frozenset({RoomServiceStatus.PENDING}),
}


class RoomServiceOrder(BaseModel):
    """Room-service order charged to an in-house reservation"""
    order_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID
    room_id: Optional[UUID] = None
    description: str
    quantity: int = Field(ge=1, default=1)
    amount: Decimal = Field(gt=0)
    status: RoomServiceStatus = RoomServiceStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True

    def change_status(self, new_status: RoomServiceStatus,
                      now: Optional[datetime] = None) -> RoomServiceStatus:
        """Move the order along its lifecycle; returns the previous status"""
        if new_status not in ORDER_TRANSITIONS[self.status]:
            raise InvalidOrderTransition(
                f"Invalid status transition from {self.status.value} to {new_status.value}",
                order_id=self.order_id,
                current_status=self.status,
                requested_status=new_status
            )
        previous = self.status
        self.status = new_status
        self.modified_at = now or utcnow()
        return previous
