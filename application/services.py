"""Application Services - Business use cases

Each public method runs one unit of work: it loads the aggregates it needs,
drives the domain objects, writes ledger and activity-log entries, and
commits everything together. A domain error raised anywhere inside the
``async with`` block rolls the whole unit back.
"""
import logging
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

from application.notifications import LoggingNotifier, Notifier
from application.permissions import PermissionChecker, RolePermissionChecker
from domain import billing, policy as policy_engine
from domain.auth import User
from domain.clock import as_utc, utcnow
from domain.entities import (
    ActivityLogEntry, Bill, LedgerEntry, Reservation, Room, RoomServiceOrder
)
from domain.enums import (
    ActivityAction, Capability, LedgerEntryType, ReservationStatus, RoomServiceStatus
)
from domain.errors import (
    AlreadyRefunded, InvalidAmount, InvalidDateRange, InvalidGuestCount,
    InvalidStatusForTransition, OrderNotFound, PolicyNotConfigured,
    ReservationNotFound, RoomNotFound, RoomTypeNotFound, RoomUnavailable
)
from domain.repositories import UnitOfWork
from domain.value_objects import DateRange, GuestCount, HotelPolicy, ZERO, to_money

logger = logging.getLogger(__name__)

UnitOfWorkFactory = Callable[[], UnitOfWork]

PAYABLE_STATUSES = frozenset({
    ReservationStatus.UNCONFIRMED,
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
    ReservationStatus.CHECKED_OUT,
})

REFUNDABLE_STATUSES = frozenset({
    ReservationStatus.CONFIRMED,
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
})


# ==================== RESULTS ====================

class CheckOutResult(BaseModel):
    reservation: Reservation
    bill: Bill
    settlement: Optional[LedgerEntry] = None


class CancellationResult(BaseModel):
    reservation: Reservation
    refund: Optional[LedgerEntry] = None


class RefundResult(BaseModel):
    reservation: Reservation
    refunds: List[LedgerEntry]


# ==================== SHARED UNIT-OF-WORK STEPS ====================

async def load_reservation(uow: UnitOfWork, reservation_id: UUID) -> Reservation:
    """Load and lock a reservation, or raise ReservationNotFound"""
    reservation = await uow.reservations.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFound(
            f"Reservation {reservation_id} not found",
            reservation_id=reservation_id
        )
    return reservation


async def load_room(uow: UnitOfWork, room_id: UUID) -> Room:
    room = await uow.rooms.get_for_update(room_id)
    if room is None:
        raise RoomNotFound(f"Room {room_id} not found", room_id=room_id)
    return room


async def record_activity(
    uow: UnitOfWork,
    reservation: Reservation,
    action: ActivityAction,
    description: str,
    actor: Optional[User],
    now: datetime
) -> ActivityLogEntry:
    entry = ActivityLogEntry(
        reservation_id=reservation.reservation_id,
        action=action,
        description=description,
        user_id=actor.user_id if actor else None,
        timestamp=now
    )
    return await uow.activity_log.add(entry)


async def charge_room_service(
    uow: UnitOfWork,
    reservation_id: UUID,
    amount: Decimal,
    actor: Optional[User],
    now: datetime,
    description: str = "Room service"
) -> Reservation:
    reservation = await load_reservation(uow, reservation_id)
    charged = billing.apply_service_charge(reservation, amount, now)
    await uow.reservations.save(reservation)
    await record_activity(
        uow, reservation, ActivityAction.ROOM_SERVICE_CHARGE,
        f"{description}: charged {charged}; total {reservation.total_amount}, "
        f"pending {reservation.pending_amount}",
        actor, now
    )
    return reservation


async def reverse_room_service(
    uow: UnitOfWork,
    reservation_id: UUID,
    amount: Decimal,
    actor: Optional[User],
    now: datetime,
    description: str = "Room service"
) -> Reservation:
    reservation = await load_reservation(uow, reservation_id)
    reversed_amount = billing.reverse_service_charge(reservation, amount, now)
    await uow.reservations.save(reservation)
    await record_activity(
        uow, reservation, ActivityAction.ROOM_SERVICE_REVERSAL,
        f"{description}: reversed {reversed_amount}; total {reservation.total_amount}, "
        f"pending {reservation.pending_amount}",
        actor, now
    )
    return reservation


def require_status(reservation: Reservation, allowed, action: str) -> None:
    if reservation.status not in allowed:
        raise InvalidStatusForTransition(
            f"Cannot {action} reservation with status {reservation.status.value}",
            reservation_id=reservation.reservation_id,
            current_status=reservation.status,
            action=action
        )


class ReservationService:
    """Service for Reservation business use cases"""

    def __init__(self,
                 uow_factory: UnitOfWorkFactory,
                 permissions: Optional[PermissionChecker] = None,
                 notifier: Optional[Notifier] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.uow_factory = uow_factory
        self.permissions = permissions or RolePermissionChecker()
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock

    # ==================== BOOKING ====================

    async def create_reservation(
        self,
        actor: Optional[User],
        room_type_id: UUID,
        guest_id: UUID,
        check_in: datetime,
        check_out: datetime,
        adults: int,
        children: int = 0,
        extra_beds: int = 0,
        advance_amount: Decimal = ZERO,
        payment_mode_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Reservation:
        """Create new reservation; an advance payment confirms it immediately"""
        self.permissions.require(actor, Capability.CREATE_RESERVATION)
        now = self.clock()
        check_in, check_out = as_utc(check_in), as_utc(check_out)
        if check_out <= check_in:
            raise InvalidDateRange(
                "Check-out must be after check-in",
                check_in=check_in,
                check_out=check_out
            )
        try:
            guest_count = GuestCount(adults=adults, children=children, extra_beds=extra_beds)
        except PydanticValidationError as e:
            raise InvalidGuestCount(
                "Invalid guest count",
                adults=adults,
                children=children,
                extra_beds=extra_beds
            ) from e

        async with self.uow_factory() as uow:
            room_type = await uow.room_types.get(room_type_id)
            if room_type is None or not room_type.is_active:
                raise RoomTypeNotFound(
                    f"Room type {room_type_id} not found",
                    room_type_id=room_type_id
                )
            if adults > room_type.adult_capacity or children > room_type.child_capacity:
                raise InvalidGuestCount(
                    f"Room type {room_type.name} holds at most {room_type.adult_capacity} adults "
                    f"and {room_type.child_capacity} children",
                    adults=adults,
                    children=children,
                    room_type_id=room_type_id
                )

            charges = billing.compute_stay_charges(room_type, check_in, check_out, extra_beds)
            reservation = Reservation.create(
                guest_id=guest_id,
                room_type_id=room_type_id,
                date_range=DateRange(check_in=check_in, check_out=check_out),
                guest_count=guest_count,
                charges=charges,
                advance_amount=advance_amount,
                created_by=actor.user_id if actor else None,
                notes=notes,
                now=now
            )
            await uow.reservations.save(reservation)

            description = (
                f"Reservation {reservation.confirmation_code} created for {charges.nights} "
                f"night(s); total {reservation.total_amount}"
            )
            if reservation.advance_amount > 0:
                await uow.ledger.add(LedgerEntry.payment(
                    reservation.reservation_id,
                    reservation.advance_amount,
                    entry_type=LedgerEntryType.ADVANCE,
                    payment_mode_id=payment_mode_id,
                    processed_by=actor.user_id if actor else None,
                    description="Advance payment",
                    now=now
                ))
                description += f"; advance {reservation.advance_amount} received"
            await record_activity(uow, reservation, ActivityAction.CREATE, description, actor, now)
            await uow.commit()

        logger.info(
            "Created reservation %s with status %s",
            reservation.reservation_id, reservation.status.value
        )
        if reservation.status == ReservationStatus.CONFIRMED:
            await self._notify_confirmed(reservation)
        return reservation

    # ==================== QUERIES ====================

    async def get_reservation(self, reservation_id: UUID) -> Reservation:
        async with self.uow_factory() as uow:
            reservation = await uow.reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFound(
                f"Reservation {reservation_id} not found",
                reservation_id=reservation_id
            )
        return reservation

    async def list_reservations(self, status: Optional[ReservationStatus] = None) -> List[Reservation]:
        async with self.uow_factory() as uow:
            if status is None:
                return await uow.reservations.find_all()
            return await uow.reservations.find_by_status(status)

    async def get_ledger(self, reservation_id: UUID) -> List[LedgerEntry]:
        async with self.uow_factory() as uow:
            await self._ensure_exists(uow, reservation_id)
            return await uow.ledger.find_by_reservation(reservation_id)

    async def get_activity_log(self, reservation_id: UUID) -> List[ActivityLogEntry]:
        async with self.uow_factory() as uow:
            await self._ensure_exists(uow, reservation_id)
            return await uow.activity_log.find_by_reservation(reservation_id)

    # ==================== FRONT DESK ====================

    async def check_in(self, actor: Optional[User], reservation_id: UUID, room_id: UUID) -> Reservation:
        """Assign a physical room to a confirmed reservation"""
        self.permissions.require(actor, Capability.MANAGE_RESERVATIONS)
        now = self.clock()
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            require_status(reservation, {ReservationStatus.CONFIRMED}, "check in")
            room = await self._claim_room(uow, reservation, room_id)
            reservation.check_in_guest(room.room_id, now)
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation, ActivityAction.CHECK_IN,
                f"Checked in to room {room.number}", actor, now
            )
            await uow.commit()

        logger.info("Checked in reservation %s to room %s", reservation_id, room.number)
        return reservation

    async def check_out(
        self,
        actor: Optional[User],
        reservation_id: UUID,
        settled_amount: Decimal = ZERO,
        payment_mode_id: Optional[str] = None
    ) -> CheckOutResult:
        """Settle, bill and close a stay; the room goes to housekeeping"""
        self.permissions.require(actor, Capability.MANAGE_RESERVATIONS)
        now = self.clock()
        settled_amount = to_money(settled_amount)
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            paid_before = billing.net_paid(await uow.ledger.find_by_reservation(reservation_id))
            reservation.check_out_guest(settled_amount, now)

            bill = Bill.for_reservation(reservation, paid_before + settled_amount, now)
            await uow.bills.add(bill)

            settlement = None
            if settled_amount > 0:
                settlement = await uow.ledger.add(LedgerEntry.payment(
                    reservation_id,
                    settled_amount,
                    entry_type=LedgerEntryType.SETTLEMENT,
                    payment_mode_id=payment_mode_id,
                    processed_by=actor.user_id if actor else None,
                    description=f"Settlement for bill {bill.bill_number}",
                    bill_id=bill.bill_id,
                    now=now
                ))

            room = await load_room(uow, reservation.room_id)
            room.mark_cleaning()
            await uow.rooms.save(room)
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation, ActivityAction.CHECK_OUT,
                f"Checked out of room {room.number}; bill {bill.bill_number} total "
                f"{bill.total_amount}, settled {settled_amount}, pending {reservation.pending_amount}",
                actor, now
            )
            await uow.commit()

        logger.info(
            "Checked out reservation %s with status %s",
            reservation_id, reservation.status.value
        )
        return CheckOutResult(reservation=reservation, bill=bill, settlement=settlement)

    async def change_room(
        self,
        actor: Optional[User],
        reservation_id: UUID,
        new_room_id: UUID,
        reason: str = ""
    ) -> Reservation:
        """Move an in-house guest; the vacated room goes to housekeeping"""
        self.permissions.require(actor, Capability.MANAGE_RESERVATIONS)
        now = self.clock()
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            require_status(reservation, {ReservationStatus.CHECKED_IN}, "change room for")
            if reservation.room_id == new_room_id:
                raise RoomUnavailable(
                    "Guest is already in this room",
                    room_id=new_room_id,
                    reservation_id=reservation_id
                )
            new_room = await self._claim_room(uow, reservation, new_room_id)
            old_room = await load_room(uow, reservation.move_to_room(new_room.room_id, now))
            old_room.mark_cleaning()
            await uow.rooms.save(old_room)
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation, ActivityAction.CHANGE_ROOM,
                f"Moved from room {old_room.number} to room {new_room.number}"
                + (f": {reason}" if reason else ""),
                actor, now
            )
            await uow.commit()

        logger.info(
            "Moved reservation %s from room %s to room %s",
            reservation_id, old_room.number, new_room.number
        )
        return reservation

    async def extend_stay(self, actor: Optional[User], reservation_id: UUID,
                          new_check_out: datetime) -> Reservation:
        """Push check-out later and charge the extra nights"""
        self.permissions.require(actor, Capability.MANAGE_RESERVATIONS)
        now = self.clock()
        new_check_out = as_utc(new_check_out)
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            require_status(
                reservation,
                {ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN},
                "extend stay of"
            )
            room_type = await uow.room_types.get(reservation.room_type_id)
            if room_type is None:
                raise RoomTypeNotFound(
                    f"Room type {reservation.room_type_id} not found",
                    room_type_id=reservation.room_type_id
                )
            old_check_out = reservation.check_out
            charges = billing.compute_stay_charges(
                room_type, reservation.check_in, new_check_out, reservation.extra_beds
            )
            delta = reservation.extend_stay(new_check_out, charges, now)
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation, ActivityAction.EXTEND_STAY,
                f"Stay extended from {old_check_out:%Y-%m-%d %H:%M} to "
                f"{new_check_out:%Y-%m-%d %H:%M}; additional charge {delta}, "
                f"total {reservation.total_amount}",
                actor, now
            )
            await uow.commit()

        logger.info("Extended reservation %s by %s", reservation_id, delta)
        return reservation

    # ==================== MONEY ====================

    async def record_payment(
        self,
        actor: Optional[User],
        reservation_id: UUID,
        amount: Decimal,
        payment_mode_id: Optional[str] = None
    ) -> LedgerEntry:
        """Record money received; the first payment confirms a booking"""
        self.permissions.require(actor, Capability.RECORD_PAYMENT)
        now = self.clock()
        amount = to_money(amount)
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            require_status(reservation, PAYABLE_STATUSES, "record payment for")
            if amount > reservation.pending_amount:
                raise InvalidAmount(
                    "Payment exceeds the outstanding balance",
                    amount=amount,
                    pending_amount=reservation.pending_amount
                )
            entry = await uow.ledger.add(LedgerEntry.payment(
                reservation_id,
                amount,
                payment_mode_id=payment_mode_id,
                processed_by=actor.user_id if actor else None,
                description="Payment received",
                now=now
            ))
            reservation.apply_payment(amount)
            reservation.touch(now)
            await record_activity(
                uow, reservation, ActivityAction.PAYMENT,
                f"Payment {entry.receipt_number} of {amount} received; pending "
                f"{reservation.pending_amount}",
                actor, now
            )

            confirmed = reservation.status == ReservationStatus.UNCONFIRMED
            if confirmed:
                reservation.confirm(now)
                await record_activity(
                    uow, reservation, ActivityAction.CONFIRM,
                    f"Confirmed on payment of {amount}", actor, now
                )
            elif (reservation.status == ReservationStatus.CHECKED_OUT
                  and reservation.pending_amount == 0):
                reservation.complete(now)
                await record_activity(
                    uow, reservation, ActivityAction.COMPLETE,
                    "Outstanding balance settled", actor, now
                )
            await uow.reservations.save(reservation)
            await uow.commit()

        logger.info("Recorded payment of %s for reservation %s", amount, reservation_id)
        if confirmed:
            await self._notify_confirmed(reservation)
        return entry

    async def cancel(self, actor: Optional[User], reservation_id: UUID,
                     reason: str) -> CancellationResult:
        """Cancel a booking that has not been checked in and refund net paid less any fee"""
        self.permissions.require(actor, Capability.CANCEL_RESERVATION)
        now = self.clock()
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            hotel_policy = await uow.policy.get() or HotelPolicy()
            refundable = billing.refundable_amount(
                await uow.ledger.find_by_reservation(reservation_id)
            )
            fee = policy_engine.cancellation_fee(reservation, hotel_policy, now, refundable)

            await self._release(uow, reservation.cancel(reason, now))
            refund = None
            refund_amount = to_money(refundable - fee)
            if refund_amount > 0:
                refund = await uow.ledger.add(LedgerEntry.refund(
                    reservation_id,
                    refund_amount,
                    processed_by=actor.user_id if actor else None,
                    description=f"Cancellation refund: {reason}",
                    now=now
                ))
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation, ActivityAction.CANCEL,
                f"Cancelled: {reason}; refunded {refund_amount if refund else ZERO}, "
                f"cancellation fee {fee}",
                actor, now
            )
            await uow.commit()

        logger.info("Cancelled reservation %s", reservation_id)
        return CancellationResult(reservation=reservation, refund=refund)

    async def refund(self, actor: Optional[User], reservation_id: UUID) -> RefundResult:
        """Return the remaining refund entitlement and close the reservation

        A no-show flagged for admin approval completes its PENDING refunds;
        every other refundable reservation gets a new REFUND entry.
        """
        now = self.clock()
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            if reservation.status == ReservationStatus.REFUNDED:
                raise AlreadyRefunded(
                    "Reservation has already been refunded",
                    reservation_id=reservation_id,
                    current_status=reservation.status
                )
            require_status(reservation, REFUNDABLE_STATUSES, "refund")
            approval = (reservation.status == ReservationStatus.NO_SHOW
                        and reservation.requires_admin_refund)
            self.permissions.require(
                actor,
                Capability.APPROVE_REFUNDS if approval else Capability.PROCESS_REFUNDS,
                reservation
            )

            entries = await uow.ledger.find_by_reservation(reservation_id)
            refunds: List[LedgerEntry] = []
            if approval:
                for entry in billing.pending_refunds(entries):
                    entry.approve(actor.user_id if actor else None, now)
                    refunds.append(await uow.ledger.save(entry))

            outstanding = await self._refund_entitlement(uow, reservation, entries)
            if outstanding > 0:
                refunds.append(await uow.ledger.add(LedgerEntry.refund(
                    reservation_id,
                    outstanding,
                    processed_by=actor.user_id if actor else None,
                    description=f"Refund for {reservation.status.value} reservation",
                    now=now
                )))
            if not refunds:
                raise AlreadyRefunded(
                    "Nothing left to refund",
                    reservation_id=reservation_id,
                    current_status=reservation.status
                )

            total = to_money(sum((-e.amount for e in refunds), ZERO))
            await self._release(uow, reservation.mark_refunded(now))
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation,
                ActivityAction.REFUND_APPROVED if approval else ActivityAction.REFUND,
                f"Refunded {total} in {len(refunds)} entr{'y' if len(refunds) == 1 else 'ies'}",
                actor, now
            )
            await uow.commit()

        logger.info("Refunded %s for reservation %s", total, reservation_id)
        return RefundResult(reservation=reservation, refunds=refunds)

    # ==================== ROOM SERVICE ====================

    async def apply_room_service_charge(self, reservation_id: UUID, amount: Decimal,
                                        actor: Optional[User] = None) -> Reservation:
        self.permissions.require(actor, Capability.MANAGE_ROOM_SERVICE)
        async with self.uow_factory() as uow:
            reservation = await charge_room_service(uow, reservation_id, amount, actor, self.clock())
            await uow.commit()
        return reservation

    async def reverse_room_service_charge(self, reservation_id: UUID, amount: Decimal,
                                          actor: Optional[User] = None) -> Reservation:
        self.permissions.require(actor, Capability.MANAGE_ROOM_SERVICE)
        async with self.uow_factory() as uow:
            reservation = await reverse_room_service(uow, reservation_id, amount, actor, self.clock())
            await uow.commit()
        return reservation

    # ==================== TIME-BASED TRANSITIONS ====================

    async def expire_unconfirmed(self, reservation_id: UUID, hotel_policy: HotelPolicy,
                                 now: datetime) -> Optional[Reservation]:
        """Cancel an unpaid booking past its hold; None when it no longer qualifies"""
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            if not policy_engine.evaluate_unconfirmed_expiry(reservation, hotel_policy, now):
                return None
            deadline = policy_engine.unconfirmed_expiry_deadline(reservation, hotel_policy)
            await self._release(uow, reservation.expire_hold(now))
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation, ActivityAction.AUTO_CANCEL,
                f"Automatically cancelled: {reservation.cancellation_reason} "
                f"(hold of {hotel_policy.unconfirmed_hold_hours}h ended {deadline:%Y-%m-%d %H:%M})",
                None, now
            )
            await uow.commit()

        logger.info("Auto-cancelled unconfirmed reservation %s", reservation_id)
        return reservation

    async def mark_no_show(self, reservation_id: UUID, hotel_policy: HotelPolicy,
                           now: datetime) -> Optional[Reservation]:
        """Apply the no-show policy; None when the reservation no longer qualifies"""
        async with self.uow_factory() as uow:
            reservation = await load_reservation(uow, reservation_id)
            refundable = billing.refundable_amount(
                await uow.ledger.find_by_reservation(reservation_id)
            )
            evaluation = policy_engine.evaluate_no_show(reservation, hotel_policy, now, refundable)
            if not evaluation.is_no_show:
                return None

            needs_approval = (hotel_policy.refund_approval_required
                              and evaluation.refund_amount > 0)
            await self._release(
                uow, reservation.mark_no_show(evaluation.fee, needs_approval, now)
            )
            if evaluation.refund_amount > 0:
                await uow.ledger.add(LedgerEntry.refund(
                    reservation_id,
                    evaluation.refund_amount,
                    pending=hotel_policy.refund_approval_required,
                    description="No-show refund",
                    now=now
                ))
            await uow.reservations.save(reservation)
            await record_activity(
                uow, reservation, ActivityAction.NO_SHOW,
                f"Marked as no-show (deadline {evaluation.deadline:%Y-%m-%d %H:%M}); "
                f"fee {evaluation.fee}, refund {evaluation.refund_amount}"
                + (" awaiting approval" if needs_approval else ""),
                None, now
            )
            await uow.commit()

        logger.info("Marked reservation %s as no-show", reservation_id)
        return reservation

    # ==================== PRIVATE METHODS ====================

    async def _ensure_exists(self, uow: UnitOfWork, reservation_id: UUID) -> None:
        if await uow.reservations.get(reservation_id) is None:
            raise ReservationNotFound(
                f"Reservation {reservation_id} not found",
                reservation_id=reservation_id
            )

    async def _claim_room(self, uow: UnitOfWork, reservation: Reservation, room_id: UUID) -> Room:
        """Lock a room for ``reservation`` and mark it OCCUPIED"""
        room = await load_room(uow, room_id)
        if room.room_type_id != reservation.room_type_id:
            raise RoomUnavailable(
                f"Room {room.number} is not of the booked room type",
                room_id=room_id,
                room_type_id=room.room_type_id,
                booked_room_type_id=reservation.room_type_id
            )
        holders = [
            r for r in await uow.reservations.find_active_by_room(room_id)
            if r.reservation_id != reservation.reservation_id
        ]
        if holders:
            raise RoomUnavailable(
                f"Room {room.number} is held by another reservation",
                room_id=room_id,
                held_by=holders[0].reservation_id
            )
        room.occupy()
        return await uow.rooms.save(room)

    async def _release(self, uow: UnitOfWork, room_id: Optional[UUID]) -> None:
        if room_id is None:
            return
        room = await uow.rooms.get_for_update(room_id)
        if room is not None:
            room.release()
            await uow.rooms.save(room)

    async def _refund_entitlement(self, uow: UnitOfWork, reservation: Reservation,
                                  entries: List[LedgerEntry]) -> Decimal:
        """What may still be refunded, after any approvals already applied to ``entries``"""
        if reservation.status != ReservationStatus.NO_SHOW:
            return billing.refundable_amount(entries)

        hotel_policy = await uow.policy.get()
        if hotel_policy is None:
            raise PolicyNotConfigured("Hotel policy has not been configured")
        entitled = policy_engine.no_show_refund_entitlement(billing.total_paid(entries), hotel_policy)
        committed = billing.total_refunded(entries) + sum(
            (-e.amount for e in billing.pending_refunds(entries)), ZERO
        )
        return max(ZERO, to_money(entitled - committed))

    async def _notify_confirmed(self, reservation: Reservation) -> None:
        try:
            await self.notifier.booking_confirmed(reservation)
        except Exception:
            logger.exception(
                "Booking confirmation for reservation %s could not be sent",
                reservation.reservation_id
            )


class RoomServiceOrderService:
    """Service for room-service orders charged to in-house guests"""

    def __init__(self,
                 uow_factory: UnitOfWorkFactory,
                 permissions: Optional[PermissionChecker] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.uow_factory = uow_factory
        self.permissions = permissions or RolePermissionChecker()
        self.clock = clock

    async def place_order(
        self,
        actor: Optional[User],
        reservation_id: UUID,
        description: str,
        amount: Decimal,
        quantity: int = 1
    ) -> RoomServiceOrder:
        """Create an order and add ``amount`` (the order total) to the bill"""
        self.permissions.require(actor, Capability.MANAGE_ROOM_SERVICE)
        now = self.clock()
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmount("Order amount must be greater than 0", amount=amount)
        if quantity < 1:
            raise InvalidAmount("Quantity must be at least 1", quantity=quantity)

        async with self.uow_factory() as uow:
            reservation = await charge_room_service(
                uow, reservation_id, amount, actor, now,
                description=f"Room service order '{description}' x{quantity}"
            )
            order = RoomServiceOrder(
                reservation_id=reservation_id,
                room_id=reservation.room_id,
                description=description,
                quantity=quantity,
                amount=amount,
                created_at=now,
                modified_at=now
            )
            await uow.orders.save(order)
            await uow.commit()

        logger.info("Placed room service order %s for reservation %s", order.order_id, reservation_id)
        return order

    async def update_order_status(self, actor: Optional[User], order_id: UUID,
                                  status: RoomServiceStatus) -> RoomServiceOrder:
        """Move an order along; cancelling reverses its charge and restoring re-applies it"""
        self.permissions.require(actor, Capability.MANAGE_ROOM_SERVICE)
        now = self.clock()
        async with self.uow_factory() as uow:
            order = await uow.orders.get(order_id)
            if order is None:
                raise OrderNotFound(f"Order {order_id} not found", order_id=order_id)

            previous = order.change_status(status, now)
            label = f"Room service order '{order.description}'"
            if status == RoomServiceStatus.CANCELLED:
                await reverse_room_service(
                    uow, order.reservation_id, order.amount, actor, now,
                    description=f"{label} cancelled"
                )
            elif previous == RoomServiceStatus.CANCELLED:
                await charge_room_service(
                    uow, order.reservation_id, order.amount, actor, now,
                    description=f"{label} restored"
                )
            await uow.orders.save(order)
            await uow.commit()

        logger.info("Room service order %s: %s -> %s", order_id, previous.value, status.value)
        return order

    async def cancel_order(self, actor: Optional[User], order_id: UUID) -> RoomServiceOrder:
        return await self.update_order_status(actor, order_id, RoomServiceStatus.CANCELLED)


class RoomService:
    """Housekeeping actions on physical rooms"""

    def __init__(self,
                 uow_factory: UnitOfWorkFactory,
                 permissions: Optional[PermissionChecker] = None):
        self.uow_factory = uow_factory
        self.permissions = permissions or RolePermissionChecker()

    async def list_rooms(self) -> List[Room]:
        async with self.uow_factory() as uow:
            return await uow.rooms.find_all()

    async def find_available_rooms(
        self,
        check_in: datetime,
        check_out: datetime,
        room_type_id: Optional[UUID] = None
    ) -> List[Room]:
        """Rooms free for the whole stay, ordered by number

        A stay that ends on the requested check-in does not block the room.
        """
        check_in, check_out = as_utc(check_in), as_utc(check_out)
        if check_out <= check_in:
            raise InvalidDateRange(
                "Check-out must be after check-in",
                check_in=check_in,
                check_out=check_out
            )
        async with self.uow_factory() as uow:
            rooms = await uow.rooms.find_available(check_in, check_out, room_type_id)
        logger.debug("%d room(s) free from %s to %s", len(rooms), check_in, check_out)
        return rooms

    async def mark_room_clean(self, actor: Optional[User], room_id: UUID) -> Room:
        """CLEANING -> AVAILABLE once housekeeping is done"""
        self.permissions.require(actor, Capability.MANAGE_HOUSEKEEPING)
        async with self.uow_factory() as uow:
            room = await load_room(uow, room_id)
            room.mark_clean()
            await uow.rooms.save(room)
            await uow.commit()

        logger.info("Room %s is clean and available", room.number)
        return room


class PolicyService:
    """Read and maintain the hotel policy"""

    def __init__(self,
                 uow_factory: UnitOfWorkFactory,
                 permissions: Optional[PermissionChecker] = None):
        self.uow_factory = uow_factory
        self.permissions = permissions or RolePermissionChecker()

    async def get_policy(self) -> HotelPolicy:
        async with self.uow_factory() as uow:
            hotel_policy = await uow.policy.get()
        if hotel_policy is None:
            raise PolicyNotConfigured("Hotel policy has not been configured")
        return hotel_policy

    async def get_or_create_policy(self) -> HotelPolicy:
        """Return the stored policy, saving the defaults the first time"""
        async with self.uow_factory() as uow:
            hotel_policy = await uow.policy.get()
            if hotel_policy is None:
                hotel_policy = await uow.policy.save(HotelPolicy())
                await uow.commit()
                logger.info("Stored default hotel policy")
        return hotel_policy

    async def update_policy(self, actor: Optional[User], hotel_policy: HotelPolicy) -> HotelPolicy:
        self.permissions.require(actor, Capability.MANAGE_SETTINGS)
        async with self.uow_factory() as uow:
            saved = await uow.policy.save(hotel_policy)
            await uow.commit()

        logger.info("Hotel policy updated by %s", actor.username if actor else "system")
        return saved
