"""Policy Engine

Pure functions that evaluate a reservation against a ``HotelPolicy``
snapshot. Nothing here touches storage, so callers decide which policy
version applies (the sweep reads it once per run).
"""
from datetime import datetime, timedelta
from decimal import Decimal

from domain.entities import Reservation
from domain.enums import ReservationStatus
from domain.value_objects import HotelPolicy, NoShowEvaluation, ZERO, to_money

HUNDRED = Decimal("100")


def no_show_deadline(reservation: Reservation, policy: HotelPolicy) -> datetime:
    """Instant after which a confirmed guest that has not arrived is a no-show"""
    start = reservation.check_in
    if policy.anchor_no_show_to_check_in_time:
        # check_in is naive UTC, so check_in_time is combined as UTC too
        start = datetime.combine(reservation.check_in.date(), policy.check_in_time)
    return start + timedelta(hours=policy.no_show_hours)


def no_show_refund_entitlement(amount_paid: Decimal, policy: HotelPolicy) -> Decimal:
    """Share of ``amount_paid`` a no-show guest gets back"""
    return to_money(amount_paid * policy.no_show_refund_percent / HUNDRED)


def evaluate_no_show(
    reservation: Reservation,
    policy: HotelPolicy,
    now: datetime,
    refundable: Decimal = ZERO
) -> NoShowEvaluation:
    """Decide whether ``reservation`` is a no-show at ``now``.

    ``refundable`` is the money still held for the reservation (see
    ``domain.billing.refundable_amount``). It is split into the refund owed
    to the guest and the fee the hotel keeps.
    """
    deadline = no_show_deadline(reservation, policy)
    is_no_show = (
        reservation.status == ReservationStatus.CONFIRMED
        and not reservation.is_checked_in
        and now > deadline
    )
    if not is_no_show:
        return NoShowEvaluation(is_no_show=False, deadline=deadline)

    refund_amount = no_show_refund_entitlement(refundable, policy)
    return NoShowEvaluation(
        is_no_show=True,
        deadline=deadline,
        fee=to_money(refundable - refund_amount),
        refund_amount=refund_amount
    )


def unconfirmed_expiry_deadline(reservation: Reservation, policy: HotelPolicy) -> datetime:
    return reservation.created_at + timedelta(hours=policy.unconfirmed_hold_hours)


def evaluate_unconfirmed_expiry(reservation: Reservation, policy: HotelPolicy, now: datetime) -> bool:
    return (
        reservation.status == ReservationStatus.UNCONFIRMED
        and now > unconfirmed_expiry_deadline(reservation, policy)
    )


def cancellation_fee(
    reservation: Reservation,
    policy: HotelPolicy,
    now: datetime,
    refundable: Decimal
) -> Decimal:
    """Fee kept when a guest cancels inside the free-cancellation window"""
    hours_until_check_in = (reservation.check_in - now).total_seconds() / 3600
    if hours_until_check_in >= policy.free_cancellation_hours:
        return ZERO
    return to_money(refundable * policy.cancellation_fee_percent / HUNDRED)
