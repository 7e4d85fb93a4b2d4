"""Domain Value Objects"""
import math
from pydantic import BaseModel, Field, validator
from datetime import datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Quantise a value to two decimal places"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class DateRange(BaseModel):
    """Value Object for a stay period"""
    check_in: datetime
    check_out: datetime

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Number of chargeable nights; any part of a day counts as a night"""
        seconds = (self.check_out - self.check_in).total_seconds()
        return math.ceil(seconds / timedelta(days=1).total_seconds())

    def overlaps(self, check_in: datetime, check_out: datetime) -> bool:
        """Half-open overlap; a check-out on another stay's check-in is no clash"""
        return self.check_in < check_out and self.check_out > check_in

    class Config:
        frozen = True


class GuestCount(BaseModel):
    """Value Object for guest count"""
    adults: int = Field(ge=1, le=10)
    children: int = Field(ge=0, le=10)
    extra_beds: int = Field(ge=0, le=5, default=0)

    class Config:
        frozen = True


class StayCharges(BaseModel):
    """Result of pricing a stay against a room type"""
    nights: int
    room_charges: Decimal
    extra_bed_charges: Decimal
    total_amount: Decimal

    class Config:
        frozen = True


class NoShowEvaluation(BaseModel):
    """Outcome of checking a reservation against the no-show policy"""
    is_no_show: bool
    deadline: datetime
    fee: Decimal = ZERO
    refund_amount: Decimal = ZERO

    class Config:
        frozen = True


class HotelPolicy(BaseModel):
    """Hotel-wide rules consulted by the reservation state machine and the sweep

    check_in_time / check_out_time: daily times, "HH:MM", read as UTC wall
        clock like every timestamp the domain stores (naive UTC).
    no_show_hours: hours after check-in after which a confirmed guest that
        has not arrived becomes a no-show.
    anchor_no_show_to_check_in_time: when set, the no-show clock starts at
        the check-in date at ``check_in_time`` rather than at the booked
        check-in timestamp.
    no_show_refund_percent: share of the amount paid that is returned to a
        no-show guest; the rest is kept as the no-show fee.
    unconfirmed_hold_hours: how long an unpaid booking is held before it is
        cancelled automatically.
    free_cancellation_hours / cancellation_fee_percent: cancelling closer
        than this to check-in keeps this share of the amount paid.
    refund_approval_required: no-show refunds are created PENDING and wait
        for an administrator.
    """
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
        frozen = True
