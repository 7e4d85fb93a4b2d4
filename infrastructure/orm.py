"""SQLAlchemy table mappings

Columns mirror the pydantic entities field for field, so rows convert with
``Entity.model_validate(row)`` and back with ``Row(**entity.model_dump())``.
"""
from datetime import datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, Numeric, String, Text, Time, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from domain.enums import (
    ActivityAction, BillStatus, LedgerEntryStatus, LedgerEntryType, ReservationStatus,
    RoomServiceStatus, RoomStatus
)

Money = Numeric(12, 2, asdecimal=True)
Percent = Numeric(5, 2, asdecimal=True)


def _enum(enum_cls):
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class Base(DeclarativeBase):
    pass


class RoomTypeRow(Base):
    __tablename__ = "room_types"

    room_type_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    base_price: Mapped[Decimal] = mapped_column(Money)
    extra_bed_charge: Mapped[Decimal] = mapped_column(Money)
    adult_capacity: Mapped[int] = mapped_column(Integer)
    child_capacity: Mapped[int] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class RoomRow(Base):
    __tablename__ = "rooms"

    room_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    number: Mapped[str] = mapped_column(String(20), unique=True)
    floor: Mapped[int] = mapped_column(Integer)
    room_type_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    status: Mapped[RoomStatus] = mapped_column(_enum(RoomStatus))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ReservationRow(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        # one in-house guest per room
        Index(
            "uq_reservations_room_checked_in",
            "room_id",
            unique=True,
            sqlite_where=text("status = 'CHECKED_IN'"),
            postgresql_where=text("status = 'CHECKED_IN'"),
        ),
    )

    reservation_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    confirmation_code: Mapped[str] = mapped_column(String(16), unique=True)
    guest_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    room_type_id: Mapped[UUID] = mapped_column(Uuid)
    room_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    check_in: Mapped[datetime] = mapped_column(DateTime)
    check_out: Mapped[datetime] = mapped_column(DateTime)
    adults: Mapped[int] = mapped_column(Integer)
    children: Mapped[int] = mapped_column(Integer)
    extra_beds: Mapped[int] = mapped_column(Integer)

    room_charges: Mapped[Decimal] = mapped_column(Money)
    extra_bed_charges: Mapped[Decimal] = mapped_column(Money)
    service_charges: Mapped[Decimal] = mapped_column(Money)
    total_amount: Mapped[Decimal] = mapped_column(Money)
    advance_amount: Mapped[Decimal] = mapped_column(Money)
    pending_amount: Mapped[Decimal] = mapped_column(Money)
    settled_amount: Mapped[Decimal] = mapped_column(Money)
    no_show_fee: Mapped[Decimal] = mapped_column(Money)

    status: Mapped[ReservationStatus] = mapped_column(_enum(ReservationStatus), index=True)
    requires_admin_refund: Mapped[bool] = mapped_column(Boolean, default=False)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    check_in_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    check_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    no_show_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime)
    modified_at: Mapped[datetime] = mapped_column(DateTime)
    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    version: Mapped[int] = mapped_column(Integer)


class LedgerEntryRow(Base):
    __tablename__ = "ledger_entries"

    entry_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    reservation_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    entry_type: Mapped[LedgerEntryType] = mapped_column(_enum(LedgerEntryType))
    amount: Mapped[Decimal] = mapped_column(Money)
    status: Mapped[LedgerEntryStatus] = mapped_column(_enum(LedgerEntryStatus))
    payment_mode_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    processed_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    receipt_number: Mapped[str] = mapped_column(String(32))
    bill_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class ActivityLogRow(Base):
    __tablename__ = "activity_log"

    log_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    reservation_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    action: Mapped[ActivityAction] = mapped_column(_enum(ActivityAction))
    description: Mapped[str] = mapped_column(Text)
    user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime)


class BillRow(Base):
    __tablename__ = "bills"

    bill_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    reservation_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    bill_number: Mapped[str] = mapped_column(String(32), unique=True)
    room_charges: Mapped[Decimal] = mapped_column(Money)
    extra_bed_charges: Mapped[Decimal] = mapped_column(Money)
    service_charges: Mapped[Decimal] = mapped_column(Money)
    total_amount: Mapped[Decimal] = mapped_column(Money)
    paid_amount: Mapped[Decimal] = mapped_column(Money)
    pending_amount: Mapped[Decimal] = mapped_column(Money)
    status: Mapped[BillStatus] = mapped_column(_enum(BillStatus))
    created_at: Mapped[datetime] = mapped_column(DateTime)


class RoomServiceOrderRow(Base):
    __tablename__ = "room_service_orders"

    order_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    reservation_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    room_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    description: Mapped[str] = mapped_column(Text)
    quantity: Mapped[int] = mapped_column(Integer)
    amount: Mapped[Decimal] = mapped_column(Money)
    status: Mapped[RoomServiceStatus] = mapped_column(_enum(RoomServiceStatus))
    created_at: Mapped[datetime] = mapped_column(DateTime)
    modified_at: Mapped[datetime] = mapped_column(DateTime)


class HotelPolicyRow(Base):
    __tablename__ = "hotel_policy"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    check_in_time: Mapped[time] = mapped_column(Time)
    check_out_time: Mapped[time] = mapped_column(Time)
    no_show_hours: Mapped[int] = mapped_column(Integer)
    anchor_no_show_to_check_in_time: Mapped[bool] = mapped_column(Boolean)
    no_show_refund_percent: Mapped[Decimal] = mapped_column(Percent)
    unconfirmed_hold_hours: Mapped[int] = mapped_column(Integer)
    free_cancellation_hours: Mapped[int] = mapped_column(Integer)
    cancellation_fee_percent: Mapped[Decimal] = mapped_column(Percent)
    refund_approval_required: Mapped[bool] = mapped_column(Boolean)
