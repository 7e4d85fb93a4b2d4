"""SQLAlchemy Repository Implementations

One ``AsyncSession`` per unit of work. Reservation and room reads that
precede a mutation use ``SELECT ... FOR UPDATE``.
"""
import logging
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.entities import (
    ACTIVE_ROOM_STATUSES, ActivityLogEntry, Bill, LedgerEntry, Reservation, Room,
    RoomServiceOrder, RoomType
)
from domain.enums import ReservationStatus, RoomStatus
from domain.errors import RoomUnavailable, TransactionFailed
from domain.repositories import (
    ActivityLogRepository, BillRepository, LedgerRepository, PolicyRepository,
    ReservationRepository, RoomRepository, RoomServiceOrderRepository,
    RoomTypeRepository, UnitOfWork
)
from domain.value_objects import HotelPolicy
from infrastructure.orm import (
    ActivityLogRow, BillRow, HotelPolicyRow, LedgerEntryRow, ReservationRow, RoomRow,
    RoomServiceOrderRow, RoomTypeRow
)

logger = logging.getLogger(__name__)

POLICY_ROW_ID = 1


class SqlAlchemyReservationRepository(ReservationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, reservation_id: UUID) -> Optional[Reservation]:
        row = await self.session.get(ReservationRow, reservation_id)
        return Reservation.model_validate(row) if row else None

    async def get_for_update(self, reservation_id: UUID) -> Optional[Reservation]:
        row = await self.session.get(ReservationRow, reservation_id, with_for_update=True)
        return Reservation.model_validate(row) if row else None

    async def save(self, reservation: Reservation) -> Reservation:
        await self.session.merge(ReservationRow(**reservation.model_dump()))
        return reservation

    async def find_by_status(self, status: ReservationStatus) -> List[Reservation]:
        result = await self.session.scalars(
            select(ReservationRow)
            .where(ReservationRow.status == status)
            .order_by(ReservationRow.created_at)
        )
        return [Reservation.model_validate(row) for row in result]

    async def find_active_by_room(self, room_id: UUID) -> List[Reservation]:
        result = await self.session.scalars(
            select(ReservationRow)
            .where(ReservationRow.room_id == room_id)
            .where(ReservationRow.status.in_(list(ACTIVE_ROOM_STATUSES)))
            .with_for_update()
        )
        return [Reservation.model_validate(row) for row in result]

    async def find_all(self) -> List[Reservation]:
        result = await self.session.scalars(
            select(ReservationRow).order_by(ReservationRow.created_at)
        )
        return [Reservation.model_validate(row) for row in result]


class SqlAlchemyRoomRepository(RoomRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, room_id: UUID) -> Optional[Room]:
        row = await self.session.get(RoomRow, room_id)
        return Room.model_validate(row) if row else None

    async def get_for_update(self, room_id: UUID) -> Optional[Room]:
        row = await self.session.get(RoomRow, room_id, with_for_update=True)
        return Room.model_validate(row) if row else None

    async def save(self, room: Room) -> Room:
        await self.session.merge(RoomRow(**room.model_dump()))
        return room

    async def find_all(self) -> List[Room]:
        result = await self.session.scalars(select(RoomRow).order_by(RoomRow.number))
        return [Room.model_validate(row) for row in result]

    async def find_available(self, check_in: datetime, check_out: datetime,
                             room_type_id: Optional[UUID] = None) -> List[Room]:
        busy = (
            select(ReservationRow.reservation_id)
            .where(ReservationRow.room_id == RoomRow.room_id)
            .where(ReservationRow.status.in_(list(ACTIVE_ROOM_STATUSES)))
            .where(ReservationRow.check_in < check_out)
            .where(ReservationRow.check_out > check_in)
        )
        query = (
            select(RoomRow)
            .where(RoomRow.is_active.is_(True))
            .where(RoomRow.status == RoomStatus.AVAILABLE)
            .where(~busy.exists())
            .order_by(RoomRow.number)
        )
        if room_type_id is not None:
            query = query.where(RoomRow.room_type_id == room_type_id)
        result = await self.session.scalars(query)
        return [Room.model_validate(row) for row in result]


class SqlAlchemyRoomTypeRepository(RoomTypeRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, room_type_id: UUID) -> Optional[RoomType]:
        row = await self.session.get(RoomTypeRow, room_type_id)
        return RoomType.model_validate(row) if row else None

    async def save(self, room_type: RoomType) -> RoomType:
        await self.session.merge(RoomTypeRow(**room_type.model_dump()))
        return room_type

    async def find_all(self) -> List[RoomType]:
        result = await self.session.scalars(select(RoomTypeRow).order_by(RoomTypeRow.name))
        return [RoomType.model_validate(row) for row in result]


class SqlAlchemyLedgerRepository(LedgerRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entry: LedgerEntry) -> LedgerEntry:
        self.session.add(LedgerEntryRow(**entry.model_dump()))
        return entry

    async def save(self, entry: LedgerEntry) -> LedgerEntry:
        await self.session.merge(LedgerEntryRow(**entry.model_dump()))
        return entry

    async def find_by_reservation(self, reservation_id: UUID) -> List[LedgerEntry]:
        result = await self.session.scalars(
            select(LedgerEntryRow)
            .where(LedgerEntryRow.reservation_id == reservation_id)
            .order_by(LedgerEntryRow.created_at)
        )
        return [LedgerEntry.model_validate(row) for row in result]


class SqlAlchemyActivityLogRepository(ActivityLogRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        self.session.add(ActivityLogRow(**entry.model_dump()))
        return entry

    async def find_by_reservation(self, reservation_id: UUID) -> List[ActivityLogEntry]:
        result = await self.session.scalars(
            select(ActivityLogRow)
            .where(ActivityLogRow.reservation_id == reservation_id)
            .order_by(ActivityLogRow.timestamp)
        )
        return [ActivityLogEntry.model_validate(row) for row in result]


class SqlAlchemyBillRepository(BillRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, bill: Bill) -> Bill:
        self.session.add(BillRow(**bill.model_dump()))
        return bill

    async def find_by_reservation(self, reservation_id: UUID) -> List[Bill]:
        result = await self.session.scalars(
            select(BillRow)
            .where(BillRow.reservation_id == reservation_id)
            .order_by(BillRow.created_at)
        )
        return [Bill.model_validate(row) for row in result]


class SqlAlchemyRoomServiceOrderRepository(RoomServiceOrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, order_id: UUID) -> Optional[RoomServiceOrder]:
        row = await self.session.get(RoomServiceOrderRow, order_id, with_for_update=True)
        return RoomServiceOrder.model_validate(row) if row else None

    async def save(self, order: RoomServiceOrder) -> RoomServiceOrder:
        await self.session.merge(RoomServiceOrderRow(**order.model_dump()))
        return order

    async def find_by_reservation(self, reservation_id: UUID) -> List[RoomServiceOrder]:
        result = await self.session.scalars(
            select(RoomServiceOrderRow)
            .where(RoomServiceOrderRow.reservation_id == reservation_id)
            .order_by(RoomServiceOrderRow.created_at)
        )
        return [RoomServiceOrder.model_validate(row) for row in result]


class SqlAlchemyPolicyRepository(PolicyRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self) -> Optional[HotelPolicy]:
        row = await self.session.get(HotelPolicyRow, POLICY_ROW_ID)
        return HotelPolicy.model_validate(row, from_attributes=True) if row else None

    async def save(self, policy: HotelPolicy) -> HotelPolicy:
        await self.session.merge(HotelPolicyRow(id=POLICY_ROW_ID, **policy.model_dump()))
        return policy


class SqlAlchemyUnitOfWork(UnitOfWork):
    """Unit of work over one AsyncSession"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        self.reservations = SqlAlchemyReservationRepository(self.session)
        self.rooms = SqlAlchemyRoomRepository(self.session)
        self.room_types = SqlAlchemyRoomTypeRepository(self.session)
        self.ledger = SqlAlchemyLedgerRepository(self.session)
        self.activity_log = SqlAlchemyActivityLogRepository(self.session)
        self.bills = SqlAlchemyBillRepository(self.session)
        self.orders = SqlAlchemyRoomServiceOrderRepository(self.session)
        self.policy = SqlAlchemyPolicyRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
            if isinstance(exc, SQLAlchemyError):
                logger.error("Unit of work failed: %s", exc)
                raise TransactionFailed("Transaction could not be completed", reason=str(exc)) from exc
        finally:
            await self.session.close()

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if "uq_reservations_room_checked_in" in str(e.orig) or "reservations.room_id" in str(e.orig):
                raise RoomUnavailable("Room is already occupied by another reservation") from e
            logger.error("Commit failed: %s", e)
            raise TransactionFailed("Transaction could not be committed", reason=str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Commit failed: %s", e)
            raise TransactionFailed("Transaction could not be committed", reason=str(e)) from e

    async def rollback(self) -> None:
        await self.session.rollback()


def sqlalchemy_uow_factory(session_factory: async_sessionmaker):
    return lambda: SqlAlchemyUnitOfWork(session_factory)
