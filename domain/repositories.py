"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from domain.entities import (
    ActivityLogEntry, Bill, LedgerEntry, Reservation, Room, RoomServiceOrder, RoomType
)
from domain.enums import ReservationStatus
from domain.value_objects import HotelPolicy


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def get(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def get_for_update(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID and lock it for the rest of the unit of work"""
        pass

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        """Insert or update reservation"""
        pass

    @abstractmethod
    async def find_by_status(self, status: ReservationStatus) -> List[Reservation]:
        """Find reservations in one status"""
        pass

    @abstractmethod
    async def find_active_by_room(self, room_id: UUID) -> List[Reservation]:
        """Find CONFIRMED or CHECKED_IN reservations holding a room"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        pass


class RoomRepository(ABC):
    """Repository interface for physical rooms"""

    @abstractmethod
    async def get(self, room_id: UUID) -> Optional[Room]:
        pass

    @abstractmethod
    async def get_for_update(self, room_id: UUID) -> Optional[Room]:
        pass

    @abstractmethod
    async def save(self, room: Room) -> Room:
        pass

    @abstractmethod
    async def find_all(self) -> List[Room]:
        pass

    @abstractmethod
    async def find_available(self, check_in: datetime, check_out: datetime,
                             room_type_id: Optional[UUID] = None) -> List[Room]:
        """Active AVAILABLE rooms with no CONFIRMED/CHECKED_IN stay overlapping the window"""
        pass


class RoomTypeRepository(ABC):
    """Read-only access to room types"""

    @abstractmethod
    async def get(self, room_type_id: UUID) -> Optional[RoomType]:
        pass

    @abstractmethod
    async def save(self, room_type: RoomType) -> RoomType:
        pass

    @abstractmethod
    async def find_all(self) -> List[RoomType]:
        pass


class LedgerRepository(ABC):
    """Repository interface for payment and refund entries"""

    @abstractmethod
    async def add(self, entry: LedgerEntry) -> LedgerEntry:
        """Append a new entry"""
        pass

    @abstractmethod
    async def save(self, entry: LedgerEntry) -> LedgerEntry:
        """Persist a status change on an existing entry"""
        pass

    @abstractmethod
    async def find_by_reservation(self, reservation_id: UUID) -> List[LedgerEntry]:
        """Entries for a reservation, oldest first"""
        pass


class ActivityLogRepository(ABC):
    """Append-only audit trail"""

    @abstractmethod
    async def add(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        pass

    @abstractmethod
    async def find_by_reservation(self, reservation_id: UUID) -> List[ActivityLogEntry]:
        """Entries for a reservation, oldest first"""
        pass


class BillRepository(ABC):

    @abstractmethod
    async def add(self, bill: Bill) -> Bill:
        pass

    @abstractmethod
    async def find_by_reservation(self, reservation_id: UUID) -> List[Bill]:
        pass


class RoomServiceOrderRepository(ABC):

    @abstractmethod
    async def get(self, order_id: UUID) -> Optional[RoomServiceOrder]:
        pass

    @abstractmethod
    async def save(self, order: RoomServiceOrder) -> RoomServiceOrder:
        pass

    @abstractmethod
    async def find_by_reservation(self, reservation_id: UUID) -> List[RoomServiceOrder]:
        pass


class PolicyRepository(ABC):
    """Storage for the hotel-wide policy singleton"""

    @abstractmethod
    async def get(self) -> Optional[HotelPolicy]:
        """Current policy, or None when it has never been configured"""
        pass

    @abstractmethod
    async def save(self, policy: HotelPolicy) -> HotelPolicy:
        pass


class UnitOfWork(ABC):
    """One atomic transaction spanning every repository

    Used as ``async with uow_factory() as uow``. Leaving the block with an
    exception rolls back; otherwise the caller commits explicitly.
    """

    reservations: ReservationRepository
    rooms: RoomRepository
    room_types: RoomTypeRepository
    ledger: LedgerRepository
    activity_log: ActivityLogRepository
    bills: BillRepository
    orders: RoomServiceOrderRepository
    policy: PolicyRepository

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.rollback()

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass
