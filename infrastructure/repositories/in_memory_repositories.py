"""In-Memory Repository Implementations

Every repository stores and hands out copies, so an aggregate mutated inside
a unit of work that is later rolled back never leaks into storage.
"""
import asyncio
import copy
from datetime import datetime
from typing import Callable, Optional, List, Dict
from uuid import UUID

from domain.entities import (
    ACTIVE_ROOM_STATUSES, ActivityLogEntry, Bill, LedgerEntry, Reservation, Room,
    RoomServiceOrder, RoomType
)
from domain.enums import ReservationStatus
from domain.repositories import (
    ActivityLogRepository, BillRepository, LedgerRepository, PolicyRepository,
    ReservationRepository, RoomRepository, RoomServiceOrderRepository,
    RoomTypeRepository, UnitOfWork
)
from domain.value_objects import HotelPolicy


class InMemoryDatabase:
    """Process-local store shared by all in-memory units of work"""

    def __init__(self):
        self.reservations: Dict[UUID, Reservation] = {}
        self.rooms: Dict[UUID, Room] = {}
        self.room_types: Dict[UUID, RoomType] = {}
        self.ledger: Dict[UUID, LedgerEntry] = {}
        self.activity_log: List[ActivityLogEntry] = []
        self.bills: Dict[UUID, Bill] = {}
        self.orders: Dict[UUID, RoomServiceOrder] = {}
        self.policy: Optional[HotelPolicy] = None
        self.lock = asyncio.Lock()

    _TABLES = (
        "reservations", "rooms", "room_types", "ledger",
        "activity_log", "bills", "orders", "policy",
    )

    def snapshot(self) -> dict:
        # stored values are replaced on save and never mutated in place,
        # so copying the containers is enough
        return {name: copy.copy(getattr(self, name)) for name in self._TABLES}

    def restore(self, snapshot: dict) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    def clear(self) -> None:
        self.restore(InMemoryDatabase().snapshot())


class InMemoryRepository:
    """Shared plumbing: ``on_write`` runs before the first change to the store"""

    def __init__(self, db: InMemoryDatabase, on_write: Optional[Callable[[], None]] = None):
        self._db = db
        self._on_write = on_write

    def _write(self) -> None:
        if self._on_write is not None:
            self._on_write()


class InMemoryReservationRepository(InMemoryRepository, ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    async def get(self, reservation_id: UUID) -> Optional[Reservation]:
        reservation = self._db.reservations.get(reservation_id)
        return reservation.model_copy(deep=True) if reservation else None

    async def get_for_update(self, reservation_id: UUID) -> Optional[Reservation]:
        # the unit of work already holds the database lock
        return await self.get(reservation_id)

    async def save(self, reservation: Reservation) -> Reservation:
        self._write()
        self._db.reservations[reservation.reservation_id] = reservation.model_copy(deep=True)
        return reservation

    async def find_by_status(self, status: ReservationStatus) -> List[Reservation]:
        return [r.model_copy(deep=True) for r in self._db.reservations.values() if r.status == status]

    async def find_active_by_room(self, room_id: UUID) -> List[Reservation]:
        return [
            r.model_copy(deep=True) for r in self._db.reservations.values()
            if r.room_id == room_id and r.status in ACTIVE_ROOM_STATUSES
        ]

    async def find_all(self) -> List[Reservation]:
        return sorted(
            (r.model_copy(deep=True) for r in self._db.reservations.values()),
            key=lambda r: r.created_at
        )


class InMemoryRoomRepository(InMemoryRepository, RoomRepository):

    async def get(self, room_id: UUID) -> Optional[Room]:
        room = self._db.rooms.get(room_id)
        return room.model_copy(deep=True) if room else None

    async def get_for_update(self, room_id: UUID) -> Optional[Room]:
        return await self.get(room_id)

    async def save(self, room: Room) -> Room:
        self._write()
        self._db.rooms[room.room_id] = room.model_copy(deep=True)
        return room

    async def find_all(self) -> List[Room]:
        return sorted(
            (r.model_copy(deep=True) for r in self._db.rooms.values()),
            key=lambda r: r.number
        )

    async def find_available(self, check_in: datetime, check_out: datetime,
                             room_type_id: Optional[UUID] = None) -> List[Room]:
        busy = {
            r.room_id for r in self._db.reservations.values()
            if r.holds_room_during(check_in, check_out)
        }
        return [
            room for room in await self.find_all()
            if room.is_available
            and room.room_id not in busy
            and (room_type_id is None or room.room_type_id == room_type_id)
        ]


class InMemoryRoomTypeRepository(InMemoryRepository, RoomTypeRepository):

    async def get(self, room_type_id: UUID) -> Optional[RoomType]:
        room_type = self._db.room_types.get(room_type_id)
        return room_type.model_copy(deep=True) if room_type else None

    async def save(self, room_type: RoomType) -> RoomType:
        self._write()
        self._db.room_types[room_type.room_type_id] = room_type.model_copy(deep=True)
        return room_type

    async def find_all(self) -> List[RoomType]:
        return [t.model_copy(deep=True) for t in self._db.room_types.values()]


class InMemoryLedgerRepository(InMemoryRepository, LedgerRepository):

    async def add(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.entry_id in self._db.ledger:
            raise ValueError(f"Ledger entry {entry.entry_id} already exists")
        self._write()
        self._db.ledger[entry.entry_id] = entry.model_copy(deep=True)
        return entry

    async def save(self, entry: LedgerEntry) -> LedgerEntry:
        self._write()
        self._db.ledger[entry.entry_id] = entry.model_copy(deep=True)
        return entry

    async def find_by_reservation(self, reservation_id: UUID) -> List[LedgerEntry]:
        return [
            e.model_copy(deep=True) for e in self._db.ledger.values()
            if e.reservation_id == reservation_id
        ]


class InMemoryActivityLogRepository(InMemoryRepository, ActivityLogRepository):

    async def add(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        self._write()
        self._db.activity_log.append(entry)
        return entry

    async def find_by_reservation(self, reservation_id: UUID) -> List[ActivityLogEntry]:
        return [e for e in self._db.activity_log if e.reservation_id == reservation_id]


class InMemoryBillRepository(InMemoryRepository, BillRepository):

    async def add(self, bill: Bill) -> Bill:
        self._write()
        self._db.bills[bill.bill_id] = bill.model_copy(deep=True)
        return bill

    async def find_by_reservation(self, reservation_id: UUID) -> List[Bill]:
        return [b.model_copy(deep=True) for b in self._db.bills.values()
                if b.reservation_id == reservation_id]


class InMemoryRoomServiceOrderRepository(InMemoryRepository, RoomServiceOrderRepository):

    async def get(self, order_id: UUID) -> Optional[RoomServiceOrder]:
        order = self._db.orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def save(self, order: RoomServiceOrder) -> RoomServiceOrder:
        self._write()
        self._db.orders[order.order_id] = order.model_copy(deep=True)
        return order

    async def find_by_reservation(self, reservation_id: UUID) -> List[RoomServiceOrder]:
        return [o.model_copy(deep=True) for o in self._db.orders.values()
                if o.reservation_id == reservation_id]


class InMemoryPolicyRepository(InMemoryRepository, PolicyRepository):

    async def get(self) -> Optional[HotelPolicy]:
        return self._db.policy

    async def save(self, policy: HotelPolicy) -> HotelPolicy:
        self._write()
        self._db.policy = policy
        return policy


class InMemoryUnitOfWork(UnitOfWork):
    """Serialises units of work on one lock

    The store is snapshotted on the first write; rollback restores it.
    """

    def __init__(self, db: InMemoryDatabase):
        self.db = db
        on_write = self._ensure_snapshot
        self.reservations = InMemoryReservationRepository(db, on_write)
        self.rooms = InMemoryRoomRepository(db, on_write)
        self.room_types = InMemoryRoomTypeRepository(db, on_write)
        self.ledger = InMemoryLedgerRepository(db, on_write)
        self.activity_log = InMemoryActivityLogRepository(db, on_write)
        self.bills = InMemoryBillRepository(db, on_write)
        self.orders = InMemoryRoomServiceOrderRepository(db, on_write)
        self.policy = InMemoryPolicyRepository(db, on_write)
        self._snapshot: Optional[dict] = None

    def _ensure_snapshot(self) -> None:
        if self._snapshot is None:
            self._snapshot = self.db.snapshot()

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self.db.lock.acquire()
        self._snapshot = None
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self._snapshot is not None:
                # anything not committed is discarded
                await self.rollback()
        finally:
            self.db.lock.release()

    async def commit(self) -> None:
        self._snapshot = None

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self.db.restore(self._snapshot)
            self._snapshot = None


def in_memory_uow_factory(db: InMemoryDatabase):
    return lambda: InMemoryUnitOfWork(db)
