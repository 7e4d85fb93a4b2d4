"""Demo inventory for local runs and the test suite"""
import logging
from decimal import Decimal
from uuid import NAMESPACE_URL, uuid5

from domain.entities import Room, RoomType
from domain.repositories import UnitOfWork

logger = logging.getLogger(__name__)


def _stable_id(name: str):
    return uuid5(NAMESPACE_URL, f"hotel-demo/{name}")


STANDARD_ROOM_TYPE_ID = _stable_id("room-type/standard")
DELUXE_ROOM_TYPE_ID = _stable_id("room-type/deluxe")

DEMO_ROOM_TYPES = [
    RoomType(
        room_type_id=STANDARD_ROOM_TYPE_ID,
        name="Standard",
        base_price=Decimal("100.00"),
        extra_bed_charge=Decimal("20.00"),
        adult_capacity=2,
        child_capacity=1
    ),
    RoomType(
        room_type_id=DELUXE_ROOM_TYPE_ID,
        name="Deluxe",
        base_price=Decimal("180.00"),
        extra_bed_charge=Decimal("30.00"),
        adult_capacity=3,
        child_capacity=2
    ),
]

DEMO_ROOMS = [
    Room(room_id=_stable_id("room/101"), number="101", floor=1, room_type_id=STANDARD_ROOM_TYPE_ID),
    Room(room_id=_stable_id("room/102"), number="102", floor=1, room_type_id=STANDARD_ROOM_TYPE_ID),
    Room(room_id=_stable_id("room/103"), number="103", floor=1, room_type_id=STANDARD_ROOM_TYPE_ID),
    Room(room_id=_stable_id("room/201"), number="201", floor=2, room_type_id=DELUXE_ROOM_TYPE_ID),
    Room(room_id=_stable_id("room/202"), number="202", floor=2, room_type_id=DELUXE_ROOM_TYPE_ID),
]


async def seed_demo_inventory(uow: UnitOfWork) -> None:
    """Insert the demo room types and rooms that are not there yet"""
    async with uow:
        for room_type in DEMO_ROOM_TYPES:
            if await uow.room_types.get(room_type.room_type_id) is None:
                await uow.room_types.save(room_type)
        for room in DEMO_ROOMS:
            if await uow.rooms.get(room.room_id) is None:
                await uow.rooms.save(room)
        await uow.commit()
    logger.info("Demo inventory ready: %d room types, %d rooms", len(DEMO_ROOM_TYPES), len(DEMO_ROOMS))
