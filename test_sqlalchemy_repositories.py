#!/usr/bin/env python3
"""
Persistence tests for the SQLAlchemy unit of work
Runs the repositories and services against in-memory SQLite (aiosqlite)
"""

import pytest
from datetime import datetime, time, timedelta
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from application.services import PolicyService, ReservationService, RoomService, RoomServiceOrderService
from application.sweep import ReservationSweepJob
from domain.entities import LedgerEntry, Reservation
from domain.enums import (
    BillStatus, LedgerEntryStatus, LedgerEntryType, ReservationStatus, RoomStatus
)
from domain.errors import RoomUnavailable, TransactionFailed
from domain.value_objects import HotelPolicy
from infrastructure.config import Settings
from infrastructure.database import create_engine, create_session_factory, init_db
from infrastructure.repositories.sqlalchemy_repositories import (
    SqlAlchemyReservationRepository, SqlAlchemyUnitOfWork, sqlalchemy_uow_factory
)
from infrastructure.seed import DELUXE_ROOM_TYPE_ID, DEMO_ROOMS, STANDARD_ROOM_TYPE_ID, seed_demo_inventory


NOW = datetime(2026, 3, 10, 9, 0)
ROOM_101 = DEMO_ROOMS[0].room_id
ROOM_102 = DEMO_ROOMS[1].room_id


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
async def engine():
    """Fresh in-memory SQLite schema per test"""
    engine = create_engine(Settings(DATABASE_URL="sqlite+aiosqlite://"))
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def uow_factory(engine):
    return sqlalchemy_uow_factory(create_session_factory(engine))


@pytest.fixture
async def store(uow_factory):
    await seed_demo_inventory(uow_factory())
    await PolicyService(uow_factory).get_or_create_policy()
    return uow_factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reservation_service(store, clock):
    return ReservationService(store, clock=clock)


def make_reservation(**overrides) -> Reservation:
    fields = dict(
        guest_id=uuid4(),
        room_type_id=STANDARD_ROOM_TYPE_ID,
        check_in=NOW + timedelta(days=1),
        check_out=NOW + timedelta(days=3),
        adults=2,
        room_charges=Decimal("200.00"),
        total_amount=Decimal("200.00"),
        pending_amount=Decimal("200.00"),
        created_at=NOW,
        modified_at=NOW
    )
    fields.update(overrides)
    return Reservation(**fields)


async def book(service, check_in, advance="100"):
    return await service.create_reservation(
        None,
        room_type_id=STANDARD_ROOM_TYPE_ID,
        guest_id=uuid4(),
        check_in=check_in,
        check_out=check_in + timedelta(days=3),
        adults=2,
        advance_amount=Decimal(advance)
    )


# ============================================================================
# REPOSITORY TESTS
# ============================================================================

class TestSqlAlchemyRepositories:
    """Test mapping between entities and rows"""

    @pytest.mark.persistence
    async def test_reservation_round_trip(self, uow_factory):
        reservation = make_reservation(notes="late arrival")
        async with uow_factory() as uow:
            await uow.reservations.save(reservation)
            await uow.commit()

        async with uow_factory() as uow:
            stored = await uow.reservations.get(reservation.reservation_id)
            unconfirmed = await uow.reservations.find_by_status(ReservationStatus.UNCONFIRMED)

        assert stored.model_dump() == reservation.model_dump()
        assert isinstance(stored.total_amount, Decimal)
        assert stored.status is ReservationStatus.UNCONFIRMED
        assert [r.reservation_id for r in unconfirmed] == [reservation.reservation_id]

    @pytest.mark.persistence
    async def test_update_replaces_row(self, uow_factory):
        reservation = make_reservation()
        async with uow_factory() as uow:
            await uow.reservations.save(reservation)
            await uow.commit()

        async with uow_factory() as uow:
            loaded = await uow.reservations.get_for_update(reservation.reservation_id)
            loaded.confirm(NOW)
            await uow.reservations.save(loaded)
            await uow.commit()

        async with uow_factory() as uow:
            stored = await uow.reservations.get(reservation.reservation_id)
            assert await uow.reservations.find_by_status(ReservationStatus.UNCONFIRMED) == []
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.version == reservation.version + 1

    @pytest.mark.persistence
    async def test_ledger_entries_keep_sign_and_status(self, uow_factory):
        reservation_id = uuid4()
        refund = LedgerEntry.refund(reservation_id, Decimal("25.50"), pending=True, now=NOW)
        async with uow_factory() as uow:
            await uow.ledger.add(refund)
            await uow.commit()

        async with uow_factory() as uow:
            entries = await uow.ledger.find_by_reservation(reservation_id)
        assert [(e.amount, e.status) for e in entries] == [(Decimal("-25.50"), LedgerEntryStatus.PENDING)]

    @pytest.mark.persistence
    async def test_policy_round_trip(self, uow_factory):
        hotel_policy = HotelPolicy(
            check_in_time=time(15, 0),
            no_show_hours=12,
            no_show_refund_percent=Decimal("50"),
            refund_approval_required=True
        )
        async with uow_factory() as uow:
            assert await uow.policy.get() is None
            await uow.policy.save(hotel_policy)
            await uow.commit()

        async with uow_factory() as uow:
            assert await uow.policy.get() == hotel_policy

    @pytest.mark.persistence
    async def test_seed_is_idempotent(self, store):
        await seed_demo_inventory(store())
        async with store() as uow:
            rooms = await uow.rooms.find_all()
            room_types = await uow.room_types.find_all()
        assert [r.number for r in rooms] == ["101", "102", "103", "201", "202"]
        assert len(room_types) == 2


class TestSqlAlchemyUnitOfWork:
    """Test transaction boundaries"""

    @pytest.mark.persistence
    async def test_exception_rolls_back(self, uow_factory):
        reservation = make_reservation()
        with pytest.raises(RuntimeError):
            async with uow_factory() as uow:
                await uow.reservations.save(reservation)
                raise RuntimeError("boom")

        async with uow_factory() as uow:
            assert await uow.reservations.get(reservation.reservation_id) is None

    @pytest.mark.persistence
    async def test_uncommitted_work_is_discarded(self, uow_factory):
        reservation = make_reservation()
        async with uow_factory() as uow:
            await uow.reservations.save(reservation)

        async with uow_factory() as uow:
            assert await uow.reservations.find_all() == []

    @pytest.mark.persistence
    @pytest.mark.edge_case
    async def test_one_checked_in_reservation_per_room(self, uow_factory):
        """The partial unique index rejects a second in-house guest"""
        room_id = uuid4()
        first = make_reservation(status=ReservationStatus.CHECKED_IN, room_id=room_id, check_in_time=NOW)
        second = make_reservation(status=ReservationStatus.CHECKED_IN, room_id=room_id, check_in_time=NOW)

        with pytest.raises(RoomUnavailable):
            async with uow_factory() as uow:
                await uow.reservations.save(first)
                await uow.reservations.save(second)
                await uow.commit()

        async with uow_factory() as uow:
            assert await uow.reservations.find_all() == []

    @pytest.mark.persistence
    async def test_checked_out_guests_do_not_block_the_room(self, uow_factory):
        room_id = uuid4()
        departed = make_reservation(status=ReservationStatus.COMPLETED, room_id=room_id)
        in_house = make_reservation(status=ReservationStatus.CHECKED_IN, room_id=room_id, check_in_time=NOW)
        async with uow_factory() as uow:
            await uow.reservations.save(departed)
            await uow.reservations.save(in_house)
            await uow.commit()

        async with uow_factory() as uow:
            holders = await uow.reservations.find_active_by_room(room_id)
        assert [r.reservation_id for r in holders] == [in_house.reservation_id]

    @pytest.mark.persistence
    def test_factory_builds_fresh_units(self, uow_factory):
        first, second = uow_factory(), uow_factory()
        assert isinstance(first, SqlAlchemyUnitOfWork)
        assert first is not second

    @pytest.mark.persistence
    @pytest.mark.edge_case
    async def test_database_error_inside_unit_becomes_transaction_failed(self, uow_factory):
        reservation = make_reservation()
        with pytest.raises(TransactionFailed) as exc_info:
            async with uow_factory() as uow:
                await uow.reservations.save(reservation)
                raise OperationalError("SELECT reservations", {}, Exception("database is locked"))

        assert "database is locked" in exc_info.value.context["reason"]
        assert isinstance(exc_info.value.__cause__, OperationalError)
        async with uow_factory() as uow:
            assert await uow.reservations.get(reservation.reservation_id) is None


# ============================================================================
# SERVICE FLOWS ON SQL
# ============================================================================

class TestServicesOnSql:
    """End-to-end use cases against the relational store"""

    @pytest.mark.persistence
    @pytest.mark.integration
    async def test_stay_with_room_service(self, reservation_service, store, clock):
        reservation = await book(reservation_service, NOW + timedelta(days=1))
        assert reservation.status == ReservationStatus.CONFIRMED

        clock.advance(days=1)
        await reservation_service.check_in(None, reservation.reservation_id, ROOM_101)

        orders = RoomServiceOrderService(store, clock=clock)
        clock.advance(hours=2)
        order = await orders.place_order(None, reservation.reservation_id, "Breakfast", Decimal("15"))
        clock.advance(minutes=5)
        await orders.cancel_order(None, order.order_id)

        clock.advance(days=3)
        result = await reservation_service.check_out(None, reservation.reservation_id, Decimal("200"))
        assert result.reservation.status == ReservationStatus.COMPLETED

        async with store() as uow:
            stored = await uow.reservations.get(reservation.reservation_id)
            ledger = await uow.ledger.find_by_reservation(reservation.reservation_id)
            bills = await uow.bills.find_by_reservation(reservation.reservation_id)
            room = await uow.rooms.get(ROOM_101)
            saved_order = await uow.orders.get(order.order_id)

        assert stored.service_charges == Decimal("0.00")
        assert stored.total_amount == Decimal("300.00")
        assert stored.pending_amount == Decimal("0.00")
        assert stored.charges_balance()
        assert [e.entry_type for e in ledger] == [LedgerEntryType.ADVANCE, LedgerEntryType.SETTLEMENT]
        assert ledger[1].bill_id == bills[0].bill_id
        assert [(b.status, b.paid_amount) for b in bills] == [(BillStatus.PAID, Decimal("300.00"))]
        assert room.status == RoomStatus.CLEANING
        assert saved_order.amount == Decimal("15.00")

    @pytest.mark.persistence
    async def test_second_guest_cannot_take_occupied_room(self, reservation_service):
        first = await book(reservation_service, NOW + timedelta(days=1))
        second = await book(reservation_service, NOW + timedelta(days=1))
        await reservation_service.check_in(None, first.reservation_id, ROOM_101)

        with pytest.raises(RoomUnavailable):
            await reservation_service.check_in(None, second.reservation_id, ROOM_101)
        stored = await reservation_service.get_reservation(second.reservation_id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.room_id is None

    @pytest.mark.persistence
    async def test_cancel_refunds_advance(self, reservation_service):
        reservation = await book(reservation_service, NOW + timedelta(days=5), advance="120")
        result = await reservation_service.cancel(None, reservation.reservation_id, "guest request")
        assert result.refund.amount == Decimal("-120.00")
        ledger = await reservation_service.get_ledger(reservation.reservation_id)
        assert sorted(e.amount for e in ledger) == [Decimal("-120.00"), Decimal("120.00")]

    @pytest.mark.persistence
    @pytest.mark.integration
    async def test_sweep_marks_no_show(self, reservation_service, store, clock):
        await PolicyService(store).update_policy(None, HotelPolicy(
            no_show_hours=12, no_show_refund_percent=Decimal("50")
        ))
        reservation = await book(reservation_service, NOW - timedelta(hours=14))

        report = await ReservationSweepJob(store, reservation_service, clock=clock).run()
        assert (report.processed, report.no_shows, report.errors) == (1, 1, [])

        stored = await reservation_service.get_reservation(reservation.reservation_id)
        assert stored.status == ReservationStatus.NO_SHOW
        assert stored.no_show_fee == Decimal("50.00")
        ledger = await reservation_service.get_ledger(reservation.reservation_id)
        refunds = [e for e in ledger if e.entry_type == LedgerEntryType.REFUND]
        assert [e.amount for e in refunds] == [Decimal("-50.00")]

        again = await ReservationSweepJob(store, reservation_service, clock=clock).run()
        assert again.processed == 0

    @pytest.mark.persistence
    @pytest.mark.edge_case
    async def test_sweep_survives_lock_failure_on_one_reservation(
        self, reservation_service, store, clock, monkeypatch
    ):
        failing = await book(reservation_service, NOW - timedelta(days=2))
        healthy = await book(reservation_service, NOW - timedelta(days=2))
        get_for_update = SqlAlchemyReservationRepository.get_for_update

        async def lock_timeout_for_first(repository, reservation_id):
            if reservation_id == failing.reservation_id:
                raise OperationalError("SELECT reservations FOR UPDATE", {}, Exception("lock wait timeout"))
            return await get_for_update(repository, reservation_id)

        monkeypatch.setattr(SqlAlchemyReservationRepository, "get_for_update", lock_timeout_for_first)
        report = await ReservationSweepJob(store, reservation_service, clock=clock).run()
        monkeypatch.undo()

        assert (report.processed, report.no_shows) == (2, 1)
        assert [(e.reservation_id, e.error) for e in report.errors] == [
            (failing.reservation_id, "TRANSACTION_FAILED")
        ]
        assert (await reservation_service.get_reservation(failing.reservation_id)).status == \
            ReservationStatus.CONFIRMED
        assert (await reservation_service.get_reservation(healthy.reservation_id)).status == \
            ReservationStatus.NO_SHOW

    @pytest.mark.persistence
    async def test_available_rooms_skip_overlapping_stays(self, store):
        stay = make_reservation(
            status=ReservationStatus.CHECKED_IN, room_id=ROOM_101, check_in_time=NOW,
            check_in=NOW + timedelta(days=1), check_out=NOW + timedelta(days=3)
        )
        departed = make_reservation(
            status=ReservationStatus.COMPLETED, room_id=ROOM_102,
            check_in=NOW + timedelta(days=1), check_out=NOW + timedelta(days=3)
        )
        async with store() as uow:
            await uow.reservations.save(stay)
            await uow.reservations.save(departed)
            await uow.commit()

        rooms = RoomService(store)
        overlapping = await rooms.find_available_rooms(
            NOW + timedelta(days=2), NOW + timedelta(days=4), STANDARD_ROOM_TYPE_ID
        )
        next_arrival = await rooms.find_available_rooms(
            NOW + timedelta(days=3), NOW + timedelta(days=5), STANDARD_ROOM_TYPE_ID
        )
        deluxe = await rooms.find_available_rooms(
            NOW + timedelta(days=2), NOW + timedelta(days=4), DELUXE_ROOM_TYPE_ID
        )

        assert [r.number for r in overlapping] == ["102", "103"]
        assert [r.number for r in next_arrival] == ["101", "102", "103"]
        assert [r.number for r in deluxe] == ["201", "202"]
