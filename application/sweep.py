"""Automatic Sweep Job

Drives the time-based transitions: unpaid bookings past their hold are
cancelled and confirmed guests past the no-show deadline are marked NO_SHOW.
Each reservation is handled in its own unit of work through the same
service methods interactive actions use, so one failure never blocks the
rest of the batch.
"""
import logging
from uuid import UUID
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from application.services import ReservationService, UnitOfWorkFactory
from domain import policy as policy_engine
from domain.clock import utcnow
from domain.enums import ReservationStatus
from domain.errors import PolicyNotConfigured, ReservationError, TransactionFailed
from domain.value_objects import HotelPolicy

logger = logging.getLogger(__name__)


class SweepError(BaseModel):
    reservation_id: UUID
    error: str
    message: str


class SweepReport(BaseModel):
    """Outcome of one sweep run"""
    processed: int = 0
    cancelled: int = 0
    no_shows: int = 0
    skipped: int = 0
    errors: List[SweepError] = Field(default_factory=list)


class ReservationSweepJob:
    """Batch job applying hold-expiry and no-show rules"""

    def __init__(self,
                 uow_factory: UnitOfWorkFactory,
                 reservation_service: ReservationService,
                 clock: Callable[[], datetime] = utcnow):
        self.uow_factory = uow_factory
        self.reservation_service = reservation_service
        self.clock = clock

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.clock()
        report = SweepReport()

        async with self.uow_factory() as uow:
            hotel_policy = await uow.policy.get()
            if hotel_policy is None:
                raise PolicyNotConfigured("Hotel policy has not been configured")
            unconfirmed = await uow.reservations.find_by_status(ReservationStatus.UNCONFIRMED)
            confirmed = await uow.reservations.find_by_status(ReservationStatus.CONFIRMED)

        expired = [
            r.reservation_id for r in unconfirmed
            if policy_engine.evaluate_unconfirmed_expiry(r, hotel_policy, now)
        ]
        overdue = [
            r.reservation_id for r in confirmed
            if policy_engine.evaluate_no_show(r, hotel_policy, now).is_no_show
        ]
        logger.info(
            "Sweep at %s: %d hold(s) expired, %d no-show candidate(s)",
            now.isoformat(), len(expired), len(overdue)
        )

        for reservation_id in expired:
            if await self._apply(report, reservation_id, self.reservation_service.expire_unconfirmed,
                                 hotel_policy, now):
                report.cancelled += 1
        for reservation_id in overdue:
            if await self._apply(report, reservation_id, self.reservation_service.mark_no_show,
                                 hotel_policy, now):
                report.no_shows += 1

        logger.info(
            "Sweep finished: processed=%d cancelled=%d no_shows=%d skipped=%d errors=%d",
            report.processed, report.cancelled, report.no_shows, report.skipped, len(report.errors)
        )
        return report

    async def _apply(self, report: SweepReport, reservation_id: UUID, transition,
                     hotel_policy: HotelPolicy, now: datetime) -> bool:
        report.processed += 1
        try:
            result = await transition(reservation_id, hotel_policy, now)
        except ReservationError as e:
            logger.warning("Sweep could not process reservation %s: %s", reservation_id, e.message)
            report.errors.append(SweepError(
                reservation_id=reservation_id,
                error=e.code,
                message=e.message
            ))
            return False
        except Exception as e:
            logger.exception("Sweep failed on reservation %s", reservation_id)
            report.errors.append(SweepError(
                reservation_id=reservation_id,
                error=TransactionFailed.code,
                message=str(e)
            ))
            return False
        if result is None:
            report.skipped += 1
            return False
        return True
