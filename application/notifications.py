"""Outbound guest notifications"""
import logging
from abc import ABC, abstractmethod

from domain.entities import Reservation

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Sends messages to guests after a transaction has committed"""

    @abstractmethod
    async def booking_confirmed(self, reservation: Reservation) -> None:
        pass


class LoggingNotifier(Notifier):
    """Records the notification instead of delivering it"""

    async def booking_confirmed(self, reservation: Reservation) -> None:
        logger.info(
            "Booking confirmation for reservation %s (code %s, guest %s)",
            reservation.reservation_id,
            reservation.confirmation_code,
            reservation.guest_id
        )
