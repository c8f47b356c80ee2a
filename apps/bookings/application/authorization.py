"""
Authorization collaborator

Decides whether someone other than the booking's owner may act on it.
Owners are always allowed; the reservation service checks that itself.
"""

from abc import ABC, abstractmethod
from typing import Callable
from uuid import UUID
import logging

from apps.bookings.stores.interfaces import BookingStore, ExperienceCatalog

logger = logging.getLogger(__name__)


class Authorizer(ABC):

    @abstractmethod
    def is_authorized(self, requester_id: str, booking_id: UUID, action: str) -> bool:
        ...


class DenyAllAuthorizer(Authorizer):
    """Only owners may act on their bookings."""

    def is_authorized(self, requester_id: str, booking_id: UUID, action: str) -> bool:
        return False


class HostOrStaffAuthorizer(Authorizer):
    """
    Grants staff users and the host of the booked experience

    Args:
        catalog: experience lookup (for the host id)
        bookings: booking lookup
        is_staff: returns True for staff user ids
    """

    def __init__(
        self,
        catalog: ExperienceCatalog,
        bookings: BookingStore,
        is_staff: Callable[[str], bool] = lambda requester_id: False,
    ):
        self.catalog = catalog
        self.bookings = bookings
        self.is_staff = is_staff

    def is_authorized(self, requester_id: str, booking_id: UUID, action: str) -> bool:
        if self.is_staff(requester_id):
            logger.info(f"Staff user {requester_id} allowed to {action} booking {booking_id}")
            return True

        booking = self.bookings.get(booking_id)
        if booking is None:
            return False
        experience = self.catalog.get_experience(booking.experience_id)
        return experience is not None and experience.host_id == str(requester_id)
