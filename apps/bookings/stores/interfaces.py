"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. The reservation
service depends only on these interfaces; the in-memory and Django ORM
implementations live next to them.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable
from uuid import UUID

from apps.bookings.domain import Booking, BookingStatus
from apps.experiences.domain import Experience, TimeSlot


class ExperienceCatalog(ABC):
    """Read access to experiences and their slots."""

    @abstractmethod
    def get_experience(self, experience_id: UUID) -> Experience | None:
        """Return an experience by ID, or None if not found."""
        ...

    @abstractmethod
    def get_slot(self, slot_id: UUID) -> TimeSlot | None:
        """Return a slot by ID (with current counters), or None if not found."""
        ...

    @abstractmethod
    def experience_ids_for_host(self, host_id: str) -> set[UUID]:
        """IDs of every experience hosted by the given user."""
        ...


class BookingStore(ABC):
    """Persistence of Booking aggregates. Bookings are never deleted."""

    @abstractmethod
    def add(self, booking: Booking) -> None:
        """Persist a new booking."""
        ...

    @abstractmethod
    def save(self, booking: Booking) -> None:
        """Persist changes to an existing booking."""
        ...

    @abstractmethod
    def get(self, booking_id: UUID) -> Booking | None:
        """Return a booking by ID, or None if not found."""
        ...

    def get_for_update(self, booking_id: UUID) -> Booking | None:
        """Return a booking locked for the current transaction where supported."""
        return self.get(booking_id)

    @abstractmethod
    def list_for_user(self, user_id: str, status: BookingStatus | None = None) -> list[Booking]:
        """Return a user's bookings, newest first."""
        ...

    @abstractmethod
    def list_for_host(self, host_id: str, status: BookingStatus | None = None) -> list[Booking]:
        """Return bookings of every experience the host offers, newest first."""
        ...

    @abstractmethod
    def has_completed(self, user_id: str, experience_id: UUID) -> bool:
        """True if the user has ever completed a booking of the experience."""
        ...

    @abstractmethod
    def ids_pending_completion(self, now: datetime) -> Iterable[UUID]:
        """IDs of CONFIRMED bookings whose slot has ended."""
        ...

    @abstractmethod
    def ids_awaiting_payment(self, created_before: datetime) -> Iterable[UUID]:
        """IDs of PENDING_PAYMENT/PAYMENT_FAILED bookings created before the given time."""
        ...
