"""In-memory store implementations.

Process-local and thread-safe. Used by the test suite and by anything
that runs the reservation engine without a database. Aggregates are
copied on the way in and out, like a real persistence boundary.
"""

from copy import deepcopy
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable
from uuid import UUID
import logging
import threading

from shared.application.locks import KeyedLock
from apps.bookings.domain import (
    Booking,
    BookingStatus,
    ReservationHandle,
    SlotCapacity,
    SlotLedger,
)
from apps.bookings.domain.errors import CapacityExceededError, SlotNotFoundError
from apps.bookings.stores.interfaces import BookingStore, ExperienceCatalog
from apps.experiences.domain import Experience, TimeSlot

logger = logging.getLogger(__name__)


class InMemoryExperienceCatalog(ExperienceCatalog):
    """Dictionary-backed catalog."""

    def __init__(self):
        self._experiences: Dict[UUID, Experience] = {}
        self._slots: Dict[UUID, TimeSlot] = {}

    def add_experience(self, experience: Experience) -> Experience:
        self._experiences[experience.id] = experience
        return experience

    def add_slot(self, slot: TimeSlot) -> TimeSlot:
        if slot.experience_id not in self._experiences:
            raise ValueError(f"Unknown experience {slot.experience_id}")
        self._slots[slot.id] = slot
        return slot

    def get_experience(self, experience_id: UUID) -> Experience | None:
        return self._experiences.get(experience_id)

    def get_slot(self, slot_id: UUID) -> TimeSlot | None:
        return self._slots.get(slot_id)

    def set_booked_count(self, slot_id: UUID, booked_count: int) -> TimeSlot:
        """Store a new counter for a slot (the ledger is the only caller)"""
        slot = replace(self._slots[slot_id], booked_count=booked_count)
        self._slots[slot_id] = slot
        return slot

    def experience_ids_for_host(self, host_id: str) -> set[UUID]:
        return {e.id for e in self._experiences.values() if e.host_id == str(host_id)}


class InMemorySlotLedger(SlotLedger):
    """
    Slot ledger guarded by one lock per slot

    Reserve and release on the same slot are serialized by that slot's
    lock; different slots never contend.
    """

    def __init__(self, catalog: InMemoryExperienceCatalog):
        self._catalog = catalog
        self._locks = KeyedLock()
        self._holds: Dict[UUID, ReservationHandle] = {}
        self._holds_guard = threading.Lock()

    def reserve(self, slot_id: UUID, guest_count: int) -> ReservationHandle:
        self.validate_guest_count(guest_count)
        with self._locks.hold(slot_id):
            slot = self._catalog.get_slot(slot_id)
            if slot is None:
                raise SlotNotFoundError(slot_id)
            if slot.booked_count + guest_count > slot.capacity:
                raise CapacityExceededError(slot_id, guest_count, slot.available_spots)

            self._catalog.set_booked_count(slot_id, slot.booked_count + guest_count)
            handle = ReservationHandle(slot_id=slot_id, guest_count=guest_count)
            with self._holds_guard:
                self._holds[handle.id] = handle

        logger.debug(f"Reserved {guest_count} spot(s) on slot {slot_id} (handle {handle.id})")
        return handle

    def release(self, handle: ReservationHandle) -> bool:
        with self._locks.hold(handle.slot_id):
            with self._holds_guard:
                held = self._holds.pop(handle.id, None)
            if held is None:
                logger.debug(f"Handle {handle.id} already released")
                return False

            slot = self._catalog.get_slot(held.slot_id)
            self._catalog.set_booked_count(held.slot_id, slot.booked_count - held.guest_count)

        logger.debug(f"Released {held.guest_count} spot(s) on slot {held.slot_id} (handle {held.id})")
        return True

    def snapshot(self, slot_id: UUID) -> SlotCapacity:
        slot = self._catalog.get_slot(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)
        return SlotCapacity(slot_id=slot.id, capacity=slot.capacity, booked_count=slot.booked_count)


class InMemoryBookingStore(BookingStore):
    """Dictionary-backed booking store."""

    def __init__(self, catalog: ExperienceCatalog):
        self._catalog = catalog
        self._bookings: Dict[UUID, Booking] = {}
        self._guard = threading.Lock()

    @staticmethod
    def _detach(booking: Booking) -> Booking:
        copy = deepcopy(booking)
        copy.clear_events()
        return copy

    def add(self, booking: Booking) -> None:
        with self._guard:
            if booking.id in self._bookings:
                raise ValueError(f"Booking {booking.id} already exists")
            self._bookings[booking.id] = self._detach(booking)

    def save(self, booking: Booking) -> None:
        with self._guard:
            if booking.id not in self._bookings:
                raise ValueError(f"Booking {booking.id} does not exist")
            self._bookings[booking.id] = self._detach(booking)

    def get(self, booking_id: UUID) -> Booking | None:
        with self._guard:
            booking = self._bookings.get(booking_id)
            return deepcopy(booking) if booking else None

    def _all(self) -> list[Booking]:
        with self._guard:
            return list(self._bookings.values())

    def list_for_user(self, user_id: str, status: BookingStatus | None = None) -> list[Booking]:
        found = [
            deepcopy(b) for b in self._all()
            if b.user_id == str(user_id) and (status is None or b.status is status)
        ]
        return sorted(found, key=lambda b: b.created_at, reverse=True)

    def list_for_host(self, host_id: str, status: BookingStatus | None = None) -> list[Booking]:
        experience_ids = self._catalog.experience_ids_for_host(host_id)
        found = [
            deepcopy(b) for b in self._all()
            if b.experience_id in experience_ids and (status is None or b.status is status)
        ]
        return sorted(found, key=lambda b: b.created_at, reverse=True)

    def has_completed(self, user_id: str, experience_id: UUID) -> bool:
        return any(
            b.user_id == str(user_id)
            and b.experience_id == experience_id
            and b.completed_at is not None
            for b in self._all()
        )

    def ids_pending_completion(self, now: datetime) -> Iterable[UUID]:
        ids = []
        for booking in self._all():
            if booking.status is not BookingStatus.CONFIRMED:
                continue
            slot = self._catalog.get_slot(booking.slot_id)
            if slot is not None and slot.window.has_ended(now):
                ids.append(booking.id)
        return ids

    def ids_awaiting_payment(self, created_before: datetime) -> Iterable[UUID]:
        waiting = (BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_FAILED)
        return [
            b.id for b in self._all()
            if b.status in waiting and b.created_at < created_before
        ]
