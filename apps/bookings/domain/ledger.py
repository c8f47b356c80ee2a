"""
Slot Ledger

This is the CRITICAL component for preventing overbooking.
All changes to a slot's booked_count MUST go through a SlotLedger.

The ledger tracks capacity holds (reservation handles), not bookings:
it never needs to know about payments or reviews.

Strategy:
1. Per-slot critical section (in-memory) or a single conditional
   UPDATE ... WHERE booked_count + n <= capacity (database)
2. Handles are released at most once, so retried cancellations
   never double-decrement
3. CHECK constraint on the slot table as final safety net
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from shared.domain.base import utcnow
from apps.bookings.domain.errors import InvalidGuestCountError


@dataclass(frozen=True)
class ReservationHandle:
    """
    Capacity-holding token

    Represents guest_count units of a slot's capacity held on behalf
    of one booking. The handle id is what the ledger tracks.
    """
    slot_id: UUID
    guest_count: int
    id: UUID = field(default_factory=uuid4)
    reserved_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class SlotCapacity:
    """Read-only view of a slot's counters"""
    slot_id: UUID
    capacity: int
    booked_count: int

    @property
    def available_spots(self) -> int:
        return self.capacity - self.booked_count

    @property
    def is_available(self) -> bool:
        return self.available_spots > 0


class SlotLedger(ABC):
    """
    Owner of every slot's booked_count

    Implementations must make reserve() atomic relative to every other
    reserve()/release() on the same slot.
    """

    @abstractmethod
    def reserve(self, slot_id: UUID, guest_count: int) -> ReservationHandle:
        """
        Hold guest_count units of the slot's capacity

        Raises:
            InvalidGuestCountError: guest_count < 1
            SlotNotFoundError: unknown slot
            CapacityExceededError: booked_count + guest_count > capacity
        """

    @abstractmethod
    def release(self, handle: ReservationHandle) -> bool:
        """
        Give the handle's capacity back

        Returns True if capacity was released, False if this handle
        had already been released (no-op).
        """

    @abstractmethod
    def snapshot(self, slot_id: UUID) -> SlotCapacity:
        """Current counters for a slot (raises SlotNotFoundError)"""

    @staticmethod
    def validate_guest_count(guest_count: int):
        if isinstance(guest_count, bool) or not isinstance(guest_count, int) or guest_count < 1:
            raise InvalidGuestCountError(guest_count)
