"""
Experience Catalog Domain

Read-side domain objects handed to the reservation engine. They are
snapshots: mutating them never changes persisted capacity.
"""

from dataclasses import dataclass
from uuid import UUID

from shared.domain.value_objects import Money, TimeWindow


@dataclass(frozen=True)
class Experience:
    """A guided experience offered by a host"""
    id: UUID
    host_id: str
    title: str
    price: Money
    duration_minutes: int
    max_capacity: int
    is_active: bool = True


@dataclass(frozen=True)
class TimeSlot:
    """
    A bookable window of an experience

    Invariant: 0 <= booked_count <= capacity
    """
    id: UUID
    experience_id: UUID
    window: TimeWindow
    capacity: int
    booked_count: int = 0

    def __post_init__(self):
        if self.capacity < 0:
            raise ValueError("Capacity cannot be negative")
        if not 0 <= self.booked_count <= self.capacity:
            raise ValueError(
                f"booked_count {self.booked_count} outside [0, {self.capacity}]"
            )

    @property
    def available_spots(self) -> int:
        return self.capacity - self.booked_count

    @property
    def is_available(self) -> bool:
        return self.available_spots > 0
