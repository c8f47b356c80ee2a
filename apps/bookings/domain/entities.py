"""
Booking Domain Entities

Core business entities for the booking domain:
- Booking: Aggregate representing one reservation of a time slot
- BookingStatus: FSM states for booking lifecycle
- CancellationSource: Who cancelled the booking
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID
import secrets

from shared.domain.base import Aggregate
from shared.domain.value_objects import Money
from apps.bookings.domain.ledger import ReservationHandle


class BookingStatus(Enum):
    """
    Booking Status Finite State Machine

    State transitions (see lifecycle.TRANSITIONS):
    - PENDING_PAYMENT -> CONFIRMED (charge succeeded)
    - PENDING_PAYMENT -> PAYMENT_FAILED (charge failed, capacity still held)
    - PENDING_PAYMENT -> CANCELLED (user cancelled)
    - PAYMENT_FAILED -> CONFIRMED (retry succeeded)
    - PAYMENT_FAILED -> CANCELLED (retries exhausted or user cancelled)
    - CONFIRMED -> CANCELLED (user cancelled before the cutoff)
    - CONFIRMED -> COMPLETED (experience took place)
    """
    PENDING_PAYMENT = 'pending_payment'    # Capacity held, charge in flight
    PAYMENT_FAILED = 'payment_failed'      # Capacity held, waiting for a retry
    CONFIRMED = 'confirmed'                # Paid
    COMPLETED = 'completed'                # Experience took place
    CANCELLED = 'cancelled'                # Capacity given back

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)

    @property
    def holds_capacity(self) -> bool:
        return self in (
            BookingStatus.PENDING_PAYMENT,
            BookingStatus.PAYMENT_FAILED,
            BookingStatus.CONFIRMED,
        )


class CancellationSource(Enum):
    GUEST = 'guest'
    HOST = 'host'
    SYSTEM = 'system'


# Fixed at creation time; a changed total price is a bug, not a feature.
_IMMUTABLE_FIELDS = frozenset({
    'user_id', 'experience_id', 'slot_id', 'reservation', 'guest_count', 'total_price',
})
# Only BookingLifecycle moves these.
_LIFECYCLE_FIELDS = frozenset({'status', 'confirmed_at', 'cancelled_at', 'completed_at'})


def generate_booking_code() -> str:
    return secrets.token_hex(4).upper()


@dataclass(eq=False, kw_only=True)
class Booking(Aggregate):
    """
    Booking Aggregate Root

    Represents a guest's hold on guest_count spots of one time slot.

    Key invariants:
    - A booking always carries the reservation handle that holds its capacity
    - guest_count equals the handle's guest_count
    - total_price never changes after creation
    - status only changes through BookingLifecycle
    """

    booking_code: str
    user_id: str
    experience_id: UUID
    slot_id: UUID
    reservation: ReservationHandle
    guest_count: int
    total_price: Money
    special_requests: str = ''

    status: BookingStatus = BookingStatus.PENDING_PAYMENT
    provider_ref: str | None = None
    payment_attempts: int = 0
    payment_failure_reason: str = ''
    payment_failure_message: str = ''
    cancellation_source: CancellationSource | None = None

    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None

    def __post_init__(self):
        if self.guest_count < 1:
            raise ValueError("Guest count must be at least 1")
        if self.reservation.guest_count != self.guest_count:
            raise ValueError("Reservation handle does not cover the booking's guest count")
        if self.reservation.slot_id != self.slot_id:
            raise ValueError("Reservation handle belongs to another slot")

    def __setattr__(self, name, value):
        if name in self.__dict__:
            if name in _IMMUTABLE_FIELDS:
                raise AttributeError(f"{name} is fixed once the booking exists")
            if name in _LIFECYCLE_FIELDS:
                raise AttributeError(f"{name} can only be changed by BookingLifecycle")
        super().__setattr__(name, value)

    @classmethod
    def open(
        cls,
        *,
        user_id: str,
        experience_id: UUID,
        reservation: ReservationHandle,
        total_price: Money,
        special_requests: str = '',
    ) -> 'Booking':
        """
        Create a new booking in PENDING_PAYMENT

        The only way to start a booking: it needs a handle that
        SlotLedger.reserve() already granted.
        Events: BookingCreated
        """
        from apps.bookings.domain.events import BookingCreated

        booking = cls(
            booking_code=generate_booking_code(),
            user_id=user_id,
            experience_id=experience_id,
            slot_id=reservation.slot_id,
            reservation=reservation,
            guest_count=reservation.guest_count,
            total_price=total_price,
            special_requests=special_requests,
        )
        booking.add_event(BookingCreated(
            aggregate_id=booking.id,
            booking_id=booking.id,
            user_id=user_id,
            experience_id=experience_id,
            slot_id=booking.slot_id,
            guest_count=booking.guest_count,
            total_price=total_price,
        ))
        return booking

    def _apply_lifecycle(self, **changes):
        """Write lifecycle-owned fields (called by BookingLifecycle only)"""
        for name, value in changes.items():
            if name not in _LIFECYCLE_FIELDS:
                raise AttributeError(f"{name} is not a lifecycle field")
            self.__dict__[name] = value

    def record_payment_attempt(self):
        self.payment_attempts += 1
        self.touch()

    def record_payment_success(self, provider_ref: str | None):
        self.provider_ref = provider_ref
        self.payment_failure_reason = ''
        self.payment_failure_message = ''
        self.touch()

    def record_payment_failure(self, reason: str, message: str = ''):
        self.payment_failure_reason = reason
        self.payment_failure_message = message
        self.touch()

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == str(user_id)

    @property
    def holds_capacity(self) -> bool:
        return self.status.holds_capacity

    def __str__(self):
        return f"Booking {self.booking_code} ({self.status.value})"

    def __repr__(self):
        return (
            f"Booking(id={self.id}, booking_code={self.booking_code}, "
            f"status={self.status.value}, slot_id={self.slot_id}, guests={self.guest_count})"
        )
