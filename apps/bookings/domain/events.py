"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass
from uuid import UUID

from shared.domain.base import DomainEvent
from shared.domain.value_objects import Money


# ===== Booking Events =====

@dataclass(kw_only=True)
class BookingCreated(DomainEvent):
    """
    Event: A booking was created in PENDING_PAYMENT

    Capacity is already held for it.
    """
    booking_id: UUID
    user_id: str
    experience_id: UUID
    slot_id: UUID
    guest_count: int
    total_price: Money


@dataclass(kw_only=True)
class BookingConfirmed(DomainEvent):
    """Event: Payment succeeded (PENDING_PAYMENT/PAYMENT_FAILED -> CONFIRMED)"""
    booking_id: UUID
    user_id: str
    provider_ref: str | None


@dataclass(kw_only=True)
class BookingPaymentFailed(DomainEvent):
    """
    Event: First charge failed (PENDING_PAYMENT -> PAYMENT_FAILED)

    Capacity stays held during the retry grace period.
    """
    booking_id: UUID
    user_id: str
    reason: str


@dataclass(kw_only=True)
class BookingCancelled(DomainEvent):
    """
    Event: Booking was cancelled

    Triggers:
    - Refund (if it was confirmed)
    - Capacity release (done synchronously by the reservation service)
    """
    booking_id: UUID
    slot_id: UUID
    guest_count: int
    source: str
    old_status: str  # Status before cancellation


@dataclass(kw_only=True)
class BookingCompleted(DomainEvent):
    """
    Event: The experience took place (CONFIRMED -> COMPLETED)

    From now on the guest may review the experience.
    """
    booking_id: UUID
    user_id: str
    experience_id: UUID


# ===== Ledger Events =====

@dataclass(kw_only=True)
class SlotCapacityReleased(DomainEvent):
    """Event: A reservation handle was given back to its slot"""
    slot_id: UUID
    reservation_id: UUID
    guest_count: int
