from apps.bookings.domain.entities import Booking, BookingStatus, CancellationSource
from apps.bookings.domain.ledger import ReservationHandle, SlotCapacity, SlotLedger
from apps.bookings.domain.lifecycle import BookingEvent, BookingLifecycle, Transition
from apps.bookings.domain.policy import ReservationPolicy

__all__ = [
    "Booking",
    "BookingStatus",
    "CancellationSource",
    "ReservationHandle",
    "SlotCapacity",
    "SlotLedger",
    "BookingEvent",
    "BookingLifecycle",
    "Transition",
    "ReservationPolicy",
]
