"""
Booking Lifecycle

The single authoritative transition function for booking status.
Every status change goes through BookingLifecycle.transition(); any
(status, event) pair missing from TRANSITIONS is rejected and leaves
the booking untouched.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, NamedTuple, Tuple
import logging

from shared.domain.base import utcnow
from shared.domain.value_objects import TimeWindow
from apps.bookings.domain.entities import Booking, BookingStatus, CancellationSource
from apps.bookings.domain.errors import CancellationWindowClosedError, InvalidTransitionError

logger = logging.getLogger(__name__)


class BookingEvent(Enum):
    CHARGE_SUCCEEDED = 'charge_succeeded'
    CHARGE_FAILED = 'charge_failed'
    RETRY_SUCCEEDED = 'retry_succeeded'
    RETRY_EXHAUSTED = 'retry_exhausted'
    CANCEL = 'cancel'
    EXPERIENCE_ENDED = 'experience_ended'


class _Rule(NamedTuple):
    target: BookingStatus
    releases_capacity: bool


S = BookingStatus
E = BookingEvent

TRANSITIONS: Dict[Tuple[BookingStatus, BookingEvent], _Rule] = {
    (S.PENDING_PAYMENT, E.CHARGE_SUCCEEDED): _Rule(S.CONFIRMED, False),
    (S.PENDING_PAYMENT, E.CHARGE_FAILED): _Rule(S.PAYMENT_FAILED, False),
    (S.PENDING_PAYMENT, E.CANCEL): _Rule(S.CANCELLED, True),
    (S.PAYMENT_FAILED, E.RETRY_SUCCEEDED): _Rule(S.CONFIRMED, False),
    (S.PAYMENT_FAILED, E.RETRY_EXHAUSTED): _Rule(S.CANCELLED, True),
    (S.PAYMENT_FAILED, E.CANCEL): _Rule(S.CANCELLED, True),
    (S.CONFIRMED, E.CANCEL): _Rule(S.CANCELLED, True),
    (S.CONFIRMED, E.EXPERIENCE_ENDED): _Rule(S.COMPLETED, False),
}

del S, E


@dataclass(frozen=True)
class Transition:
    """Outcome of an applied transition"""
    source: BookingStatus
    target: BookingStatus
    event: BookingEvent
    releases_capacity: bool


class BookingLifecycle:
    """
    Booking state machine

    Args:
        cancellation_cutoff: minimum lead time before the slot starts
            after which a CONFIRMED booking can no longer be cancelled
        clock: returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        cancellation_cutoff: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cancellation_cutoff = cancellation_cutoff
        self._clock = clock

    @staticmethod
    def allowed(status: BookingStatus, event: BookingEvent) -> bool:
        return (status, event) in TRANSITIONS

    def transition(
        self,
        booking: Booking,
        event: BookingEvent,
        *,
        window: TimeWindow | None = None,
        source: CancellationSource | None = None,
    ) -> Transition:
        """
        Apply event to booking

        window is required for CANCEL from CONFIRMED (cutoff check) and
        for EXPERIENCE_ENDED (the slot must have ended).

        Raises:
            InvalidTransitionError: (status, event) not in TRANSITIONS
            CancellationWindowClosedError: CONFIRMED booking inside the cutoff
        """
        current = booking.status
        rule = TRANSITIONS.get((current, event))
        if rule is None:
            raise InvalidTransitionError(booking.id, current.value, event.value)

        now = self._clock()
        self._check_guards(booking, event, window, now)

        changes = {'status': rule.target}
        if rule.target is BookingStatus.CONFIRMED:
            changes['confirmed_at'] = now
        elif rule.target is BookingStatus.CANCELLED:
            changes['cancelled_at'] = now
        elif rule.target is BookingStatus.COMPLETED:
            changes['completed_at'] = now

        booking._apply_lifecycle(**changes)
        if rule.target is BookingStatus.CANCELLED:
            booking.cancellation_source = source or CancellationSource.GUEST
        booking.touch(now)

        self._record_event(booking, current, rule.target)
        logger.info(
            f"Booking {booking.booking_code}: {current.value} -> {rule.target.value} ({event.value})"
        )
        return Transition(current, rule.target, event, rule.releases_capacity)

    def _check_guards(self, booking: Booking, event: BookingEvent, window: TimeWindow | None, now: datetime):
        if event is BookingEvent.CANCEL and booking.status is BookingStatus.CONFIRMED:
            if window is None:
                raise ValueError("Slot window is required to cancel a confirmed booking")
            if window.starts_within(self.cancellation_cutoff, now):
                raise CancellationWindowClosedError(
                    booking.id, self.cancellation_cutoff.total_seconds() / 3600
                )

        if event is BookingEvent.EXPERIENCE_ENDED:
            if window is None:
                raise ValueError("Slot window is required to complete a booking")
            if not window.has_ended(now):
                raise InvalidTransitionError(
                    booking.id, booking.status.value, event.value, "the experience has not ended yet"
                )

    def _record_event(self, booking: Booking, source: BookingStatus, target: BookingStatus):
        from apps.bookings.domain import events

        if target is BookingStatus.CONFIRMED:
            booking.add_event(events.BookingConfirmed(
                aggregate_id=booking.id,
                booking_id=booking.id,
                user_id=booking.user_id,
                provider_ref=booking.provider_ref,
            ))
        elif target is BookingStatus.PAYMENT_FAILED:
            booking.add_event(events.BookingPaymentFailed(
                aggregate_id=booking.id,
                booking_id=booking.id,
                user_id=booking.user_id,
                reason=booking.payment_failure_reason,
            ))
        elif target is BookingStatus.CANCELLED:
            booking.add_event(events.BookingCancelled(
                aggregate_id=booking.id,
                booking_id=booking.id,
                slot_id=booking.slot_id,
                guest_count=booking.guest_count,
                source=booking.cancellation_source.value,
                old_status=source.value,
            ))
        elif target is BookingStatus.COMPLETED:
            booking.add_event(events.BookingCompleted(
                aggregate_id=booking.id,
                booking_id=booking.id,
                user_id=booking.user_id,
                experience_id=booking.experience_id,
            ))
