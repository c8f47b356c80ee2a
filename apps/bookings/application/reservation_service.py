"""
Reservation Service

The use cases of the reservation engine and the only entry point the
API, the Celery sweeps and the review flow call.

Use cases:
- create_booking: hold capacity, open the booking, charge
- cancel_booking: cancel, give capacity back, refund if paid
- retry_payment: charge again after a failed payment
- complete_booking: mark a confirmed booking as completed
- can_review: has the user completed this experience?

Every state change of a booking happens under that booking's lock and
inside one unit of work; events are published after commit.
"""

from datetime import datetime
from typing import Callable
from uuid import UUID
import logging

from shared.application.locks import KeyedLock
from shared.application.uow import AbstractUnitOfWork, InMemoryUnitOfWork
from shared.domain.base import utcnow
from shared.domain.errors import DomainError
from shared.domain.value_objects import Money
from apps.bookings import audit
from apps.bookings.application.authorization import Authorizer, DenyAllAuthorizer
from apps.bookings.domain import (
    Booking,
    BookingEvent,
    BookingLifecycle,
    BookingStatus,
    CancellationSource,
    ReservationHandle,
    ReservationPolicy,
    SlotLedger,
    Transition,
)
from apps.bookings.domain.errors import (
    AmountMismatchError,
    BookingNotFoundError,
    CapacityExceededError,
    ExperienceNotFoundError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotRetryableError,
    SlotFullError,
    SlotMismatchError,
    SlotNotFoundError,
)
from apps.bookings.domain.events import SlotCapacityReleased
from apps.bookings.stores.interfaces import BookingStore, ExperienceCatalog
from apps.payments.coordinator import PaymentCoordinator
from apps.payments.domain import ChargeResult, FailureReason, Fatal, Retryable, Succeeded

logger = logging.getLogger(__name__)

_AWAITING_PAYMENT = (BookingStatus.PENDING_PAYMENT, BookingStatus.PAYMENT_FAILED)


class ReservationService:
    """
    Orchestrates SlotLedger, BookingLifecycle and PaymentCoordinator

    Args:
        catalog: experience and slot lookup
        bookings: booking persistence
        ledger: slot capacity owner
        payments: charge/refund coordinator
        policy: cutoffs, grace period and retry limit
        lifecycle: state machine (built from policy when omitted)
        authorizer: decides for non-owners
        uow_factory: returns a fresh unit of work per use case
        clock: current aware datetime
    """

    def __init__(
        self,
        *,
        catalog: ExperienceCatalog,
        bookings: BookingStore,
        ledger: SlotLedger,
        payments: PaymentCoordinator,
        policy: ReservationPolicy | None = None,
        lifecycle: BookingLifecycle | None = None,
        authorizer: Authorizer | None = None,
        uow_factory: Callable[[], AbstractUnitOfWork] = InMemoryUnitOfWork,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.bookings = bookings
        self.ledger = ledger
        self.payments = payments
        self.policy = policy or ReservationPolicy()
        self._clock = clock
        self.lifecycle = lifecycle or BookingLifecycle(self.policy.cancellation_cutoff, clock=clock)
        self.authorizer = authorizer or DenyAllAuthorizer()
        self._uow = uow_factory
        self._locks = KeyedLock()

    # ===== Use cases =====

    def create_booking(
        self,
        user_id: str,
        experience_id: UUID,
        slot_id: UUID,
        guest_count: int,
        special_requests: str = '',
        method_ref: str | None = None,
    ) -> Booking:
        """
        Book guest_count spots of a slot and pay for them

        Strategy:
        1. Validate input and load experience and slot (no capacity touched)
        2. SlotLedger.reserve: atomic capacity check and hold
        3. Open the booking in PENDING_PAYMENT (release the hold if that fails)
        4. Charge synchronously
        5. CONFIRMED on success, PAYMENT_FAILED otherwise (capacity stays held)

        Returns: the booking in CONFIRMED or PAYMENT_FAILED

        Raises:
            InvalidGuestCountError, ExperienceNotFoundError, SlotNotFoundError,
            SlotMismatchError, SlotFullError
            AmountMismatchError: fatal charge; the booking is PAYMENT_FAILED
        """
        user_id = str(user_id)
        logger.info(
            f"Creating booking for user {user_id}: experience {experience_id}, "
            f"slot {slot_id}, {guest_count} guest(s)"
        )

        SlotLedger.validate_guest_count(guest_count)

        experience = self.catalog.get_experience(experience_id)
        if experience is None or not experience.is_active:
            raise ExperienceNotFoundError(experience_id)

        slot = self.catalog.get_slot(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)
        if slot.experience_id != experience.id:
            raise SlotMismatchError(slot_id, experience_id)

        total_price = experience.price * guest_count

        try:
            handle = self.ledger.reserve(slot.id, guest_count)
        except CapacityExceededError as e:
            logger.info(f"Slot {slot_id} cannot take {guest_count} guest(s): {e.available} left")
            raise SlotFullError(slot_id, e.available) from e

        booking = self._open_booking(user_id, experience.id, handle, total_price, special_requests)

        with self._locks.hold(booking.id):
            result = self.payments.charge(booking.id, booking.total_price, method_ref)
            booking = self._apply_charge_result(booking.id, result, retry=False)

        if isinstance(result, Fatal):
            raise AmountMismatchError(booking.id)
        return booking

    def cancel_booking(self, booking_id: UUID, requester_id: str) -> Booking:
        """
        Cancel a booking and give its capacity back

        Confirmed bookings are refunded after the cancellation commits.

        Raises:
            BookingNotFoundError, NotAuthorizedError, InvalidTransitionError
            CancellationWindowClosedError: confirmed booking inside the cutoff
        """
        with self._locks.hold(booking_id):
            with self._uow() as uow:
                booking = self._load_for_update(booking_id)
                is_owner = self._authorize(booking, requester_id, 'cancel')
                was_confirmed = booking.status is BookingStatus.CONFIRMED

                self._transition(
                    booking,
                    BookingEvent.CANCEL,
                    window=self._slot_window(booking),
                    source=CancellationSource.GUEST if is_owner else CancellationSource.HOST,
                )
                self.bookings.save(booking)
                self._release_capacity(booking)
                uow.collect_events(booking)

            if was_confirmed:
                self._refund(booking)

        return booking

    def retry_payment(self, booking_id: UUID, requester_id: str, method_ref: str | None = None) -> Booking:
        """
        Charge again for a PAYMENT_FAILED booking

        A failed retry leaves the booking in PAYMENT_FAILED until the
        attempt limit is reached; then it is cancelled and its capacity
        released.

        Raises:
            BookingNotFoundError, NotAuthorizedError
            NotRetryableError: booking is not PAYMENT_FAILED
            AmountMismatchError: fatal charge
        """
        with self._locks.hold(booking_id):
            booking = self._get(booking_id)
            self._authorize(booking, requester_id, 'retry payment for')

            try:
                result = self.payments.retry_charge(booking, method_ref)
            except NotRetryableError as e:
                audit.invalid_transition(booking.id, booking.status.value, 'retry_payment', e.message)
                raise

            booking = self._apply_charge_result(booking_id, result, retry=True)

        if isinstance(result, Fatal):
            raise AmountMismatchError(booking.id)
        return booking

    def complete_booking(self, booking_id: UUID) -> Booking:
        """
        Mark a confirmed booking as completed once its slot has ended

        Calling it again for a completed booking is a no-op.
        """
        with self._locks.hold(booking_id):
            with self._uow() as uow:
                booking = self._load_for_update(booking_id)
                if booking.status is BookingStatus.COMPLETED:
                    logger.debug(f"Booking {booking.booking_code} already completed")
                    return booking

                self._transition(booking, BookingEvent.EXPERIENCE_ENDED, window=self._slot_window(booking))
                self.bookings.save(booking)
                uow.collect_events(booking)

        return booking

    def can_review(self, user_id: str, experience_id: UUID) -> bool:
        return self.bookings.has_completed(str(user_id), experience_id)

    # ===== Queries =====

    def get_booking(self, booking_id: UUID, requester_id: str) -> Booking:
        booking = self._get(booking_id)
        self._authorize(booking, requester_id, 'view')
        return booking

    def list_bookings(self, user_id: str, status: BookingStatus | None = None) -> list[Booking]:
        return self.bookings.list_for_user(str(user_id), status)

    def list_host_bookings(self, host_id: str, status: BookingStatus | None = None) -> list[Booking]:
        """Bookings of every experience the host offers, newest first"""
        return self.bookings.list_for_host(str(host_id), status)

    # ===== Sweeps =====

    def expire_stale_payments(self, now: datetime | None = None) -> int:
        """
        Cancel unpaid bookings older than the payment grace period

        Returns: number of bookings cancelled
        """
        now = now or self._clock()
        created_before = now - self.policy.payment_grace_period
        expired = 0

        for booking_id in self.bookings.ids_awaiting_payment(created_before):
            try:
                if self._expire(booking_id):
                    expired += 1
            except DomainError as e:
                logger.error(f"Error expiring booking {booking_id}: {e}", exc_info=True)

        if expired:
            logger.info(f"Expired {expired} unpaid bookings")
        return expired

    def complete_finished_bookings(self, now: datetime | None = None) -> int:
        """
        Complete confirmed bookings whose slot has ended

        Returns: number of bookings completed
        """
        now = now or self._clock()
        completed = 0

        for booking_id in self.bookings.ids_pending_completion(now):
            try:
                self.complete_booking(booking_id)
                completed += 1
            except DomainError as e:
                logger.error(f"Error completing booking {booking_id}: {e}", exc_info=True)

        if completed:
            logger.info(f"Completed {completed} bookings")
        return completed

    # ===== Internals =====

    def _open_booking(
        self,
        user_id: str,
        experience_id: UUID,
        handle: ReservationHandle,
        total_price: Money,
        special_requests: str,
    ) -> Booking:
        try:
            with self._uow() as uow:
                booking = Booking.open(
                    user_id=user_id,
                    experience_id=experience_id,
                    reservation=handle,
                    total_price=total_price,
                    special_requests=special_requests,
                )
                self.bookings.add(booking)
                uow.collect_events(booking)
        except Exception:
            logger.error(f"Could not open booking on slot {handle.slot_id}, releasing hold {handle.id}")
            self.ledger.release(handle)
            raise

        logger.info(f"Booking {booking.booking_code} opened ({booking.total_price})")
        return booking

    def _apply_charge_result(self, booking_id: UUID, result: ChargeResult, *, retry: bool) -> Booking:
        """Record a charge outcome on the booking (caller holds the booking lock)"""
        late_success = False

        with self._uow() as uow:
            booking = self._load_for_update(booking_id)

            if booking.status not in _AWAITING_PAYMENT:
                # cancelled or expired while the charge was in flight
                audit.invalid_transition(booking.id, booking.status.value, 'charge_result', result.outcome.value)
                late_success = isinstance(result, Succeeded)
                if late_success:
                    booking.record_payment_success(result.provider_ref)
                    self.bookings.save(booking)
            else:
                booking.record_payment_attempt()
                transition = None

                if isinstance(result, Succeeded):
                    booking.record_payment_success(result.provider_ref)
                    event = BookingEvent.RETRY_SUCCEEDED if retry else BookingEvent.CHARGE_SUCCEEDED
                    transition = self._transition(booking, event)
                else:
                    # only a decline reason is meant for the guest
                    decline_message = result.message if result.reason is FailureReason.CARD_DECLINED else ''
                    booking.record_payment_failure(result.reason.value, decline_message)
                    if isinstance(result, Fatal):
                        audit.payment_anomaly(booking.id, 'amount_mismatch', message=result.message)
                    if not retry:
                        transition = self._transition(booking, BookingEvent.CHARGE_FAILED)
                    elif isinstance(result, Retryable) and self._retries_exhausted(booking):
                        transition = self._transition(
                            booking, BookingEvent.RETRY_EXHAUSTED, source=CancellationSource.SYSTEM
                        )

                self.bookings.save(booking)
                if transition is not None and transition.releases_capacity:
                    self._release_capacity(booking)
                uow.collect_events(booking)

        if late_success:
            self._refund(booking)
        return booking

    def _retries_exhausted(self, booking: Booking) -> bool:
        exhausted = booking.payment_attempts >= self.policy.max_payment_attempts
        if exhausted:
            logger.info(
                f"Booking {booking.booking_code}: {booking.payment_attempts} payment attempts, giving up"
            )
        return exhausted

    def _expire(self, booking_id: UUID) -> bool:
        with self._locks.hold(booking_id):
            with self._uow() as uow:
                booking = self._load_for_update(booking_id)
                if booking.status not in _AWAITING_PAYMENT:
                    return False

                self._transition(booking, BookingEvent.CANCEL, source=CancellationSource.SYSTEM)
                self.bookings.save(booking)
                self._release_capacity(booking)
                uow.collect_events(booking)
        return True

    def _transition(self, booking: Booking, event: BookingEvent, **kwargs) -> Transition:
        try:
            return self.lifecycle.transition(booking, event, **kwargs)
        except InvalidTransitionError as e:
            audit.invalid_transition(booking.id, e.current, e.event, e.message)
            raise

    def _release_capacity(self, booking: Booking):
        handle = booking.reservation
        if self.ledger.release(handle):
            booking.add_event(SlotCapacityReleased(
                aggregate_id=booking.id,
                slot_id=handle.slot_id,
                reservation_id=handle.id,
                guest_count=handle.guest_count,
            ))
        else:
            logger.warning(f"Capacity of booking {booking.booking_code} was already released")

    def _refund(self, booking: Booking):
        result = self.payments.refund(booking)
        if not isinstance(result, Succeeded):
            audit.payment_anomaly(
                booking.id, 'refund_failed', reason=result.reason.value, message=result.message
            )
        return result

    def _authorize(self, booking: Booking, requester_id: str, action: str) -> bool:
        """Returns True for the owner; raises NotAuthorizedError for strangers"""
        if booking.is_owned_by(requester_id):
            return True
        if self.authorizer.is_authorized(str(requester_id), booking.id, action):
            return False
        raise NotAuthorizedError(str(requester_id), action)

    def _slot_window(self, booking: Booking):
        slot = self.catalog.get_slot(booking.slot_id)
        if slot is None:
            raise SlotNotFoundError(booking.slot_id)
        return slot.window

    def _get(self, booking_id: UUID) -> Booking:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def _load_for_update(self, booking_id: UUID) -> Booking:
        booking = self.bookings.get_for_update(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking
