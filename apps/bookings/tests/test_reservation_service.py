"""
Reservation service use cases against the in-memory engine.

Covers booking creation, payment failure and retry, cancellation,
completion, review eligibility and the periodic sweeps.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from shared.domain.value_objects import Money
from apps.bookings import audit
from apps.bookings.domain import BookingEvent, BookingStatus, CancellationSource, ReservationPolicy
from apps.bookings.domain import events
from apps.bookings.domain.errors import (
    AmountMismatchError,
    BookingNotFoundError,
    CancellationWindowClosedError,
    ExperienceNotFoundError,
    InvalidGuestCountError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotRetryableError,
    SlotFullError,
    SlotMismatchError,
    SlotNotFoundError,
)
from apps.payments.domain import AttemptKind, AttemptOutcome, FailureReason, charge_key
from apps.payments.providers import PaymentProviderError, ProviderResponse, ProviderStatus

from conftest import build_engine


@pytest.fixture
def experience(engine):
    return engine.add_experience(price="500.00", max_capacity=4)


@pytest.fixture
def slot(engine, experience):
    return engine.add_slot(experience)


@pytest.fixture
def published(engine):
    seen = []

    @engine.bus.subscribe(
        events.BookingCreated,
        events.BookingConfirmed,
        events.BookingPaymentFailed,
        events.BookingCancelled,
        events.BookingCompleted,
        events.SlotCapacityReleased,
    )
    def collect(event):
        seen.append(event)

    return seen


def published_types(published):
    return [type(e).__name__ for e in published]


class TestCreateBooking:

    def test_successful_payment_confirms_booking(self, engine, experience, slot, published):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 3, special_requests="Vegetarian")

        assert booking.status is BookingStatus.CONFIRMED
        assert booking.total_price == Money(Decimal("1500.00"), "MXN")
        assert booking.special_requests == "Vegetarian"
        assert booking.provider_ref.startswith("sbx_")
        assert booking.payment_attempts == 1
        assert booking.confirmed_at == engine.clock.now
        assert engine.booked(slot) == 3
        assert engine.provider.captured == 1
        assert published_types(published) == ["BookingCreated", "BookingConfirmed"]

        stored = engine.bookings.get(booking.id)
        assert stored.status is BookingStatus.CONFIRMED
        assert stored.provider_ref == booking.provider_ref

    def test_full_slot_is_rejected_without_charging(self, engine, experience, slot):
        engine.service.create_booking("guest-1", experience.id, slot.id, 3)

        with pytest.raises(SlotFullError) as exc_info:
            engine.service.create_booking("guest-2", experience.id, slot.id, 2)

        assert exc_info.value.available == 1
        assert engine.booked(slot) == 3
        assert len(engine.provider.calls) == 1
        assert engine.service.list_bookings("guest-2") == []

    def test_invalid_guest_count_touches_nothing(self, engine, experience, slot):
        with pytest.raises(InvalidGuestCountError):
            engine.service.create_booking("guest-1", experience.id, slot.id, 0)

        assert engine.booked(slot) == 0
        assert engine.provider.calls == []

    def test_unknown_experience(self, engine, slot):
        with pytest.raises(ExperienceNotFoundError):
            engine.service.create_booking("guest-1", uuid4(), slot.id, 1)

    def test_inactive_experience_cannot_be_booked(self, engine):
        experience = engine.add_experience(is_active=False)
        slot = engine.add_slot(experience)

        with pytest.raises(ExperienceNotFoundError):
            engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        assert engine.booked(slot) == 0

    def test_unknown_slot(self, engine, experience):
        with pytest.raises(SlotNotFoundError):
            engine.service.create_booking("guest-1", experience.id, uuid4(), 1)

    def test_slot_of_another_experience(self, engine, experience):
        other_slot = engine.add_slot(engine.add_experience())

        with pytest.raises(SlotMismatchError):
            engine.service.create_booking("guest-1", experience.id, other_slot.id, 1)
        assert engine.booked(other_slot) == 0

    def test_declined_payment_keeps_capacity_held(self, engine, experience, slot, published):
        engine.provider.queue(ProviderStatus.DECLINED)

        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        assert booking.status is BookingStatus.PAYMENT_FAILED
        assert booking.payment_failure_reason == FailureReason.CARD_DECLINED.value
        assert booking.provider_ref is None
        assert engine.booked(slot) == 2
        assert published_types(published) == ["BookingCreated", "BookingPaymentFailed"]

    def test_provider_outage_is_a_retryable_failure(self, engine, experience, slot):
        engine.provider.queue(PaymentProviderError("read timeout"))

        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        assert booking.status is BookingStatus.PAYMENT_FAILED
        assert booking.payment_failure_reason == FailureReason.PROVIDER_UNAVAILABLE.value
        (attempt,) = engine.attempts.for_booking(booking.id)
        assert attempt.outcome is AttemptOutcome.RETRYABLE
        assert attempt.failure_reason is FailureReason.PROVIDER_UNAVAILABLE

    def test_provider_decline_reason_is_kept_for_the_guest(self, engine, experience, slot):
        engine.provider.queue(ProviderResponse(ProviderStatus.DECLINED, message="Insufficient funds"))

        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        assert booking.payment_failure_reason == FailureReason.CARD_DECLINED.value
        assert booking.payment_failure_message == "Insufficient funds"
        assert engine.bookings.get(booking.id).payment_failure_message == "Insufficient funds"

    def test_outage_details_are_not_kept_for_the_guest(self, engine, experience, slot):
        engine.provider.queue(PaymentProviderError("read timeout on 10.0.0.7"))

        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        assert booking.payment_failure_message == ""

    def test_unexpected_provider_error_leaves_booking_retryable(self, engine, experience, slot):
        engine.provider.queue(AttributeError("'str' object has no attribute 'get'"))

        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        assert booking.status is BookingStatus.PAYMENT_FAILED
        assert booking.payment_failure_reason == FailureReason.PROVIDER_UNAVAILABLE.value
        assert engine.booked(slot) == 2

        retried = engine.service.retry_payment(booking.id, "guest-1")

        assert retried.status is BookingStatus.CONFIRMED
        assert retried.payment_failure_message == ""

    def test_amount_mismatch_raises_and_keeps_booking_payment_failed(self, engine, experience, slot):
        engine.provider.queue(ProviderStatus.AMOUNT_MISMATCH)

        with pytest.raises(AmountMismatchError) as exc_info:
            engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        booking = engine.bookings.get(exc_info.value.booking_id)
        assert booking.status is BookingStatus.PAYMENT_FAILED
        assert booking.payment_failure_reason == FailureReason.AMOUNT_MISMATCH.value
        assert engine.booked(slot) == 2

    def test_persistence_failure_releases_the_hold(self, engine, experience, slot, monkeypatch):
        def broken_add(booking):
            raise RuntimeError("database is gone")

        monkeypatch.setattr(engine.bookings, "add", broken_add)

        with pytest.raises(RuntimeError):
            engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        assert engine.booked(slot) == 0
        assert engine.provider.calls == []

    def test_concurrent_creates_never_overbook(self, engine, experience, slot):
        barrier = threading.Barrier(8)

        def book(n):
            barrier.wait()
            try:
                return engine.service.create_booking(f"guest-{n}", experience.id, slot.id, 1)
            except SlotFullError:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(book, range(8)))

        confirmed = [b for b in results if b is not None]
        assert len(confirmed) == 4
        assert all(b.status is BookingStatus.CONFIRMED for b in confirmed)
        assert engine.booked(slot) == 4
        assert engine.provider.captured == 4


class TestRetryPayment:

    def test_retry_after_decline_confirms_with_the_same_key(self, engine, experience, slot, published):
        engine.provider.queue(ProviderStatus.DECLINED)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        retried = engine.service.retry_payment(booking.id, "guest-1")

        assert retried.status is BookingStatus.CONFIRMED
        assert retried.payment_attempts == 2
        assert retried.payment_failure_reason == ""
        assert engine.booked(slot) == 2
        assert engine.provider.captured == 1
        keys = {key for _, key, _ in engine.provider.calls}
        assert keys == {charge_key(booking.id)}
        assert published_types(published)[-1] == "BookingConfirmed"

    def test_exhausted_retries_cancel_and_release(self, engine, experience, slot, published):
        engine.provider.queue(ProviderStatus.DECLINED, ProviderStatus.DECLINED, ProviderStatus.DECLINED)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        second = engine.service.retry_payment(booking.id, "guest-1")
        assert second.status is BookingStatus.PAYMENT_FAILED
        assert engine.booked(slot) == 2

        third = engine.service.retry_payment(booking.id, "guest-1")

        assert third.status is BookingStatus.CANCELLED
        assert third.cancellation_source is CancellationSource.SYSTEM
        assert third.payment_attempts == 3
        assert engine.booked(slot) == 0
        assert published_types(published)[-2:] == ["BookingCancelled", "SlotCapacityReleased"]

        with pytest.raises(NotRetryableError):
            engine.service.retry_payment(booking.id, "guest-1")

    def test_attempt_limit_comes_from_policy(self, clock):
        engine = build_engine(clock, ReservationPolicy(max_payment_attempts=2))
        experience = engine.add_experience()
        slot = engine.add_slot(experience)
        engine.provider.queue(ProviderStatus.DECLINED, ProviderStatus.DECLINED)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        assert engine.service.retry_payment(booking.id, "guest-1").status is BookingStatus.CANCELLED

    def test_confirmed_booking_is_not_retryable(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        with pytest.raises(NotRetryableError):
            engine.service.retry_payment(booking.id, "guest-1")

        assert len(engine.provider.calls) == 1

    def test_stranger_cannot_retry(self, engine, experience, slot):
        engine.provider.queue(ProviderStatus.DECLINED)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        with pytest.raises(NotAuthorizedError):
            engine.service.retry_payment(booking.id, "guest-2")

        assert engine.bookings.get(booking.id).payment_attempts == 1

    def test_fatal_retry_raises_and_leaves_booking_payment_failed(self, engine, experience, slot):
        engine.provider.queue(ProviderStatus.DECLINED, ProviderStatus.AMOUNT_MISMATCH)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        with pytest.raises(AmountMismatchError):
            engine.service.retry_payment(booking.id, "guest-1")

        stored = engine.bookings.get(booking.id)
        assert stored.status is BookingStatus.PAYMENT_FAILED
        assert stored.payment_attempts == 2
        assert engine.booked(slot) == 1

    def test_unknown_booking(self, engine):
        with pytest.raises(BookingNotFoundError):
            engine.service.retry_payment(uuid4(), "guest-1")


class TestCancelBooking:

    def test_confirmed_booking_is_refunded(self, engine, experience, slot, published):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        cancelled = engine.service.cancel_booking(booking.id, "guest-1")

        assert cancelled.status is BookingStatus.CANCELLED
        assert cancelled.cancellation_source is CancellationSource.GUEST
        assert cancelled.cancelled_at == engine.clock.now
        assert engine.booked(slot) == 0
        assert engine.provider.calls[-1][0] == "refund"
        (refund,) = engine.attempts.for_booking(booking.id, AttemptKind.REFUND)
        assert refund.outcome is AttemptOutcome.SUCCEEDED
        assert refund.amount == booking.total_price
        assert "SlotCapacityReleased" in published_types(published)

    def test_unpaid_booking_is_cancelled_without_refund(self, engine, experience, slot):
        engine.provider.queue(ProviderStatus.DECLINED)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        engine.service.cancel_booking(booking.id, "guest-1")

        assert engine.booked(slot) == 0
        assert [op for op, _, _ in engine.provider.calls] == ["charge"]

    def test_cancellation_inside_cutoff_is_rejected(self, engine, experience):
        slot = engine.add_slot(experience, starts_in=timedelta(hours=12))
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        with pytest.raises(CancellationWindowClosedError):
            engine.service.cancel_booking(booking.id, "guest-1")

        assert engine.bookings.get(booking.id).status is BookingStatus.CONFIRMED
        assert engine.booked(slot) == 2

    def test_second_cancel_is_rejected_and_releases_nothing(self, engine, experience, slot):
        other = engine.service.create_booking("guest-2", experience.id, slot.id, 1)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)
        engine.service.cancel_booking(booking.id, "guest-1")

        with pytest.raises(InvalidTransitionError):
            engine.service.cancel_booking(booking.id, "guest-1")

        assert engine.booked(slot) == 1
        assert engine.bookings.get(other.id).status is BookingStatus.CONFIRMED

    def test_host_cannot_cancel_a_cancelled_booking(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.service.cancel_booking(booking.id, "guest-1")

        with pytest.raises(InvalidTransitionError) as exc_info:
            engine.service.cancel_booking(booking.id, experience.host_id)

        assert exc_info.value.current == BookingStatus.CANCELLED.value

    def test_charge_landing_after_cancellation_is_recorded_and_refunded(self, engine, experience, slot, monkeypatch):
        charge = engine.provider.charge

        def charge_while_another_worker_expires(idempotency_key, amount, method_ref=None):
            booking = engine.bookings.get(UUID(idempotency_key.split(":")[1]))
            engine.service.lifecycle.transition(booking, BookingEvent.CANCEL, source=CancellationSource.SYSTEM)
            engine.bookings.save(booking)
            engine.ledger.release(booking.reservation)
            return charge(idempotency_key, amount, method_ref)

        monkeypatch.setattr(engine.provider, "charge", charge_while_another_worker_expires)

        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        assert booking.status is BookingStatus.CANCELLED
        assert booking.provider_ref.startswith("sbx_")
        assert engine.bookings.get(booking.id).provider_ref == booking.provider_ref
        (refund,) = engine.attempts.for_booking(booking.id, AttemptKind.REFUND)
        assert refund.outcome is AttemptOutcome.SUCCEEDED
        assert engine.booked(slot) == 0

    def test_stranger_cannot_cancel(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        with pytest.raises(NotAuthorizedError):
            engine.service.cancel_booking(booking.id, "guest-2")

        assert engine.booked(slot) == 2

    def test_host_cancellation_is_recorded_as_host(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 2)

        cancelled = engine.service.cancel_booking(booking.id, experience.host_id)

        assert cancelled.cancellation_source is CancellationSource.HOST
        assert engine.booked(slot) == 0

    def test_freed_capacity_can_be_booked_again(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 4)
        engine.service.cancel_booking(booking.id, "guest-1")

        again = engine.service.create_booking("guest-2", experience.id, slot.id, 4)

        assert again.status is BookingStatus.CONFIRMED
        assert engine.booked(slot) == 4


class TestCompletionAndReviews:

    def test_booking_cannot_complete_before_the_experience_ends(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        with pytest.raises(InvalidTransitionError):
            engine.service.complete_booking(booking.id)

        assert not engine.service.can_review("guest-1", experience.id)

    def test_completed_booking_allows_review(self, engine, experience, slot, published):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.clock.advance(days=4)

        completed = engine.service.complete_booking(booking.id)

        assert completed.status is BookingStatus.COMPLETED
        assert completed.completed_at == engine.clock.now
        assert engine.booked(slot) == 1
        assert published_types(published)[-1] == "BookingCompleted"
        assert engine.service.can_review("guest-1", experience.id)
        assert not engine.service.can_review("guest-2", experience.id)
        assert not engine.service.can_review("guest-1", engine.add_experience().id)

    def test_completing_twice_is_a_noop(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.clock.advance(days=4)
        first = engine.service.complete_booking(booking.id)
        engine.clock.advance(hours=1)

        second = engine.service.complete_booking(booking.id)

        assert second.status is BookingStatus.COMPLETED
        assert second.completed_at == first.completed_at

    def test_unpaid_booking_cannot_complete(self, engine, experience, slot):
        engine.provider.queue(ProviderStatus.DECLINED)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.clock.advance(days=4)

        with pytest.raises(InvalidTransitionError):
            engine.service.complete_booking(booking.id)

    def test_cancelled_booking_does_not_allow_review(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.service.cancel_booking(booking.id, "guest-1")
        engine.clock.advance(days=4)

        assert not engine.service.can_review("guest-1", experience.id)


class TestQueries:

    def test_owner_host_and_staff_can_view(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        for requester in ("guest-1", experience.host_id, "staff"):
            assert engine.service.get_booking(booking.id, requester).id == booking.id

    def test_stranger_cannot_view(self, engine, experience, slot):
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        with pytest.raises(NotAuthorizedError):
            engine.service.get_booking(booking.id, "guest-2")

    def test_list_filters_by_status(self, engine, experience, slot):
        confirmed = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.provider.queue(ProviderStatus.DECLINED)
        failed = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.service.create_booking("guest-2", experience.id, slot.id, 1)

        assert {b.id for b in engine.service.list_bookings("guest-1")} == {confirmed.id, failed.id}
        assert [b.id for b in engine.service.list_bookings("guest-1", BookingStatus.PAYMENT_FAILED)] == [failed.id]

    def test_host_lists_bookings_of_their_experiences(self, engine, experience, slot):
        first = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.provider.queue(ProviderStatus.DECLINED)
        second = engine.service.create_booking("guest-2", experience.id, slot.id, 1)
        elsewhere = engine.add_experience(host_id="host-2")
        engine.service.create_booking("guest-1", elsewhere.id, engine.add_slot(elsewhere).id, 1)

        listed = engine.service.list_host_bookings(experience.host_id)

        assert {b.id for b in listed} == {first.id, second.id}
        assert [b.id for b in engine.service.list_host_bookings(experience.host_id, BookingStatus.CONFIRMED)] == [first.id]
        assert engine.service.list_host_bookings("guest-1") == []


class TestSweeps:

    def test_stale_unpaid_bookings_are_expired(self, engine, experience, slot):
        engine.provider.queue(ProviderStatus.DECLINED)
        unpaid = engine.service.create_booking("guest-1", experience.id, slot.id, 2)
        paid = engine.service.create_booking("guest-2", experience.id, slot.id, 1)

        assert engine.service.expire_stale_payments() == 0

        engine.clock.advance(minutes=31)
        assert engine.service.expire_stale_payments() == 1

        expired = engine.bookings.get(unpaid.id)
        assert expired.status is BookingStatus.CANCELLED
        assert expired.cancellation_source is CancellationSource.SYSTEM
        assert engine.bookings.get(paid.id).status is BookingStatus.CONFIRMED
        assert engine.booked(slot) == 1

        assert engine.service.expire_stale_payments() == 0

    def test_finished_bookings_are_completed(self, engine, experience, slot):
        later_slot = engine.add_slot(experience, starts_in=timedelta(days=10))
        first = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        second = engine.service.create_booking("guest-2", experience.id, slot.id, 1)
        cancelled = engine.service.create_booking("guest-3", experience.id, slot.id, 1)
        engine.service.cancel_booking(cancelled.id, "guest-3")
        upcoming = engine.service.create_booking("guest-4", experience.id, later_slot.id, 1)

        engine.clock.advance(days=4)

        assert engine.service.complete_finished_bookings() == 2
        assert engine.bookings.get(first.id).status is BookingStatus.COMPLETED
        assert engine.bookings.get(second.id).status is BookingStatus.COMPLETED
        assert engine.bookings.get(cancelled.id).status is BookingStatus.CANCELLED
        assert engine.bookings.get(upcoming.id).status is BookingStatus.CONFIRMED
        assert engine.service.complete_finished_bookings() == 0


class TestAuditTrail:

    def test_every_published_event_has_an_audit_handler(self, engine, experience, slot, published):
        engine.provider.queue(ProviderStatus.DECLINED)
        booking = engine.service.create_booking("guest-1", experience.id, slot.id, 1)
        engine.service.retry_payment(booking.id, "guest-1")
        engine.service.cancel_booking(booking.id, "guest-1")
        handlers = {
            events.BookingCreated: audit.booking_created,
            events.BookingConfirmed: audit.booking_confirmed,
            events.BookingPaymentFailed: audit.booking_payment_failed,
            events.BookingCancelled: audit.booking_cancelled,
            events.BookingCompleted: audit.booking_completed,
            events.SlotCapacityReleased: audit.capacity_released,
        }

        for event in published:
            handlers[type(event)](event)

        assert published_types(published) == [
            "BookingCreated",
            "BookingPaymentFailed",
            "BookingConfirmed",
            "BookingCancelled",
            "SlotCapacityReleased",
        ]

    def test_event_payload_carries_its_type(self, engine, experience, slot, published):
        engine.service.create_booking("guest-1", experience.id, slot.id, 1)

        payload = published[0].to_dict()

        assert payload["event_type"] == "BookingCreated"
        assert payload["aggregate_id"] == str(published[0].booking_id)

    def test_invalid_transition_log_does_not_raise(self):
        audit.invalid_transition(uuid4(), "cancelled", "cancel", "Booking is already cancelled")
