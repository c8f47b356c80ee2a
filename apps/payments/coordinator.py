"""
Payment Coordinator

Charges and refunds bookings through a PaymentProvider. Every charge
attempt of a booking carries the same idempotency key, derived from the
booking id alone, so a retry after a timeout can never charge twice.

Failures come back as ChargeResult values (Retryable, Fatal); nothing
the provider does escapes as an exception.
"""

from uuid import UUID
import logging

from shared.domain.value_objects import Money
from apps.bookings.domain import Booking, BookingStatus
from apps.bookings.domain.errors import NotRetryableError
from apps.payments.domain import (
    AttemptKind,
    ChargeResult,
    Fatal,
    FailureReason,
    PaymentAttempt,
    Retryable,
    Succeeded,
    charge_key,
    refund_key,
)
from apps.payments.providers import PaymentProvider, PaymentProviderError, ProviderResponse, ProviderStatus
from apps.payments.stores import PaymentAttemptStore

logger = logging.getLogger(__name__)


class PaymentCoordinator:
    """
    Idempotent charge/retry/refund against one provider

    Args:
        provider: outbound payment provider
        attempts: where every attempt is recorded
    """

    def __init__(self, provider: PaymentProvider, attempts: PaymentAttemptStore):
        self.provider = provider
        self.attempts = attempts

    def charge(self, booking_id: UUID, amount: Money, method_ref: str | None = None) -> ChargeResult:
        """
        Charge amount for a booking

        A charge whose amount differs from an earlier attempt for the same
        booking is Fatal(AMOUNT_MISMATCH) and never reaches the provider.
        """
        key = charge_key(booking_id)

        previous = self.attempts.for_booking(booking_id, AttemptKind.CHARGE)
        if any(attempt.amount != amount for attempt in previous):
            result = Fatal(
                FailureReason.AMOUNT_MISMATCH,
                f"Charge amount {amount} differs from earlier attempts for this booking",
            )
            logger.critical(f"Amount mismatch for booking {booking_id}: {amount} (key {key})")
            self._record(booking_id, AttemptKind.CHARGE, key, amount, result)
            return result

        try:
            response = self.provider.charge(key, amount, method_ref)
        except PaymentProviderError as e:
            result = Retryable(FailureReason.PROVIDER_UNAVAILABLE, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error from payment provider charging booking {booking_id}")
            result = Retryable(FailureReason.PROVIDER_UNAVAILABLE, f"Unexpected provider error: {e}")
        else:
            result = self._to_result(response, key)

        if isinstance(result, Fatal):
            logger.critical(f"Provider reported amount mismatch for booking {booking_id} (key {key})")
        elif isinstance(result, Retryable):
            logger.warning(f"Charge for booking {booking_id} failed: {result.reason.value} {result.message}")
        else:
            logger.info(f"Charge for booking {booking_id} succeeded ({result.provider_ref})")

        self._record(booking_id, AttemptKind.CHARGE, key, amount, result)
        return result

    def retry_charge(self, booking: Booking, method_ref: str | None = None) -> ChargeResult:
        """
        Charge again for a booking whose payment failed

        Raises:
            NotRetryableError: booking is not PAYMENT_FAILED
        """
        if booking.status is not BookingStatus.PAYMENT_FAILED:
            raise NotRetryableError(booking.id, booking.status.value)
        return self.charge(booking.id, booking.total_price, method_ref)

    def refund(self, booking: Booking) -> ChargeResult:
        """Refund the captured charge of a booking"""
        key = refund_key(booking.id)
        if not booking.provider_ref:
            result = Fatal(FailureReason.NO_CAPTURED_CHARGE, "Booking has no captured charge to refund")
            logger.error(f"Refund requested for booking {booking.id} without a captured charge")
            self._record(booking.id, AttemptKind.REFUND, key, booking.total_price, result)
            return result

        try:
            response = self.provider.refund(key, booking.provider_ref, booking.total_price)
        except PaymentProviderError as e:
            result = Retryable(FailureReason.PROVIDER_UNAVAILABLE, str(e))
            logger.error(f"Refund for booking {booking.id} failed: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error from payment provider refunding booking {booking.id}")
            result = Retryable(FailureReason.PROVIDER_UNAVAILABLE, f"Unexpected provider error: {e}")
        else:
            result = self._to_result(response, key)
            logger.info(f"Refund for booking {booking.id}: {result.outcome.value}")

        self._record(booking.id, AttemptKind.REFUND, key, booking.total_price, result)
        return result

    @staticmethod
    def _to_result(response: ProviderResponse, key: str) -> ChargeResult:
        if response.status is ProviderStatus.APPROVED:
            if not response.provider_ref:
                # the provider also knows the charge by the reference we sent
                logger.warning(f"Provider approved {key} without a reference")
            return Succeeded(response.provider_ref or key)
        if response.status is ProviderStatus.AMOUNT_MISMATCH:
            return Fatal(FailureReason.AMOUNT_MISMATCH, response.message)
        return Retryable(FailureReason.CARD_DECLINED, response.message)

    def _record(self, booking_id: UUID, kind: AttemptKind, key: str, amount: Money, result: ChargeResult):
        self.attempts.record(PaymentAttempt.from_result(booking_id, kind, key, amount, result))
