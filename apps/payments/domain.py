"""
Payment Domain

Charge outcomes and the attempt record kept for every call to the
payment provider. Failures are values, not exceptions: the reservation
service decides what a failed charge means for the booking.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union
from uuid import UUID, uuid4

from shared.domain.base import utcnow
from shared.domain.value_objects import Money


class FailureReason(Enum):
    CARD_DECLINED = 'card_declined'                # Retryable
    PROVIDER_UNAVAILABLE = 'provider_unavailable'  # Retryable (timeouts, 5xx)
    AMOUNT_MISMATCH = 'amount_mismatch'            # Fatal
    NO_CAPTURED_CHARGE = 'no_captured_charge'      # Fatal (refunds only)

    @property
    def is_retryable(self) -> bool:
        return self not in (FailureReason.AMOUNT_MISMATCH, FailureReason.NO_CAPTURED_CHARGE)


class AttemptKind(Enum):
    CHARGE = 'charge'
    REFUND = 'refund'


class AttemptOutcome(Enum):
    SUCCEEDED = 'succeeded'
    RETRYABLE = 'retryable'
    FATAL = 'fatal'


@dataclass(frozen=True)
class Succeeded:
    provider_ref: str

    outcome = AttemptOutcome.SUCCEEDED
    reason = None
    message = ''


@dataclass(frozen=True)
class Retryable:
    reason: FailureReason
    message: str = ''

    outcome = AttemptOutcome.RETRYABLE
    provider_ref = None


@dataclass(frozen=True)
class Fatal:
    reason: FailureReason
    message: str = ''

    outcome = AttemptOutcome.FATAL
    provider_ref = None


ChargeResult = Union[Succeeded, Retryable, Fatal]


def charge_key(booking_id: UUID) -> str:
    """Idempotency key shared by every charge attempt of a booking"""
    return f"booking:{booking_id}:charge"


def refund_key(booking_id: UUID) -> str:
    return f"booking:{booking_id}:refund"


@dataclass(frozen=True)
class PaymentAttempt:
    """One call to the payment provider and what came of it"""
    booking_id: UUID
    kind: AttemptKind
    idempotency_key: str
    amount: Money
    outcome: AttemptOutcome
    failure_reason: FailureReason | None = None
    provider_ref: str | None = None
    message: str = ''
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def from_result(cls, booking_id: UUID, kind: AttemptKind, key: str, amount: Money,
                    result: ChargeResult) -> 'PaymentAttempt':
        return cls(
            booking_id=booking_id,
            kind=kind,
            idempotency_key=key,
            amount=amount,
            outcome=result.outcome,
            failure_reason=result.reason,
            provider_ref=result.provider_ref,
            message=result.message,
        )
