"""Payment attempt stores (in-memory and Django ORM)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID
import threading

from shared.domain.value_objects import Money
from apps.payments.domain import AttemptKind, AttemptOutcome, FailureReason, PaymentAttempt


class PaymentAttemptStore(ABC):
    """Append-only log of provider calls."""

    @abstractmethod
    def record(self, attempt: PaymentAttempt) -> None:
        ...

    @abstractmethod
    def for_booking(self, booking_id: UUID, kind: AttemptKind | None = None) -> list[PaymentAttempt]:
        """Attempts for a booking, oldest first."""
        ...


class InMemoryPaymentAttemptStore(PaymentAttemptStore):

    def __init__(self):
        self._attempts: list[PaymentAttempt] = []
        self._guard = threading.Lock()

    def record(self, attempt: PaymentAttempt) -> None:
        with self._guard:
            self._attempts.append(attempt)

    def for_booking(self, booking_id: UUID, kind: AttemptKind | None = None) -> list[PaymentAttempt]:
        with self._guard:
            return [
                a for a in self._attempts
                if a.booking_id == booking_id and (kind is None or a.kind is kind)
            ]


class DjangoPaymentAttemptStore(PaymentAttemptStore):

    def record(self, attempt: PaymentAttempt) -> None:
        from apps.payments.models import PaymentAttempt as PaymentAttemptRow

        PaymentAttemptRow.objects.create(
            id=attempt.id,
            booking_id=attempt.booking_id,
            kind=attempt.kind.value,
            idempotency_key=attempt.idempotency_key,
            amount=attempt.amount.amount,
            currency=attempt.amount.currency,
            outcome=attempt.outcome.value,
            failure_reason=attempt.failure_reason.value if attempt.failure_reason else "",
            provider_ref=attempt.provider_ref or "",
            message=attempt.message[:255],
            created_at=attempt.created_at,
        )

    def for_booking(self, booking_id: UUID, kind: AttemptKind | None = None) -> list[PaymentAttempt]:
        from apps.payments.models import PaymentAttempt as PaymentAttemptRow

        queryset = PaymentAttemptRow.objects.filter(booking_id=booking_id)
        if kind is not None:
            queryset = queryset.filter(kind=kind.value)
        return [
            PaymentAttempt(
                id=row.id,
                booking_id=row.booking_id,
                kind=AttemptKind(row.kind),
                idempotency_key=row.idempotency_key,
                amount=Money(row.amount, row.currency),
                outcome=AttemptOutcome(row.outcome),
                failure_reason=FailureReason(row.failure_reason) if row.failure_reason else None,
                provider_ref=row.provider_ref or None,
                message=row.message,
                created_at=row.created_at,
            )
            for row in queryset.order_by("created_at")
        ]
