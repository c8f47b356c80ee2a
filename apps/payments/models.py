"""Payment persistence models."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class PaymentAttempt(models.Model):
    """One charge or refund call made to the payment provider."""

    class Kind(models.TextChoices):
        CHARGE = "charge", _("Charge")
        REFUND = "refund", _("Refund")

    class Outcome(models.TextChoices):
        SUCCEEDED = "succeeded", _("Succeeded")
        RETRYABLE = "retryable", _("Failed, retryable")
        FATAL = "fatal", _("Failed, fatal")

    class FailureReason(models.TextChoices):
        CARD_DECLINED = "card_declined", _("Card declined")
        PROVIDER_UNAVAILABLE = "provider_unavailable", _("Provider unavailable")
        AMOUNT_MISMATCH = "amount_mismatch", _("Amount mismatch")
        NO_CAPTURED_CHARGE = "no_captured_charge", _("No captured charge")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_id = models.UUIDField(db_index=True)
    kind = models.CharField(max_length=10, choices=Kind.choices)
    idempotency_key = models.CharField(max_length=80, db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="MXN")
    outcome = models.CharField(max_length=10, choices=Outcome.choices)
    failure_reason = models.CharField(max_length=32, choices=FailureReason.choices, blank=True)
    provider_ref = models.CharField(max_length=128, blank=True)
    message = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField()

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["booking_id", "kind"]),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.amount} {self.currency} ({self.outcome})"
