"""Booking persistence models."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class SlotReservation(models.Model):
    """Capacity held on a time slot by one booking.

    A row is the persisted form of a ReservationHandle. ``released_at`` is
    set exactly once; only the ledger writes it.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slot = models.ForeignKey(
        "experiences.TimeSlot",
        on_delete=models.PROTECT,
        related_name="reservations",
    )
    guest_count = models.PositiveIntegerField()
    reserved_at = models.DateTimeField()
    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-reserved_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(guest_count__gte=1),
                name="slot_reservation_positive_guests",
            ),
        ]
        indexes = [
            models.Index(fields=["slot", "released_at"]),
        ]

    def __str__(self) -> str:
        state = "released" if self.released_at else "held"
        return f"{self.guest_count} on {self.slot_id} ({state})"

    @property
    def is_released(self) -> bool:
        return self.released_at is not None


class Booking(models.Model):
    """Reservation of spots on an experience time slot."""

    class Status(models.TextChoices):
        PENDING_PAYMENT = "pending_payment", _("Pending payment")
        PAYMENT_FAILED = "payment_failed", _("Payment failed")
        CONFIRMED = "confirmed", _("Confirmed")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    class CancellationSource(models.TextChoices):
        GUEST = "guest", _("Guest")
        HOST = "host", _("Host")
        SYSTEM = "system", _("System")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_code = models.CharField(max_length=12, unique=True, editable=False)
    user_id = models.CharField(max_length=64, db_index=True, help_text=_("Opaque id of the guest."))
    experience = models.ForeignKey(
        "experiences.Experience",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    slot = models.ForeignKey(
        "experiences.TimeSlot",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    reservation = models.OneToOneField(
        SlotReservation,
        on_delete=models.PROTECT,
        related_name="booking",
    )
    guest_count = models.PositiveIntegerField()
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("Fixed at creation: price per guest times guest count."),
    )
    currency = models.CharField(max_length=3, default="MXN")
    special_requests = models.TextField(blank=True)
    status = models.CharField(
        max_length=32,
        choices=Status.choices,
        default=Status.PENDING_PAYMENT,
    )
    provider_ref = models.CharField(max_length=128, blank=True)
    payment_attempts = models.PositiveSmallIntegerField(default=0)
    payment_failure_reason = models.CharField(max_length=64, blank=True)
    payment_failure_message = models.CharField(
        max_length=255,
        blank=True,
        help_text=_("Decline reason reported by the payment provider."),
    )
    cancellation_source = models.CharField(
        max_length=20,
        choices=CancellationSource.choices,
        blank=True,
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(guest_count__gte=1),
                name="booking_positive_guests",
            ),
        ]
        indexes = [
            models.Index(fields=["user_id", "-created_at"]),
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["booking_code"]),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} for {self.slot_id}"
