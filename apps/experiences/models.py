"""Experience catalog models."""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import Money, TimeWindow

from . import domain


class Experience(models.Model):
    """A guided experience offered by a host."""

    class Category(models.TextChoices):
        TOUR = "tour", _("Tour")
        WORKSHOP = "workshop", _("Workshop")
        TASTING = "tasting", _("Tasting")
        CLASS = "class", _("Class")
        VISIT = "visit", _("Visit")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    host_id = models.CharField(max_length=64, db_index=True, help_text=_("Opaque id of the host user."))
    title = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.TOUR)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text=_("Price per guest."),
    )
    currency = models.CharField(max_length=3, default="MXN")
    duration_minutes = models.PositiveIntegerField()
    max_capacity = models.PositiveIntegerField(help_text=_("Default capacity for new slots."))
    location = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=Decimal("0.00"))
    review_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_active", "-created_at"]),
        ]

    def __str__(self) -> str:
        return self.title

    def to_domain(self) -> domain.Experience:
        return domain.Experience(
            id=self.id,
            host_id=self.host_id,
            title=self.title,
            price=Money(self.price, self.currency),
            duration_minutes=self.duration_minutes,
            max_capacity=self.max_capacity,
            is_active=self.is_active,
        )


class TimeSlot(models.Model):
    """Fixed-capacity window of an experience.

    ``booked_count`` is written exclusively by the bookings slot ledger.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    experience = models.ForeignKey(Experience, on_delete=models.PROTECT, related_name="time_slots")
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    capacity = models.PositiveIntegerField()
    booked_count = models.PositiveIntegerField(default=0, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["starts_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(booked_count__lte=models.F("capacity")),
                name="time_slot_booked_within_capacity",
            ),
            models.CheckConstraint(
                condition=models.Q(ends_at__gt=models.F("starts_at")),
                name="time_slot_valid_window",
            ),
        ]
        indexes = [
            models.Index(fields=["experience", "starts_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.experience_id} @ {self.starts_at:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding:
            if not self.capacity:
                self.capacity = self.experience.max_capacity
        elif kwargs.get("update_fields") is None:
            # never overwrite the ledger's counter with a stale copy
            kwargs["update_fields"] = [
                f.name for f in self._meta.concrete_fields
                if not f.primary_key and f.name != "booked_count"
            ]
        super().save(*args, **kwargs)

    @property
    def available_spots(self) -> int:
        return max(self.capacity - self.booked_count, 0)

    @property
    def is_available(self) -> bool:
        return self.available_spots > 0

    def to_domain(self) -> domain.TimeSlot:
        return domain.TimeSlot(
            id=self.id,
            experience_id=self.experience_id,
            window=TimeWindow(self.starts_at, self.ends_at),
            capacity=self.capacity,
            booked_count=self.booked_count,
        )
