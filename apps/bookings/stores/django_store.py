"""Django ORM store implementations."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable
from uuid import UUID
import logging

from django.db import transaction  # type: ignore
from django.db.models import F  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore

from shared.domain.base import utcnow
from shared.domain.value_objects import Money
from apps.bookings import models
from apps.bookings.domain import (
    Booking,
    BookingStatus,
    CancellationSource,
    ReservationHandle,
    SlotCapacity,
    SlotLedger,
)
from apps.bookings.domain.errors import CapacityExceededError, SlotNotFoundError
from apps.bookings.stores.interfaces import BookingStore, ExperienceCatalog
from apps.experiences import domain as catalog_domain
from apps.experiences.models import Experience, TimeSlot

logger = logging.getLogger(__name__)


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


class DjangoExperienceCatalog(ExperienceCatalog):

    def get_experience(self, experience_id: UUID) -> catalog_domain.Experience | None:
        row = Experience.objects.filter(pk=experience_id).first()
        return row.to_domain() if row else None

    def get_slot(self, slot_id: UUID) -> catalog_domain.TimeSlot | None:
        row = TimeSlot.objects.filter(pk=slot_id).first()
        return row.to_domain() if row else None

    def experience_ids_for_host(self, host_id: str) -> set[UUID]:
        return set(Experience.objects.filter(host_id=str(host_id)).values_list("pk", flat=True))


class DjangoSlotLedger(SlotLedger):
    """
    Slot ledger backed by a single conditional UPDATE

    The capacity check and the increment happen in one statement, so two
    concurrent reservations can never both see the last free spot. The
    CHECK constraint on the slot table backs this up.
    """

    def reserve(self, slot_id: UUID, guest_count: int) -> ReservationHandle:
        self.validate_guest_count(guest_count)

        with transaction.atomic():
            updated = TimeSlot.objects.filter(
                pk=slot_id,
                booked_count__lte=F("capacity") - guest_count,
            ).update(booked_count=F("booked_count") + guest_count)

            if not updated:
                counters = TimeSlot.objects.filter(pk=slot_id).values("capacity", "booked_count").first()
                if counters is None:
                    raise SlotNotFoundError(slot_id)
                raise CapacityExceededError(
                    slot_id, guest_count, counters["capacity"] - counters["booked_count"]
                )

            row = models.SlotReservation.objects.create(
                slot_id=slot_id,
                guest_count=guest_count,
                reserved_at=utcnow(),
            )

        logger.debug(f"Reserved {guest_count} spot(s) on slot {slot_id} (handle {row.id})")
        return ReservationHandle(
            slot_id=slot_id,
            guest_count=guest_count,
            id=row.id,
            reserved_at=row.reserved_at,
        )

    def release(self, handle: ReservationHandle) -> bool:
        with transaction.atomic():
            released = models.SlotReservation.objects.filter(
                pk=handle.id,
                released_at__isnull=True,
            ).update(released_at=utcnow())

            if not released:
                logger.debug(f"Handle {handle.id} already released")
                return False

            TimeSlot.objects.filter(pk=handle.slot_id).update(
                booked_count=F("booked_count") - handle.guest_count
            )

        logger.debug(f"Released {handle.guest_count} spot(s) on slot {handle.slot_id} (handle {handle.id})")
        return True

    def snapshot(self, slot_id: UUID) -> SlotCapacity:
        counters = TimeSlot.objects.filter(pk=slot_id).values("capacity", "booked_count").first()
        if counters is None:
            raise SlotNotFoundError(slot_id)
        return SlotCapacity(slot_id=slot_id, **counters)


class DjangoBookingStore(BookingStore):
    """Maps Booking aggregates to ``bookings.Booking`` rows."""

    _MUTABLE_FIELDS = (
        "status",
        "provider_ref",
        "payment_attempts",
        "payment_failure_reason",
        "payment_failure_message",
        "cancellation_source",
        "confirmed_at",
        "cancelled_at",
        "completed_at",
        "updated_at",
    )

    def _queryset(self):
        return models.Booking.objects.select_related("reservation")

    @staticmethod
    def _to_domain(row: models.Booking) -> Booking:
        reservation = row.reservation
        return Booking(
            id=row.id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            booking_code=row.booking_code,
            user_id=row.user_id,
            experience_id=row.experience_id,
            slot_id=row.slot_id,
            reservation=ReservationHandle(
                slot_id=reservation.slot_id,
                guest_count=reservation.guest_count,
                id=reservation.id,
                reserved_at=reservation.reserved_at,
            ),
            guest_count=row.guest_count,
            total_price=Money(row.total_price, row.currency),
            special_requests=row.special_requests,
            status=BookingStatus(row.status),
            provider_ref=row.provider_ref or None,
            payment_attempts=row.payment_attempts,
            payment_failure_reason=row.payment_failure_reason,
            payment_failure_message=row.payment_failure_message,
            cancellation_source=(
                CancellationSource(row.cancellation_source) if row.cancellation_source else None
            ),
            confirmed_at=row.confirmed_at,
            cancelled_at=row.cancelled_at,
            completed_at=row.completed_at,
        )

    @staticmethod
    def _row_values(booking: Booking) -> dict:
        return {
            "status": booking.status.value,
            "provider_ref": booking.provider_ref or "",
            "payment_attempts": booking.payment_attempts,
            "payment_failure_reason": booking.payment_failure_reason,
            "payment_failure_message": booking.payment_failure_message[:255],
            "cancellation_source": booking.cancellation_source.value if booking.cancellation_source else "",
            "confirmed_at": booking.confirmed_at,
            "cancelled_at": booking.cancelled_at,
            "completed_at": booking.completed_at,
            "updated_at": booking.updated_at,
        }

    def add(self, booking: Booking) -> None:
        models.Booking.objects.create(
            id=booking.id,
            booking_code=booking.booking_code,
            user_id=booking.user_id,
            experience_id=booking.experience_id,
            slot_id=booking.slot_id,
            reservation_id=booking.reservation.id,
            guest_count=booking.guest_count,
            total_price=booking.total_price.amount,
            currency=booking.total_price.currency,
            special_requests=booking.special_requests,
            created_at=booking.created_at,
            **self._row_values(booking),
        )

    def save(self, booking: Booking) -> None:
        values = self._row_values(booking)
        updated = models.Booking.objects.filter(pk=booking.id).update(
            **{name: values[name] for name in self._MUTABLE_FIELDS}
        )
        if not updated:
            raise ValueError(f"Booking {booking.id} does not exist")

    def get(self, booking_id: UUID) -> Booking | None:
        row = self._queryset().filter(pk=booking_id).first()
        return self._to_domain(row) if row else None

    def get_for_update(self, booking_id: UUID) -> Booking | None:
        queryset = _lock_queryset_if_possible(models.Booking.objects.filter(pk=booking_id))
        row = queryset.first()
        return self._to_domain(row) if row else None

    def list_for_user(self, user_id: str, status: BookingStatus | None = None) -> list[Booking]:
        queryset = self._queryset().filter(user_id=str(user_id))
        if status is not None:
            queryset = queryset.filter(status=status.value)
        return [self._to_domain(row) for row in queryset.order_by("-created_at")]

    def list_for_host(self, host_id: str, status: BookingStatus | None = None) -> list[Booking]:
        queryset = self._queryset().filter(experience__host_id=str(host_id))
        if status is not None:
            queryset = queryset.filter(status=status.value)
        return [self._to_domain(row) for row in queryset.order_by("-created_at")]

    def has_completed(self, user_id: str, experience_id: UUID) -> bool:
        return models.Booking.objects.filter(
            user_id=str(user_id),
            experience_id=experience_id,
            completed_at__isnull=False,
        ).exists()

    def ids_pending_completion(self, now: datetime) -> Iterable[UUID]:
        return list(
            models.Booking.objects.filter(
                status=BookingStatus.CONFIRMED.value,
                slot__ends_at__lte=now,
            ).values_list("id", flat=True)
        )

    def ids_awaiting_payment(self, created_before: datetime) -> Iterable[UUID]:
        return list(
            models.Booking.objects.filter(
                status__in=[BookingStatus.PENDING_PAYMENT.value, BookingStatus.PAYMENT_FAILED.value],
                created_at__lt=created_before,
            ).values_list("id", flat=True)
        )
