"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, SlotReservation


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Read-only: status changes go through the reservation service."""

    list_display = (
        "booking_code",
        "experience",
        "slot",
        "user_id",
        "guest_count",
        "status",
        "payment_attempts",
        "total_price",
        "created_at",
    )
    list_filter = ("status", "cancellation_source", "created_at")
    search_fields = ("booking_code", "user_id", "experience__title")
    readonly_fields = [f.name for f in Booking._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(SlotReservation)
class SlotReservationAdmin(admin.ModelAdmin):
    list_display = ("id", "slot", "guest_count", "reserved_at", "released_at")
    list_filter = ("released_at",)
    readonly_fields = ("id", "slot", "guest_count", "reserved_at", "released_at")

    def has_add_permission(self, request):
        return False
