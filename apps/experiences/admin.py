"""Admin registration for the experience catalog.

This is the host-management surface: hosts (through staff) create
experiences and slots here. Slot counters are read-only.
"""

from __future__ import annotations

from django.contrib import admin

from .models import Experience, TimeSlot


class TimeSlotInline(admin.TabularInline):
    model = TimeSlot
    extra = 1
    fields = ("starts_at", "ends_at", "capacity", "booked_count")
    readonly_fields = ("booked_count",)


@admin.register(Experience)
class ExperienceAdmin(admin.ModelAdmin):
    list_display = ("title", "host_id", "category", "price", "max_capacity", "is_active", "created_at")
    list_filter = ("category", "is_active")
    search_fields = ("title", "location", "host_id")
    readonly_fields = ("rating", "review_count", "created_at", "updated_at")
    inlines = [TimeSlotInline]


@admin.register(TimeSlot)
class TimeSlotAdmin(admin.ModelAdmin):
    list_display = ("experience", "starts_at", "ends_at", "capacity", "booked_count")
    list_filter = ("experience",)
    readonly_fields = ("booked_count", "created_at")
