"""Serializers for the experience catalog."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Experience, TimeSlot


class TimeSlotSerializer(serializers.ModelSerializer):
    experience_id = serializers.ReadOnlyField(source="experience.id")
    available_spots = serializers.ReadOnlyField()
    is_available = serializers.ReadOnlyField()

    class Meta:
        model = TimeSlot
        fields = [
            "id",
            "experience_id",
            "starts_at",
            "ends_at",
            "capacity",
            "booked_count",
            "available_spots",
            "is_available",
        ]
        read_only_fields = fields


class ExperienceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Experience
        fields = [
            "id",
            "host_id",
            "title",
            "description",
            "category",
            "price",
            "currency",
            "duration_minutes",
            "max_capacity",
            "location",
            "rating",
            "review_count",
            "created_at",
        ]
        read_only_fields = fields
