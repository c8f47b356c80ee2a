"""Serializers for reviews.

The write serializer validates the payload shape; eligibility and
rating rules are enforced by the review service. The creating user is
inferred from the request in the view.
"""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Review
from .services import MAX_COMMENT_LENGTH


class ReviewCreateSerializer(serializers.Serializer):
    """Serializer for creating a new review."""

    experience = serializers.UUIDField()
    rating = serializers.IntegerField()
    comment = serializers.CharField(required=False, allow_blank=True, max_length=MAX_COMMENT_LENGTH, default='')


class ReviewSerializer(serializers.ModelSerializer):
    """Read serializer for reviews."""

    experience_id = serializers.ReadOnlyField(source='experience.id')
    experience_title = serializers.ReadOnlyField(source='experience.title')

    class Meta:
        model = Review
        fields = [
            'id',
            'user_id',
            'experience_id',
            'experience_title',
            'rating',
            'comment',
            'created_at',
        ]
