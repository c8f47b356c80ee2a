"""Models for the review domain.

Defines the ``Review`` entity representing feedback and ratings
submitted by guests for experiences they have completed. Each review
includes a numerical rating, an optional comment and timestamps.
One user can leave at most one review per experience.
"""

from __future__ import annotations

from django.core.validators import MaxLengthValidator, MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore


class Review(models.Model):
    """Represents a review left by a guest for an experience."""

    user_id = models.CharField(max_length=64, db_index=True)
    experience = models.ForeignKey(
        'experiences.Experience', on_delete=models.CASCADE, related_name='reviews'
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)],
        help_text='Rating from 1 to 5'
    )
    comment = models.TextField(blank=True, validators=[MaxLengthValidator(1000)])
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user_id', 'experience'],
                name='review_one_per_user_and_experience',
            ),
        ]
        indexes = [
            models.Index(fields=['experience', '-created_at']),
            models.Index(fields=['rating']),
        ]

    def __str__(self) -> str:
        return f"Review by {self.user_id} for experience {self.experience_id} (Rating: {self.rating})"
