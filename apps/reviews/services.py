"""
Review Service

Creates reviews for experiences the guest has completed and keeps the
experience's rating and review count in sync.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import Callable, Dict, Tuple
from uuid import UUID
import logging
import threading

from shared.domain.base import utcnow
from apps.reviews.errors import (
    AlreadyReviewedError,
    InvalidCommentError,
    InvalidRatingError,
    ReviewNotAllowedError,
)

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


@dataclass(frozen=True)
class Review:
    user_id: str
    experience_id: UUID
    rating: int
    comment: str = ''
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None


@dataclass(frozen=True)
class RatingSummary:
    average: Decimal
    count: int


def average_rating(ratings) -> Decimal:
    ratings = list(ratings)
    if not ratings:
        return Decimal('0.00')
    return (Decimal(sum(ratings)) / len(ratings)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


class ReviewStore(ABC):

    @abstractmethod
    def exists(self, user_id: str, experience_id: UUID) -> bool:
        ...

    @abstractmethod
    def add(self, review: Review) -> Review:
        """Persist a review; raises AlreadyReviewedError on a duplicate"""
        ...

    @abstractmethod
    def refresh_rating(self, experience_id: UUID) -> RatingSummary:
        """Recompute and store the experience's average rating and count"""
        ...


class InMemoryReviewStore(ReviewStore):

    def __init__(self):
        self._reviews: Dict[Tuple[str, UUID], Review] = {}
        self.summaries: Dict[UUID, RatingSummary] = {}
        self._guard = threading.Lock()

    def exists(self, user_id: str, experience_id: UUID) -> bool:
        return (user_id, experience_id) in self._reviews

    def add(self, review: Review) -> Review:
        key = (review.user_id, review.experience_id)
        with self._guard:
            if key in self._reviews:
                raise AlreadyReviewedError(review.user_id, review.experience_id)
            self._reviews[key] = review
        return review

    def refresh_rating(self, experience_id: UUID) -> RatingSummary:
        with self._guard:
            ratings = [r.rating for (_, exp), r in self._reviews.items() if exp == experience_id]
            summary = RatingSummary(average_rating(ratings), len(ratings))
            self.summaries[experience_id] = summary
        return summary


class DjangoReviewStore(ReviewStore):

    def exists(self, user_id: str, experience_id: UUID) -> bool:
        from apps.reviews.models import Review as ReviewRow

        return ReviewRow.objects.filter(user_id=user_id, experience_id=experience_id).exists()

    def add(self, review: Review) -> Review:
        from django.db import IntegrityError, transaction  # type: ignore
        from apps.reviews.models import Review as ReviewRow

        try:
            with transaction.atomic():
                row = ReviewRow.objects.create(
                    user_id=review.user_id,
                    experience_id=review.experience_id,
                    rating=review.rating,
                    comment=review.comment,
                    created_at=review.created_at,
                )
        except IntegrityError as e:
            raise AlreadyReviewedError(review.user_id, review.experience_id) from e
        return Review(
            id=row.pk,
            user_id=row.user_id,
            experience_id=row.experience_id,
            rating=row.rating,
            comment=row.comment,
            created_at=row.created_at,
        )

    def refresh_rating(self, experience_id: UUID) -> RatingSummary:
        from apps.experiences.models import Experience
        from apps.reviews.models import Review as ReviewRow

        ratings = ReviewRow.objects.filter(experience_id=experience_id).values_list('rating', flat=True)
        summary = RatingSummary(average_rating(ratings), len(ratings))
        Experience.objects.filter(pk=experience_id).update(rating=summary.average, review_count=summary.count)
        return summary


class ReviewService:
    """
    Args:
        can_review: eligibility check, normally ReservationService.can_review
        store: review persistence
    """

    def __init__(self, can_review: Callable[[str, UUID], bool], store: ReviewStore):
        self.can_review = can_review
        self.store = store

    def create_review(self, user_id: str, experience_id: UUID, rating: int, comment: str = '') -> Review:
        """
        Raises:
            InvalidRatingError: rating outside 1..5
            InvalidCommentError: comment longer than MAX_COMMENT_LENGTH
            ReviewNotAllowedError: no completed booking of the experience
            AlreadyReviewedError: the user already reviewed it
        """
        user_id = str(user_id)
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidRatingError(rating)
        comment = (comment or '').strip()
        if len(comment) > MAX_COMMENT_LENGTH:
            raise InvalidCommentError(MAX_COMMENT_LENGTH)

        if not self.can_review(user_id, experience_id):
            raise ReviewNotAllowedError(user_id, experience_id)
        if self.store.exists(user_id, experience_id):
            raise AlreadyReviewedError(user_id, experience_id)

        review = self.store.add(Review(
            user_id=user_id,
            experience_id=experience_id,
            rating=rating,
            comment=comment,
        ))
        summary = self.store.refresh_rating(experience_id)
        logger.info(
            f"User {user_id} reviewed experience {experience_id} ({rating}/5); "
            f"now {summary.average} over {summary.count} review(s)"
        )
        return review


@lru_cache(maxsize=1)
def get_review_service() -> ReviewService:
    from apps.bookings.application.bootstrap import get_reservation_service

    return ReviewService(get_reservation_service().can_review, DjangoReviewStore())
