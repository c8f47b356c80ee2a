"""Review service rules against in-memory collaborators."""

from decimal import Decimal
from uuid import uuid4

import pytest

from shared.domain.errors import ErrorCode
from apps.reviews.errors import (
    AlreadyReviewedError,
    InvalidCommentError,
    InvalidRatingError,
    ReviewNotAllowedError,
)
from apps.reviews.services import InMemoryReviewStore, ReviewService, average_rating


@pytest.fixture
def completed():
    return set()


@pytest.fixture
def store():
    return InMemoryReviewStore()


@pytest.fixture
def reviews(completed, store):
    return ReviewService(lambda user_id, experience_id: (user_id, experience_id) in completed, store)


def test_guest_with_completed_booking_can_review(reviews, completed, store):
    experience_id = uuid4()
    completed.add(("guest-1", experience_id))

    review = reviews.create_review("guest-1", experience_id, 4, "  Lovely host  ")

    assert review.rating == 4
    assert review.comment == "Lovely host"
    assert store.summaries[experience_id].average == Decimal("4.00")
    assert store.summaries[experience_id].count == 1


def test_review_without_completed_booking_is_refused(reviews):
    with pytest.raises(ReviewNotAllowedError):
        reviews.create_review("guest-1", uuid4(), 5)


def test_second_review_is_refused(reviews, completed):
    experience_id = uuid4()
    completed.add(("guest-1", experience_id))
    reviews.create_review("guest-1", experience_id, 5)

    with pytest.raises(AlreadyReviewedError):
        reviews.create_review("guest-1", experience_id, 1)


@pytest.mark.parametrize("rating", [0, 6, -1, True, 4.5, "5"])
def test_rating_must_be_an_integer_from_one_to_five(reviews, completed, rating):
    experience_id = uuid4()
    completed.add(("guest-1", experience_id))

    with pytest.raises(InvalidRatingError):
        reviews.create_review("guest-1", experience_id, rating)


def test_comment_length_is_limited(reviews, completed, store):
    experience_id = uuid4()
    completed.add(("guest-1", experience_id))

    with pytest.raises(InvalidCommentError) as exc:
        reviews.create_review("guest-1", experience_id, 3, "x" * 1001)

    assert exc.value.code is ErrorCode.INVALID_COMMENT
    assert not store.exists("guest-1", experience_id)


def test_rating_summary_averages_all_reviews(reviews, completed, store):
    experience_id = uuid4()
    for user, rating in (("a", 5), ("b", 4), ("c", 4)):
        completed.add((user, experience_id))
        reviews.create_review(user, experience_id, rating)

    summary = store.summaries[experience_id]
    assert summary.count == 3
    assert summary.average == Decimal("4.33")


def test_average_of_nothing_is_zero():
    assert average_rating([]) == Decimal("0.00")
