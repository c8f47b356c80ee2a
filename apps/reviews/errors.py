"""Review errors."""

from uuid import UUID

from shared.domain.errors import DomainError, ErrorCode


class ReviewNotAllowedError(DomainError):
    def __init__(self, user_id: str, experience_id: UUID) -> None:
        super().__init__(
            code=ErrorCode.REVIEW_NOT_ALLOWED,
            message="You can review an experience only after you have completed it",
        )
        self.user_id = user_id
        self.experience_id = experience_id


class AlreadyReviewedError(DomainError):
    def __init__(self, user_id: str, experience_id: UUID) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_REVIEWED,
            message="You have already reviewed this experience",
        )
        self.user_id = user_id
        self.experience_id = experience_id


class InvalidRatingError(DomainError):
    def __init__(self, rating) -> None:
        super().__init__(code=ErrorCode.INVALID_RATING, message="Rating must be between 1 and 5")
        self.rating = rating


class InvalidCommentError(DomainError):
    def __init__(self, max_length: int) -> None:
        super().__init__(
            code=ErrorCode.INVALID_COMMENT,
            message=f"Comment cannot be longer than {max_length} characters",
        )
        self.max_length = max_length
