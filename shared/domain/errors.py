"""Domain error base shared by all bounded contexts."""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    SLOT_FULL = "SLOT_FULL"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    SLOT_NOT_FOUND = "SLOT_NOT_FOUND"
    SLOT_MISMATCH = "SLOT_MISMATCH"
    EXPERIENCE_NOT_FOUND = "EXPERIENCE_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    INVALID_GUEST_COUNT = "INVALID_GUEST_COUNT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CANCELLATION_WINDOW_CLOSED = "CANCELLATION_WINDOW_CLOSED"
    NOT_RETRYABLE = "NOT_RETRYABLE"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    REVIEW_NOT_ALLOWED = "REVIEW_NOT_ALLOWED"
    ALREADY_REVIEWED = "ALREADY_REVIEWED"
    INVALID_RATING = "INVALID_RATING"
    INVALID_COMMENT = "INVALID_COMMENT"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
