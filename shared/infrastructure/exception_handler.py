"""DRF exception handler translating domain errors into HTTP responses."""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler as drf_exception_handler  # type: ignore

from shared.domain.errors import DomainError, ErrorCode

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.SLOT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.EXPERIENCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SLOT_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_RETRYABLE: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_REVIEWED: status.HTTP_409_CONFLICT,
    ErrorCode.SLOT_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_GUEST_COUNT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_RATING: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_COMMENT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CANCELLATION_WINDOW_CLOSED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.AMOUNT_MISMATCH: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.REVIEW_NOT_ALLOWED: status.HTTP_403_FORBIDDEN,
}


def domain_error_response(exc: DomainError) -> Response:
    http_status = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    if http_status >= 500 or exc.code is ErrorCode.AMOUNT_MISMATCH:
        logger.error(f"{exc.code.value}: {exc.message}")
    else:
        logger.info(f"Rejected request with {exc.code.value}: {exc.message}")
    return Response({"code": exc.code.value, "detail": exc.message}, status=http_status)


def exception_handler(exc, context):  # type: ignore
    if isinstance(exc, DomainError):
        return domain_error_response(exc)
    return drf_exception_handler(exc, context)
