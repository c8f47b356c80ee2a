"""API views for the booking domain."""

from __future__ import annotations

import uuid

from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import ValidationError  # type: ignore
from rest_framework.response import Response  # type: ignore

from .application.bootstrap import get_reservation_service
from .domain import BookingStatus
from .domain.errors import BookingNotFoundError
from .serializers import BookingCreateSerializer, BookingSerializer, RetryPaymentSerializer


def _booking_id(pk) -> uuid.UUID:
    try:
        return uuid.UUID(str(pk))
    except ValueError:
        raise BookingNotFoundError(pk)


class BookingViewSet(viewsets.ViewSet):
    """Create, inspect, cancel and pay for bookings.

    Domain errors propagate to the project exception handler, which turns
    them into ``{"code", "detail"}`` responses.
    """

    permission_classes = [permissions.IsAuthenticated]

    @property
    def service(self):
        return get_reservation_service()

    def _user_id(self) -> str:
        return str(self.request.user.pk)

    def _status_filter(self) -> BookingStatus | None:
        status_filter = self.request.query_params.get("status")
        if not status_filter:
            return None
        try:
            return BookingStatus(status_filter)
        except ValueError:
            raise ValidationError({"status": [f"Unknown status '{status_filter}'."]})

    def list(self, request):  # type: ignore
        bookings = self.service.list_bookings(self._user_id(), self._status_filter())
        return Response(BookingSerializer(bookings, many=True).data)

    @action(detail=False, methods=["get"])
    def host(self, request):  # type: ignore
        """Bookings guests made for the experiences the current user hosts."""
        bookings = self.service.list_host_bookings(self._user_id(), self._status_filter())
        return Response(BookingSerializer(bookings, many=True).data)

    def create(self, request):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = self.service.create_booking(
            user_id=self._user_id(),
            experience_id=data["experience"],
            slot_id=data["slot"],
            guest_count=data["guest_count"],
            special_requests=data.get("special_requests", ""),
            method_ref=data.get("payment_method") or None,
        )
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):  # type: ignore
        booking = self.service.get_booking(_booking_id(pk), self._user_id())
        return Response(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking = self.service.cancel_booking(_booking_id(pk), self._user_id())
        return Response(BookingSerializer(booking).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="retry-payment")
    def retry_payment(self, request, pk=None):  # type: ignore
        serializer = RetryPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = self.service.retry_payment(
            _booking_id(pk),
            self._user_id(),
            method_ref=serializer.validated_data.get("payment_method") or None,
        )
        return Response(BookingSerializer(booking).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"], url_path="can-review")
    def can_review(self, request):  # type: ignore
        experience = request.query_params.get("experience", "")
        try:
            experience_id = uuid.UUID(experience)
        except ValueError:
            raise ValidationError({"experience": ["A valid experience id is required."]})

        allowed = self.service.can_review(self._user_id(), experience_id)
        return Response({"experience": str(experience_id), "can_review": allowed})
