"""Serializers for the booking API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .domain import BookingStatus

PAYMENT_MESSAGES = {
    "card_declined": "Your card was declined. Please try again or use another card.",
    "provider_unavailable": "We could not reach the payment provider. Please retry the payment.",
    "amount_mismatch": "We could not process this payment. Our team has been notified.",
}


class BookingCreateSerializer(serializers.Serializer):
    """Input for creating a booking."""

    experience = serializers.UUIDField()
    slot = serializers.UUIDField()
    guest_count = serializers.IntegerField(min_value=1, default=1)
    special_requests = serializers.CharField(required=False, allow_blank=True, max_length=1000, default="")
    payment_method = serializers.CharField(required=False, allow_blank=True, max_length=128)


class RetryPaymentSerializer(serializers.Serializer):
    payment_method = serializers.CharField(required=False, allow_blank=True, max_length=128)


class BookingSerializer(serializers.Serializer):
    """Read-only view of a Booking aggregate."""

    id = serializers.UUIDField()
    booking_code = serializers.CharField()
    user_id = serializers.CharField()
    experience_id = serializers.UUIDField()
    slot_id = serializers.UUIDField()
    guest_count = serializers.IntegerField()
    total_price = serializers.SerializerMethodField()
    special_requests = serializers.CharField()
    status = serializers.SerializerMethodField()
    payment_attempts = serializers.IntegerField()
    payment_failure_reason = serializers.CharField()
    payment_message = serializers.SerializerMethodField()
    cancellation_source = serializers.SerializerMethodField()
    created_at = serializers.DateTimeField()
    confirmed_at = serializers.DateTimeField(allow_null=True)
    cancelled_at = serializers.DateTimeField(allow_null=True)
    completed_at = serializers.DateTimeField(allow_null=True)

    def get_total_price(self, booking) -> dict:
        return {"amount": str(booking.total_price.amount), "currency": booking.total_price.currency}

    def get_status(self, booking) -> str:
        return booking.status.value

    def get_payment_message(self, booking) -> str:
        if booking.status is not BookingStatus.PAYMENT_FAILED:
            return ""
        if booking.payment_failure_message:
            return booking.payment_failure_message
        return PAYMENT_MESSAGES.get(
            booking.payment_failure_reason,
            "Your payment did not go through. Please retry the payment.",
        )

    def get_cancellation_source(self, booking) -> str | None:
        return booking.cancellation_source.value if booking.cancellation_source else None
