"""Booking API routes.

bookings/, bookings/<id>/, bookings/<id>/cancel/,
bookings/<id>/retry-payment/, bookings/host/ and bookings/can-review/.
"""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import BookingViewSet

router = DefaultRouter()
router.register(r"", BookingViewSet, basename="booking")

urlpatterns = [
    path("", include(router.urls)),
]
