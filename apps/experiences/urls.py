"""URL routing for the experience catalog."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import ExperienceViewSet

router = DefaultRouter()
router.register(r"", ExperienceViewSet, basename="experience")

urlpatterns = [
    path("", include(router.urls)),
]
