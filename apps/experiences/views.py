"""Read-only API for the experience catalog."""

from __future__ import annotations

from datetime import datetime, time

from django.utils import timezone  # type: ignore
from django.utils.dateparse import parse_date  # type: ignore
from rest_framework import permissions, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import ValidationError  # type: ignore
from rest_framework.response import Response  # type: ignore

from .models import Experience
from .serializers import ExperienceSerializer, TimeSlotSerializer


def _day_bound(raw: str, param: str, end_of_day: bool = False) -> datetime:
    day = parse_date(raw)
    if day is None:
        raise ValidationError({param: "Expected a date in YYYY-MM-DD format."})
    return timezone.make_aware(datetime.combine(day, time.max if end_of_day else time.min))


class ExperienceViewSet(viewsets.ReadOnlyModelViewSet):
    """Active experiences and their bookable slots."""

    queryset = Experience.objects.filter(is_active=True)
    serializer_class = ExperienceSerializer
    permission_classes = [permissions.AllowAny]
    filterset_fields = ["category", "host_id"]

    @action(detail=True, methods=["get"])
    def slots(self, request, pk=None):  # type: ignore
        """Upcoming slots, optionally bounded by ?start= and ?end= dates."""
        experience = self.get_object()
        qs = experience.time_slots.all()

        start = request.query_params.get("start")
        end = request.query_params.get("end")
        if start:
            qs = qs.filter(starts_at__gte=_day_bound(start, "start"))
            if not end:
                end = start
        else:
            qs = qs.filter(starts_at__gte=timezone.now())
        if end:
            qs = qs.filter(starts_at__lte=_day_bound(end, "end", end_of_day=True))

        if request.query_params.get("include_full") not in ("1", "true"):
            qs = [slot for slot in qs if slot.is_available]

        return Response(TimeSlotSerializer(qs, many=True).data)
