"""API views for reviews."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.response import Response  # type: ignore

from .models import Review
from .serializers import ReviewCreateSerializer, ReviewSerializer
from .services import get_review_service


class ReviewViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """Public list of reviews (``?experience=``) and review creation."""

    queryset = Review.objects.select_related('experience').all()
    serializer_class = ReviewSerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]
    filterset_fields = ['experience']

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        review = get_review_service().create_review(
            user_id=str(request.user.pk),
            experience_id=data['experience'],
            rating=data['rating'],
            comment=data.get('comment', ''),
        )
        row = self.get_queryset().get(pk=review.id)
        return Response(ReviewSerializer(row).data, status=status.HTTP_201_CREATED)
