from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services import reviews as review_ledger
from .serializers import ReviewSerializer, ReviewCreateSerializer, ReviewTargetSerializer


class RideReviewsView(APIView):
    """
    GET  -> Other participants of the ride, flagged if already reviewed
    POST -> Review one of them

    POST Body:
    {
        "reviewee_id": 7,
        "rating": 5,
        "comment": "On time and friendly"
    }
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, ride_id: int):
        targets = review_ledger.review_targets(ride_id, request.user)
        data = ReviewTargetSerializer(targets, many=True, context={"request": request}).data
        return Response({"participants": data})

    def post(self, request, ride_id: int):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        review = review_ledger.submit_review(
            ride_id,
            request.user,
            reviewee_id=serializer.validated_data["reviewee_id"],
            rating=serializer.validated_data["rating"],
            comment=serializer.validated_data.get("comment"),
        )
        return Response(
            ReviewSerializer(review, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )
