from rest_framework import serializers

from accounts.serializers import PublicUserSerializer
from .models import Review


class ReviewSerializer(serializers.ModelSerializer):
    ride_id = serializers.IntegerField(read_only=True)
    reviewee_id = serializers.IntegerField(read_only=True)
    reviewer = PublicUserSerializer(read_only=True)

    class Meta:
        model = Review
        fields = ['id', 'ride_id', 'reviewer', 'reviewee_id', 'rating', 'comment', 'created_at']
        read_only_fields = fields


class ReviewCreateSerializer(serializers.Serializer):
    """Rating is passed through untouched; the ledger rejects anything but 1..5 as invalid_rating"""
    reviewee_id = serializers.IntegerField()
    rating = serializers.JSONField(allow_null=True)
    comment = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=1000)


class ReviewTargetSerializer(serializers.Serializer):
    user = PublicUserSerializer(read_only=True)
    reviewed = serializers.BooleanField(read_only=True)
