from django.conf import settings
from rest_framework import serializers

from accounts.serializers import PublicUserSerializer
from .models import Ride


class RideSerializer(serializers.ModelSerializer):
    """Serializer for rides, as shown on ride cards and the ride screen"""
    host = PublicUserSerializer(read_only=True)
    members = serializers.SerializerMethodField()
    vehicle_label = serializers.CharField(source='get_vehicle_type_display', read_only=True)
    seats_available = serializers.SerializerMethodField()
    join_code = serializers.SerializerMethodField()

    class Meta:
        model = Ride
        fields = ['id', 'host', 'members', 'vehicle_type', 'vehicle_label',
                  'pickup_name', 'destination_name', 'departure_time', 'total_fare',
                  'seat_capacity', 'seats_available', 'is_female_only', 'status',
                  'join_code', 'created_at', 'cancelled_at']
        read_only_fields = fields

    def _member_users(self, obj):
        # memberships are usually prefetched by the registry
        return [membership.user for membership in obj.memberships.all()]

    def get_members(self, obj):
        return PublicUserSerializer(
            self._member_users(obj), many=True, context=self.context
        ).data

    def get_seats_available(self, obj):
        if not obj.is_active:
            return 0
        return max(0, obj.seat_capacity - len(self._member_users(obj)))

    def get_join_code(self, obj):
        """Only the host and members see the code they can share."""
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return None
        if obj.host_id == user.id or any(u.id == user.id for u in self._member_users(obj)):
            return obj.join_code
        return None


class RideCreateSerializer(serializers.Serializer):
    """Input for publishing a ride; business rules live in the registry"""
    vehicle_type = serializers.ChoiceField(choices=Ride.VEHICLE_CHOICES)
    pickup_name = serializers.CharField(max_length=255)
    destination_name = serializers.CharField(max_length=255)
    departure_time = serializers.DateTimeField()
    total_fare = serializers.DecimalField(max_digits=10, decimal_places=2)
    is_female_only = serializers.BooleanField(default=False)


class RideListQuerySerializer(serializers.Serializer):
    """Browse filters taken from the query string"""
    vehicle_type = serializers.ChoiceField(
        choices=[('all', 'All')] + Ride.VEHICLE_CHOICES, required=False
    )
    q = serializers.CharField(required=False, allow_blank=True, max_length=100)
    female_only = serializers.BooleanField(default=False)


class JoinByCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=12)

    def validate_code(self, value):
        return value.strip().upper()


class VehicleTypeSerializer(serializers.Serializer):
    id = serializers.CharField()
    label = serializers.CharField()
    max_seats = serializers.IntegerField()

    @staticmethod
    def vehicle_types():
        capacities = settings.RIDE_VEHICLE_CAPACITY
        return [
            {"id": key, "label": label, "max_seats": capacities.get(key, 0)}
            for key, label in Ride.VEHICLE_CHOICES
        ]
