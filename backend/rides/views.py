from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services import ride_management
from .serializers import (
    RideSerializer,
    RideCreateSerializer,
    RideListQuerySerializer,
    JoinByCodeSerializer,
    VehicleTypeSerializer,
)


def _ride_response(result, request, status_code=status.HTTP_200_OK):
    body = {
        "message": result.message,
        "ride": RideSerializer(result.ride, context={"request": request}).data,
    }
    if result.extra:
        body.update(result.extra)
    return Response(body, status=status_code)


class RideListCreateView(APIView):
    """
    GET  -> Browse active rides (?vehicle_type=&q=&female_only=)
    POST -> Publish a new ride hosted by the caller
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        query = RideListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        filters = query.validated_data

        rides = ride_management.list_rides(
            user=request.user,
            vehicle_type=filters.get("vehicle_type"),
            query_text=filters.get("q"),
            female_only=filters.get("female_only", False),
        )
        data = RideSerializer(rides, many=True, context={"request": request}).data
        return Response({"count": len(data), "rides": data})

    def post(self, request):
        serializer = RideCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ride = ride_management.create_ride(host=request.user, **serializer.validated_data)

        return Response(
            RideSerializer(ride, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )


class MyRidesView(APIView):
    """GET: Rides the caller hosts or has joined."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        rides = ride_management.rides_for_user(request.user)
        data = RideSerializer(rides, many=True, context={"request": request}).data
        return Response({"count": len(data), "rides": data})


class VehicleTypesView(APIView):
    """GET: Vehicle types a host can choose and the seats each one offers."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        types = VehicleTypeSerializer(VehicleTypeSerializer.vehicle_types(), many=True).data
        return Response({"vehicle_types": types})


class RideDetailView(APIView):
    """
    GET    -> Ride details with host and members
    DELETE -> Host cancels the ride
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, ride_id: int):
        ride = ride_management.get_ride(ride_id)
        return Response(RideSerializer(ride, context={"request": request}).data)

    def delete(self, request, ride_id: int):
        result = ride_management.delete_ride(ride_id, request.user)
        return _ride_response(result, request)


class RideJoinView(APIView):
    """POST: Take a seat on the ride."""
    permission_classes = [IsAuthenticated]

    def post(self, request, ride_id: int):
        result = ride_management.join_ride(ride_id, request.user)
        return _ride_response(result, request)


class RideLeaveView(APIView):
    """POST: Give up your seat on the ride."""
    permission_classes = [IsAuthenticated]

    def post(self, request, ride_id: int):
        result = ride_management.leave_ride(ride_id, request.user)
        return _ride_response(result, request)


class JoinByCodeView(APIView):
    """
    POST: Join a ride using the code its host or members shared.

    POST Body:
    {
        "code": "K7WQ2M"
    }
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = JoinByCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ride_management.join_by_code(serializer.validated_data["code"], request.user)
        return _ride_response(result, request)
