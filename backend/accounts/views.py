from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.exceptions import TokenError

from services.reviews import reviews_for_user, rating_summary
from services.exceptions import NotFoundError
from reviews.serializers import ReviewSerializer
from .models import User
from .serializers import RegisterSerializer, LoginSerializer, UserSerializer, PublicUserSerializer


def _tokens_for(user):
    refresh = RefreshToken.for_user(user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


class RegisterView(APIView):
    """
    Register a new rider

    POST Body:
    {
        "username": "ayesha",
        "email": "ayesha@northsouth.edu",
        "password": "password123",
        "first_name": "Ayesha",
        "last_name": "Rahman",
        "gender": "female",
        "phone_number": "+8801700000000"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        return Response({
            'message': 'User registered successfully',
            'user': UserSerializer(user, context={'request': request}).data,
            'tokens': _tokens_for(user),
        }, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    """
    Login with username and password to get JWT tokens

    POST Body:
    {
        "username": "ayesha",
        "password": "password123"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        # validate() returns the authenticated user
        user = serializer.validated_data

        return Response({
            "message": "Login successful",
            "user": UserSerializer(user, context={'request': request}).data,
            "tokens": _tokens_for(user),
        }, status=status.HTTP_200_OK)


class RefreshTokenView(APIView):
    """
    Refresh JWT access token

    POST Body:
    {
        "refresh": "your_refresh_token"
    }
    """
    permission_classes = (AllowAny,)
    authentication_classes = []

    def post(self, request):
        refresh_token = request.data.get('refresh')

        if not refresh_token:
            return Response(
                {'error': 'Refresh token is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            refresh = RefreshToken(refresh_token)
        except TokenError:
            return Response(
                {'error': 'Invalid refresh token'},
                status=status.HTTP_401_UNAUTHORIZED
            )
        return Response({'access': str(refresh.access_token)})


class MeView(APIView):
    """
    GET   -> Retrieve the authenticated user's profile
    PATCH -> Partially update it
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        data = UserSerializer(request.user, context={'request': request}).data
        data.update(rating_summary(request.user.id))
        return Response(data)

    def patch(self, request):
        serializer = UserSerializer(
            request.user, data=request.data, partial=True, context={'request': request}
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


def _get_user_or_404(user_id):
    try:
        return User.objects.get(id=user_id, is_active=True)
    except User.DoesNotExist:
        raise NotFoundError("User not found")


class UserProfileView(APIView):
    """GET: Public profile of another rider, with rating summary."""
    permission_classes = [IsAuthenticated]

    def get(self, request, user_id: int):
        user = _get_user_or_404(user_id)
        data = PublicUserSerializer(user, context={'request': request}).data
        data.update(rating_summary(user.id))
        return Response(data)


class UserReviewsView(APIView):
    """GET: Reviews a rider has received, newest first."""
    permission_classes = [IsAuthenticated]

    def get(self, request, user_id: int):
        user = _get_user_or_404(user_id)
        reviews = reviews_for_user(user.id)
        return Response({
            "count": len(reviews),
            "reviews": ReviewSerializer(reviews, many=True, context={'request': request}).data,
        })
