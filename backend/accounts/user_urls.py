from django.urls import path

from .views import MeView, UserProfileView, UserReviewsView

app_name = 'users'

urlpatterns = [
    path('me/', MeView.as_view(), name='me'),
    path('<int:user_id>/', UserProfileView.as_view(), name='profile'),
    path('<int:user_id>/reviews/', UserReviewsView.as_view(), name='reviews'),
]
