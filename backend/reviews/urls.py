from django.urls import path

from .views import RideReviewsView

app_name = 'reviews'

urlpatterns = [
    path('<int:ride_id>/reviews/', RideReviewsView.as_view(), name='ride-reviews'),
]
