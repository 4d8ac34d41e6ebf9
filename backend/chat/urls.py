from django.urls import path

from .views import RideMessagesView

app_name = 'chat'

urlpatterns = [
    path('<int:ride_id>/messages/', RideMessagesView.as_view(), name='ride-messages'),
]
