from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    path('', views.RideListCreateView.as_view(), name='ride-list'),
    path('mine/', views.MyRidesView.as_view(), name='my-rides'),
    path('vehicle-types/', views.VehicleTypesView.as_view(), name='vehicle-types'),
    path('join-by-code/', views.JoinByCodeView.as_view(), name='join-by-code'),

    # Membership actions
    path('<int:ride_id>/', views.RideDetailView.as_view(), name='ride-detail'),
    path('<int:ride_id>/join/', views.RideJoinView.as_view(), name='join-ride'),
    path('<int:ride_id>/leave/', views.RideLeaveView.as_view(), name='leave-ride'),
]
