"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Ride, RideMembership


class RideMembershipInline(admin.TabularInline):
    model = RideMembership
    extra = 0
    readonly_fields = ['joined_at']


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin"""
    list_display = ['id', 'host', 'vehicle_type', 'pickup_name', 'destination_name',
                    'departure_time', 'seat_capacity', 'status', 'is_female_only']
    list_filter = ['status', 'vehicle_type', 'is_female_only', 'departure_time']
    search_fields = ['host__username', 'pickup_name', 'destination_name', 'join_code']
    # Status, seats and counters only change through the service layer
    readonly_fields = ['status', 'seat_capacity', 'join_code', 'version', 'last_message_seq',
                       'created_at', 'updated_at', 'cancelled_at', 'removed_member_ids']
    date_hierarchy = 'departure_time'
    inlines = [RideMembershipInline]


@admin.register(RideMembership)
class RideMembershipAdmin(admin.ModelAdmin):
    list_display = ("ride", "user", "joined_at")
    search_fields = ("ride__id", "user__username")
