from django.db import models
from django.conf import settings
from django.utils import timezone


class Ride(models.Model):
    """A shared trip published by its host, with a fixed number of seats"""

    STATUS_OPEN = 'open'
    STATUS_FULL = 'full'
    STATUS_DEPARTED = 'departed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_OPEN, 'Open'),
        (STATUS_FULL, 'Full'),
        (STATUS_DEPARTED, 'Departed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    # Rides in these states can still be joined, left or cancelled
    ACTIVE_STATUSES = (STATUS_OPEN, STATUS_FULL)

    VEHICLE_CHOICES = [
        ('car', 'Private Car'),
        ('bike', 'Private Bike'),
        ('cng', 'CNG/Uber/Taxi'),
    ]

    host = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='hosted_rides'
    )

    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through='RideMembership',
        related_name='joined_rides',
        blank=True,
    )

    # Trip details
    vehicle_type = models.CharField(max_length=10, choices=VEHICLE_CHOICES)
    pickup_name = models.CharField(max_length=255)
    destination_name = models.CharField(max_length=255)
    departure_time = models.DateTimeField()
    total_fare = models.DecimalField(max_digits=10, decimal_places=2)

    # Seats are fixed from the vehicle type at creation
    seat_capacity = models.PositiveSmallIntegerField()
    is_female_only = models.BooleanField(default=False)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN)

    # Only active rides hold a code, so codes are unique among them
    join_code = models.CharField(max_length=12, unique=True, null=True, blank=True)

    # Optimistic concurrency token for membership changes
    version = models.PositiveIntegerField(default=0)

    # Last allocated chat sequence number
    last_message_seq = models.PositiveIntegerField(default=0)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    # Members removed by cancellation keep read access to the chat
    removed_member_ids = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = 'rides'
        ordering = ['departure_time']
        indexes = [
            models.Index(fields=['status', 'departure_time'], name='rides_status_departure_idx'),
        ]

    def __str__(self):
        return f"Ride #{self.id} {self.pickup_name} -> {self.destination_name} ({self.status})"

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def has_departure_elapsed(self, now=None):
        return self.departure_time <= (now or timezone.now())

    def member_ids(self):
        return set(self.memberships.values_list('user_id', flat=True))

    def is_member(self, user_id):
        return self.memberships.filter(user_id=user_id).exists()

    def is_participant(self, user_id):
        """Host or current member."""
        return self.host_id == user_id or self.is_member(user_id)

    def was_removed_member(self, user_id):
        return user_id in (self.removed_member_ids or [])


class RideMembership(models.Model):
    """One seat on a ride, taken by a user other than the host."""

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='memberships'
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_memberships'
    )

    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'ride_memberships'
        ordering = ['joined_at']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'user'],
                name='unique_ride_member'
            )
        ]

    def __str__(self):
        return f"{self.user} on Ride #{self.ride_id}"
