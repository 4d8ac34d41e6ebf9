"""
Ride registry: creating, finding and listing rides, and moving them through
their lifecycle (open -> full -> departed, or cancelled by the host).
"""

import logging
import secrets
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from rides.models import Ride, RideMembership
from realtime.notifications import notify_ride_cancelled
from ..exceptions import ConflictError, RideNotFoundError, RideValidationError

logger = logging.getLogger(__name__)

# No 0/O or 1/I, codes are read aloud and typed on phones
JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_JOIN_CODE_ATTEMPTS = 10

ALLOWED_TRANSITIONS = {
    Ride.STATUS_OPEN: {Ride.STATUS_FULL, Ride.STATUS_DEPARTED, Ride.STATUS_CANCELLED},
    Ride.STATUS_FULL: {Ride.STATUS_OPEN, Ride.STATUS_DEPARTED, Ride.STATUS_CANCELLED},
    Ride.STATUS_DEPARTED: set(),
    Ride.STATUS_CANCELLED: set(),
}


def seat_capacity_for(vehicle_type: str) -> int:
    """Seats offered to members (host excluded) for a vehicle type."""
    capacities = settings.RIDE_VEHICLE_CAPACITY
    if vehicle_type not in capacities:
        raise RideValidationError(f"Unknown vehicle type: {vehicle_type}")
    return capacities[vehicle_type]


def generate_join_code(length: Optional[int] = None) -> str:
    length = length or settings.RIDE_JOIN_CODE_LENGTH
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def compare_and_set(ride: Ride, **changes) -> bool:
    """
    Apply ``changes`` only if the ride's version is still the one we read.

    Returns False when another writer got there first; the caller decides
    whether to re-read and retry.
    """
    updated = Ride.objects.filter(pk=ride.pk, version=ride.version).update(
        version=F('version') + 1,
        updated_at=timezone.now(),
        **changes
    )
    return updated == 1


def create_ride(
    host,
    vehicle_type: str,
    pickup_name: str,
    destination_name: str,
    departure_time,
    total_fare,
    is_female_only: bool = False,
) -> Ride:
    """
    Publish a new ride hosted by ``host``.

    Raises:
        RideValidationError: departure not in the future, unknown vehicle
            type, negative fare, blank places, or a female-only ride
            requested by a host who is not female.
    """
    seat_capacity = seat_capacity_for(vehicle_type)
    if seat_capacity <= 0:
        raise RideValidationError("Seat capacity must be positive")

    pickup_name = (pickup_name or "").strip()
    destination_name = (destination_name or "").strip()
    if not pickup_name or not destination_name:
        raise RideValidationError("Pickup and destination are required")

    if departure_time is None:
        raise RideValidationError("Departure time is required")
    if timezone.is_naive(departure_time):
        departure_time = timezone.make_aware(departure_time)
    if departure_time <= timezone.now():
        raise RideValidationError("Departure time must be in the future")

    try:
        fare = Decimal(str(total_fare))
    except (InvalidOperation, ValueError):
        raise RideValidationError("Total fare must be a number")
    if not fare.is_finite() or fare < 0:
        raise RideValidationError("Total fare cannot be negative")

    if is_female_only and not getattr(host, "is_female", False):
        raise RideValidationError("Only female hosts can create female-only rides")

    for _ in range(MAX_JOIN_CODE_ATTEMPTS):
        code = generate_join_code()
        if Ride.objects.filter(join_code=code).exists():
            continue
        try:
            with transaction.atomic():
                ride = Ride.objects.create(
                    host=host,
                    vehicle_type=vehicle_type,
                    pickup_name=pickup_name,
                    destination_name=destination_name,
                    departure_time=departure_time,
                    total_fare=fare,
                    seat_capacity=seat_capacity,
                    is_female_only=bool(is_female_only),
                    status=Ride.STATUS_OPEN,
                    join_code=code,
                )
        except IntegrityError:
            # Another ride claimed the code between the check and the insert
            logger.info("Join code collision on %s, regenerating", code)
            continue

        logger.info("Ride %s created by user %s (%s seats)", ride.id, host.id, seat_capacity)
        return ride

    raise ConflictError("Could not allocate a join code, please retry")


def sync_departure(ride: Ride, now=None) -> Ride:
    """Move an active ride to departed once its departure time has passed."""
    if ride.is_active and ride.has_departure_elapsed(now):
        updated = Ride.objects.filter(pk=ride.pk, status__in=Ride.ACTIVE_STATUSES).update(
            status=Ride.STATUS_DEPARTED,
            join_code=None,
            version=F('version') + 1,
            updated_at=timezone.now(),
        )
        if updated:
            logger.info("Ride %s departed", ride.id)
        ride.refresh_from_db()
    return ride


def get_ride(ride_id) -> Ride:
    """
    Fetch a ride with its host.

    Raises:
        RideNotFoundError: no ride with that id
    """
    try:
        ride = Ride.objects.select_related('host').get(pk=ride_id)
    except (Ride.DoesNotExist, ValueError, TypeError):
        raise RideNotFoundError(f"Ride {ride_id} not found")
    return sync_departure(ride)


def find_active_ride_by_code(code: str) -> Ride:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise RideValidationError("Join code is required")
    try:
        ride = Ride.objects.select_related('host').get(
            join_code=normalized,
            status__in=Ride.ACTIVE_STATUSES,
        )
    except Ride.DoesNotExist:
        raise RideNotFoundError("No active ride uses this join code")
    return sync_departure(ride)


def list_rides(
    user=None,
    vehicle_type: Optional[str] = None,
    query_text: Optional[str] = None,
    female_only: bool = False,
    statuses: Optional[Iterable[str]] = None,
):
    """
    Rides matching the browse filters, soonest departure first.

    ``female_only`` is a product policy, not a security boundary: it is only
    honored when the requesting user is female and silently ignored
    otherwise. Female-only rides stay visible to everyone; the membership
    rules are what keep non-female users out of them.
    """
    statuses = tuple(statuses or Ride.ACTIVE_STATUSES)
    qs = Ride.objects.filter(status__in=statuses)

    if Ride.STATUS_DEPARTED not in statuses:
        # Active rides whose departure passed but were not swept yet
        qs = qs.filter(departure_time__gt=timezone.now())

    if vehicle_type and vehicle_type != 'all':
        qs = qs.filter(vehicle_type=vehicle_type)

    if query_text and query_text.strip():
        text = query_text.strip()
        qs = qs.filter(
            Q(pickup_name__icontains=text)
            | Q(destination_name__icontains=text)
            | Q(host__username__icontains=text)
            | Q(host__first_name__icontains=text)
            | Q(host__last_name__icontains=text)
        )

    if female_only:
        if user is not None and getattr(user, "is_female", False):
            qs = qs.filter(is_female_only=True)
        else:
            logger.debug("female_only filter ignored for user %s", getattr(user, "id", None))

    return (
        qs.select_related('host')
        .prefetch_related('memberships__user')
        .order_by('departure_time', 'id')
    )


def rides_for_user(user):
    """Rides the user hosts or has joined, latest departure first."""
    return (
        Ride.objects.filter(Q(host=user) | Q(memberships__user=user))
        .distinct()
        .select_related('host')
        .prefetch_related('memberships__user')
        .order_by('-departure_time', '-id')
    )


def update_status(ride_id, new_status: str) -> Ride:
    """
    Move a ride to ``new_status`` following the lifecycle table.

    ``full`` requires every seat taken and ``open`` at least one free seat,
    so the status never disagrees with the member count.
    """
    if new_status not in dict(Ride.STATUS_CHOICES):
        raise RideValidationError(f"Unknown ride status: {new_status}")

    ride = get_ride(ride_id)
    if new_status == ride.status:
        return ride
    if new_status not in ALLOWED_TRANSITIONS[ride.status]:
        raise RideValidationError(f"Cannot move ride from {ride.status} to {new_status}")

    member_count = ride.memberships.count()
    if new_status == Ride.STATUS_FULL and member_count < ride.seat_capacity:
        raise RideValidationError("Ride still has free seats")
    if new_status == Ride.STATUS_OPEN and member_count >= ride.seat_capacity:
        raise RideValidationError("Ride has no free seats")

    changes = {'status': new_status}
    if new_status not in Ride.ACTIVE_STATUSES:
        changes['join_code'] = None
    if new_status == Ride.STATUS_CANCELLED:
        changes['cancelled_at'] = timezone.now()
        changes['removed_member_ids'] = sorted(ride.member_ids())

    with transaction.atomic():
        if not compare_and_set(ride, **changes):
            raise ConflictError()
        if new_status == Ride.STATUS_CANCELLED:
            RideMembership.objects.filter(ride=ride).delete()

    ride.refresh_from_db()
    logger.info("Ride %s moved to %s", ride.id, new_status)
    if new_status == Ride.STATUS_CANCELLED:
        transaction.on_commit(lambda: notify_ride_cancelled(ride))
    return ride


def mark_departed_rides(now=None) -> int:
    """Sweep every active ride whose departure time has passed. Returns the count."""
    now = now or timezone.now()
    count = Ride.objects.filter(
        status__in=Ride.ACTIVE_STATUSES,
        departure_time__lte=now,
    ).update(
        status=Ride.STATUS_DEPARTED,
        join_code=None,
        version=F('version') + 1,
        updated_at=now,
    )
    if count:
        logger.info("Marked %s ride(s) as departed", count)
    return count
