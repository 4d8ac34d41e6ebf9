"""
Ride membership operations: join, leave, join by code, and host delete.

Every mutation is a compare-and-swap on the ride's ``version`` so that joins,
leaves and deletes on the same ride are serialized without holding database
locks, while operations on different rides never wait for each other. Only a
join that loses a race is retried, a bounded number of times.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from rides.models import Ride, RideMembership
from realtime.notifications import notify_membership_changed, notify_ride_cancelled
from .registry import compare_and_set, find_active_ride_by_code, get_ride
from ..exceptions import (
    AlreadyMemberError,
    ConflictError,
    ForbiddenError,
    IneligibleError,
    NotMemberError,
    RideClosedError,
    RideFullError,
)

logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for membership operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


def _max_join_attempts() -> int:
    return 1 + max(0, getattr(settings, "RIDE_JOIN_CONFLICT_RETRIES", 3))


def _ensure_can_join(ride: Ride, user) -> int:
    """Check the join rules against a fresh read. Returns the current member count."""
    if not ride.is_active:
        raise RideClosedError(f"Cannot join - ride is {ride.status}")

    if ride.host_id == user.id or ride.is_member(user.id):
        raise AlreadyMemberError()

    if ride.is_female_only and not getattr(user, "is_female", False):
        raise IneligibleError("This ride is for female riders only")

    member_count = ride.memberships.count()
    if ride.status == Ride.STATUS_FULL or member_count >= ride.seat_capacity:
        raise RideFullError()
    return member_count


def join_ride(ride_id, user) -> RideResult:
    """
    Take a seat on a ride.

    The seat check and the membership insert commit together only if the
    ride was not modified since it was read; otherwise the whole check is
    re-run on fresh data. Two concurrent joins for the last seat therefore
    end with one member and one RideFullError, never an overbooked ride.

    Raises:
        RideNotFoundError, RideClosedError, AlreadyMemberError,
        IneligibleError, RideFullError, ConflictError (retries exhausted)
    """
    attempts = _max_join_attempts()

    for attempt in range(1, attempts + 1):
        ride = get_ride(ride_id)
        member_count = _ensure_can_join(ride, user)

        seats_left = ride.seat_capacity - (member_count + 1)
        new_status = Ride.STATUS_FULL if seats_left <= 0 else Ride.STATUS_OPEN

        with transaction.atomic():
            if compare_and_set(ride, status=new_status):
                RideMembership.objects.create(ride=ride, user=user)
                break

        logger.info(
            "Join conflict on ride %s for user %s (attempt %s/%s)",
            ride.id, user.id, attempt, attempts,
        )
    else:
        logger.warning("Giving up join on ride %s for user %s after %s attempts", ride_id, user.id, attempts)
        raise ConflictError()

    ride.refresh_from_db()
    logger.info("User %s joined ride %s (%s)", user.id, ride.id, ride.status)
    transaction.on_commit(lambda: notify_membership_changed(ride, "joined", user.id))

    return RideResult(
        success=True,
        ride=ride,
        message="Successfully joined the ride!",
        extra={"seats_available": max(0, seats_left)},
    )


def join_by_code(code: str, user) -> RideResult:
    """Resolve a join code among active rides, then join that ride."""
    ride = find_active_ride_by_code(code)
    return join_ride(ride.id, user)


def leave_ride(ride_id, user) -> RideResult:
    """
    Give up a seat. The host cannot leave their own ride; they delete it.

    Raises:
        RideNotFoundError, ForbiddenError, NotMemberError, RideClosedError,
        ConflictError
    """
    ride = get_ride(ride_id)

    if ride.host_id == user.id:
        raise ForbiddenError("The host cannot leave; delete the ride instead")

    if not ride.is_member(user.id):
        raise NotMemberError()

    if not ride.is_active:
        raise RideClosedError(f"Cannot leave - ride is {ride.status}")

    with transaction.atomic():
        if not compare_and_set(ride, status=Ride.STATUS_OPEN):
            raise ConflictError()
        RideMembership.objects.filter(ride=ride, user=user).delete()

    ride.refresh_from_db()
    logger.info("User %s left ride %s", user.id, ride.id)
    transaction.on_commit(lambda: notify_membership_changed(ride, "left", user.id))

    return RideResult(
        success=True,
        ride=ride,
        message="You left the ride",
    )


def delete_ride(ride_id, requester) -> RideResult:
    """
    Cancel a ride. Only its host may do this, and only before departure.

    All memberships are removed and the join code released. Chat history
    stays readable but accepts no new messages.

    Raises:
        RideNotFoundError, ForbiddenError, RideClosedError, ConflictError
    """
    ride = get_ride(ride_id)

    if ride.host_id != requester.id:
        raise ForbiddenError("Only the host can delete this ride")

    if not ride.is_active:
        raise RideClosedError(f"Cannot delete - ride is already {ride.status}")

    # A join after this read bumps the version, so the CAS below fails
    member_ids = sorted(ride.member_ids())

    with transaction.atomic():
        if not compare_and_set(
            ride,
            status=Ride.STATUS_CANCELLED,
            join_code=None,
            cancelled_at=timezone.now(),
            removed_member_ids=member_ids,
        ):
            raise ConflictError()
        removed, _ = RideMembership.objects.filter(ride=ride).delete()

    ride.refresh_from_db()
    logger.info("Ride %s cancelled by host %s, %s member(s) removed", ride.id, requester.id, removed)
    transaction.on_commit(lambda: notify_ride_cancelled(ride))

    return RideResult(
        success=True,
        ride=ride,
        message="Ride deleted successfully",
        extra={"removed_members": removed},
    )
