"""
Review ledger: participants of a departed ride rate each other, once per
(ride, reviewer, reviewee).
"""

import logging
from typing import Any, Dict, List

from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Q

from reviews.models import Review
from rides.models import Ride
from ..exceptions import (
    DuplicateReviewError,
    InvalidRatingError,
    NotEligibleError,
    RideValidationError,
)
from ..ride_management.registry import get_ride

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def _validate_rating(rating) -> int:
    # bool is an int subclass
    if isinstance(rating, bool):
        raise InvalidRatingError()
    if isinstance(rating, float) and rating.is_integer():
        rating = int(rating)
    if not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRatingError()
    return rating


def _participant_ids(ride: Ride) -> set:
    return {ride.host_id} | ride.member_ids()


def submit_review(ride_id, reviewer, reviewee_id, rating, comment=None) -> Review:
    """
    Record ``reviewer``'s rating of ``reviewee_id`` for a departed ride.

    Raises:
        InvalidRatingError: rating is not an integer from 1 to 5
        RideNotFoundError: no such ride
        NotEligibleError: ride not departed, self review, or either user
            was neither host nor member
        DuplicateReviewError: this triple was already reviewed
    """
    rating = _validate_rating(rating)

    try:
        reviewee_id = int(reviewee_id)
    except (TypeError, ValueError):
        raise RideValidationError("reviewee_id must be a user id")

    ride = get_ride(ride_id)

    if ride.status != Ride.STATUS_DEPARTED:
        raise NotEligibleError("Reviews open once the ride has departed")

    if reviewer.id == reviewee_id:
        raise NotEligibleError("You cannot review yourself")

    participants = _participant_ids(ride)
    if reviewer.id not in participants:
        raise NotEligibleError("You were not part of this ride")
    if reviewee_id not in participants:
        raise NotEligibleError("That user was not part of this ride")

    if Review.objects.filter(ride=ride, reviewer=reviewer, reviewee_id=reviewee_id).exists():
        raise DuplicateReviewError()

    comment = (comment or "").strip() or None

    try:
        with transaction.atomic():
            review = Review.objects.create(
                ride=ride,
                reviewer=reviewer,
                reviewee_id=reviewee_id,
                rating=rating,
                comment=comment,
            )
    except IntegrityError:
        # Lost a race with an identical submission
        raise DuplicateReviewError()

    logger.info("User %s reviewed user %s on ride %s (%s/5)", reviewer.id, reviewee_id, ride.id, rating)
    return review


def review_targets(ride_id, reviewer) -> List[Dict[str, Any]]:
    """
    The other participants of a ride, each flagged with whether ``reviewer``
    has already reviewed them for it.
    """
    ride = get_ride(ride_id)
    participants = _participant_ids(ride)
    if reviewer.id not in participants:
        raise NotEligibleError("You were not part of this ride")

    reviewed = set(
        Review.objects.filter(ride=ride, reviewer=reviewer).values_list('reviewee_id', flat=True)
    )
    users = [ride.host] + [m.user for m in ride.memberships.select_related('user')]
    return [
        {"user": user, "reviewed": user.id in reviewed}
        for user in users
        if user.id != reviewer.id
    ]


def reviews_for_user(user_id) -> List[Review]:
    return list(
        Review.objects.filter(reviewee_id=user_id)
        .select_related('reviewer', 'ride')
        .order_by('-created_at')
    )


def rating_summary(user_id) -> Dict[str, Any]:
    """Average rating, review count and departed rides taken (hosted or joined)."""
    stats = Review.objects.filter(reviewee_id=user_id).aggregate(
        average=Avg('rating'),
        total=Count('id'),
    )
    total_rides = (
        Ride.objects.filter(status=Ride.STATUS_DEPARTED)
        .filter(Q(host_id=user_id) | Q(memberships__user_id=user_id))
        .distinct()
        .count()
    )
    average = stats["average"]
    return {
        "average_rating": round(average, 1) if average is not None else None,
        "total_reviews": stats["total"],
        "total_rides": total_rides,
    }
