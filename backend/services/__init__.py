"""
Services package - Business logic layer.

This package contains the ride session rules. It operates on Django models
but is decoupled from the HTTP/WebSocket layer.

Modules:
    - ride_management: Ride registry and membership coordination
    - chat: Per-ride append-only chat stream
    - reviews: Review ledger and rating summaries
    - exceptions: Error taxonomy shared by all of the above
"""

# Expose commonly used functions at package level
from .ride_management import (
    RideResult,
    create_ride,
    get_ride,
    list_rides,
    rides_for_user,
    update_status,
    mark_departed_rides,
    join_ride,
    join_by_code,
    leave_ride,
    delete_ride,
)
from .chat import append_message, get_history
from .reviews import submit_review, review_targets, reviews_for_user, rating_summary
from .exceptions import (
    RideServiceError,
    RideValidationError,
    NotFoundError,
    RideNotFoundError,
    RideFullError,
    IneligibleError,
    AlreadyMemberError,
    NotMemberError,
    RideClosedError,
    ForbiddenError,
    ConflictError,
    NotAuthorizedError,
    InvalidRatingError,
    NotEligibleError,
    DuplicateReviewError,
)

__all__ = [
    # Ride management
    "RideResult",
    "create_ride",
    "get_ride",
    "list_rides",
    "rides_for_user",
    "update_status",
    "mark_departed_rides",
    "join_ride",
    "join_by_code",
    "leave_ride",
    "delete_ride",
    # Chat
    "append_message",
    "get_history",
    # Reviews
    "submit_review",
    "review_targets",
    "reviews_for_user",
    "rating_summary",
    # Exceptions
    "RideServiceError",
    "RideValidationError",
    "NotFoundError",
    "RideNotFoundError",
    "RideFullError",
    "IneligibleError",
    "AlreadyMemberError",
    "NotMemberError",
    "RideClosedError",
    "ForbiddenError",
    "ConflictError",
    "NotAuthorizedError",
    "InvalidRatingError",
    "NotEligibleError",
    "DuplicateReviewError",
]
