"""
Error taxonomy for the ride session service.

Every error carries an ``error_code`` (stable, machine readable) and the HTTP
status the API layer maps it to. Business-rule violations are surfaced to the
caller as-is; only ``ConflictError`` is transient.
"""


class RideServiceError(Exception):
    """Base class for all ride session errors."""
    error_code = "error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class RideValidationError(RideServiceError):
    """Raised when input is malformed or out of range."""
    error_code = "validation_error"
    status_code = 400
    default_message = "Invalid ride data"


class NotFoundError(RideServiceError):
    """Raised when a referenced ride or user does not exist."""
    error_code = "not_found"
    status_code = 404
    default_message = "Not found"


class RideNotFoundError(NotFoundError):
    """Raised when a ride cannot be found."""
    default_message = "Ride not found"


class RideFullError(RideServiceError):
    """Raised when every seat on the ride is taken."""
    error_code = "full"
    status_code = 409
    default_message = "This ride is full"


class IneligibleError(RideServiceError):
    """Raised when the user does not satisfy the ride's restriction."""
    error_code = "ineligible"
    status_code = 409
    default_message = "You are not eligible to join this ride"


class AlreadyMemberError(RideServiceError):
    """Raised when the user is already the host or a member."""
    error_code = "already_member"
    status_code = 409
    default_message = "You are already part of this ride"


class NotMemberError(RideServiceError):
    """Raised when a non-member tries to leave."""
    error_code = "not_member"
    status_code = 409
    default_message = "You are not a member of this ride"


class RideClosedError(RideServiceError):
    """Raised when the ride is cancelled or has departed."""
    error_code = "closed"
    status_code = 409
    default_message = "This ride is closed"


class ForbiddenError(RideServiceError):
    """Raised when only the host may perform the operation."""
    error_code = "forbidden"
    status_code = 403
    default_message = "Only the host can do this"


class ConflictError(RideServiceError):
    """Raised when concurrent updates kept winning; safe to retry."""
    error_code = "conflict"
    status_code = 409
    default_message = "The ride was updated concurrently, please retry"


class NotAuthorizedError(RideServiceError):
    """Raised when a non-participant tries to use the ride chat."""
    error_code = "not_authorized"
    status_code = 403
    default_message = "Only the host and members can use this chat"


class InvalidRatingError(RideServiceError):
    """Raised when a rating is not an integer from 1 to 5."""
    error_code = "invalid_rating"
    status_code = 400
    default_message = "Rating must be an integer from 1 to 5"


class NotEligibleError(RideServiceError):
    """Raised when a review pair is not allowed for the ride."""
    error_code = "not_eligible"
    status_code = 409
    default_message = "This review is not allowed"


class DuplicateReviewError(RideServiceError):
    """Raised when the reviewer already reviewed this person for this ride."""
    error_code = "duplicate"
    status_code = 409
    default_message = "You already reviewed this rider for this ride"
