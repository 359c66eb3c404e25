"""
Domain-specific exceptions for event operations.

These represent business rule violations and are converted to
status codes by the Lambda handler.
"""


class PotluckServiceError(Exception):
    """Base exception for all event service errors."""
    pass


class NotSignedInError(PotluckServiceError):
    """Raised when an operation requires a user identity and none is given."""
    pass


class ValidationError(PotluckServiceError):
    """Raised when input for an event operation is invalid."""
    pass


class EventNotFoundError(PotluckServiceError):
    """Raised when an event document does not exist."""
    pass


class NotHostError(PotluckServiceError):
    """Raised when someone other than the host edits or deletes an event."""
    pass


class UserNotFoundError(PotluckServiceError):
    """Raised when no profile matches a lookup."""
    pass


class ConcurrentUpdateError(PotluckServiceError):
    """Raised when an event changed between read and conditional write."""
    pass
