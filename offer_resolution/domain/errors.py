"""
Error taxonomy for offer resolution.

Every failure carries an ``ErrorKind`` and a user-safe message.  The
acceptance engine raises these inside its transaction (so the unit of
work rolls back) and converts them to a failed ``AcceptanceResult`` at
its boundary; the API layer renders them as ``success=false`` bodies.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    INVALID_REQUEST = "invalid_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    ALREADY_RESOLVED = "already_resolved"
    CONFLICT = "conflict"
    STORAGE_FAILURE = "storage_failure"
    NOTIFICATION_FAILURE = "notification_failure"


class OfferResolutionError(Exception):
    """Base error with a kind and a message safe to show the caller."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class InvalidRequest(OfferResolutionError):
    kind = ErrorKind.INVALID_REQUEST
    default_message = "Missing or invalid offer_id"


class Unauthorized(OfferResolutionError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Unauthorized"


class IdentityTimeout(Unauthorized):
    default_message = "Identity verification timed out"


class Forbidden(OfferResolutionError):
    kind = ErrorKind.FORBIDDEN
    default_message = "You can only accept offers on your own rides"


class NotFound(OfferResolutionError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Offer not found"


class AlreadyResolved(OfferResolutionError):
    kind = ErrorKind.ALREADY_RESOLVED
    default_message = "Offer is no longer pending"


class OfferExpired(AlreadyResolved):
    default_message = "Offer has expired"


class Conflict(OfferResolutionError):
    kind = ErrorKind.CONFLICT
    default_message = "Ride is no longer awaiting a driver"


class DriverUnavailable(Conflict):
    default_message = "Driver already has an active instant ride"


class StorageFailure(OfferResolutionError):
    kind = ErrorKind.STORAGE_FAILURE
    default_message = "Could not complete the request, please try again"


class NotificationFailure(OfferResolutionError):
    kind = ErrorKind.NOTIFICATION_FAILURE
    default_message = "Notification could not be delivered"


# Outcomes a caller is expected to hit in normal operation
EXPECTED_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.INVALID_REQUEST,
        ErrorKind.UNAUTHORIZED,
        ErrorKind.FORBIDDEN,
        ErrorKind.NOT_FOUND,
        ErrorKind.ALREADY_RESOLVED,
        ErrorKind.CONFLICT,
    }
)


_BY_KIND: dict[ErrorKind, type[OfferResolutionError]] = {
    ErrorKind.INVALID_REQUEST: InvalidRequest,
    ErrorKind.UNAUTHORIZED: Unauthorized,
    ErrorKind.FORBIDDEN: Forbidden,
    ErrorKind.NOT_FOUND: NotFound,
    ErrorKind.ALREADY_RESOLVED: AlreadyResolved,
    ErrorKind.CONFLICT: Conflict,
    ErrorKind.STORAGE_FAILURE: StorageFailure,
    ErrorKind.NOTIFICATION_FAILURE: NotificationFailure,
}


def error_for(kind: ErrorKind, message: str | None = None) -> OfferResolutionError:
    """Rebuild the exception for a failed result so it can be raised again."""
    return _BY_KIND.get(kind, StorageFailure)(message)
