"""
Domain entities and value objects.

Patterns used
-------------
- **State Pattern** on ``Ride`` and ``Offer``: enforces valid lifecycle
  transitions (an offer leaves PENDING exactly once).
- ``check_acceptance`` holds the acceptance preconditions as a pure
  function so the engine can run it against rows it has locked.
- ``AcceptanceResult`` and ``Notification`` are transient value objects.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import (
    AWAITING_ASSIGNMENT,
    OFFER_TRANSITIONS,
    RIDE_TRANSITIONS,
    NotificationKind,
    OfferStatus,
    RideStatus,
)
from .errors import AlreadyResolved, Conflict, ErrorKind, Forbidden, OfferExpired


class InvalidStateTransition(Exception):
    """Raised when a status change violates the state machine."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Offer:
    id: uuid.UUID
    ride_id: uuid.UUID
    driver_id: uuid.UUID
    status: OfferStatus = OfferStatus.PENDING
    quoted_price: Optional[float] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == OfferStatus.PENDING

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) <= as_utc(now)

    def transition_to(self, new_status: OfferStatus) -> None:
        allowed = OFFER_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition offer from {self.status.value} to {new_status.value}"
            )
        self.status = new_status


@dataclass
class Ride:
    id: uuid.UUID
    user_id: uuid.UUID
    status: RideStatus = RideStatus.REQUESTED
    driver_id: Optional[uuid.UUID] = None
    ride_timing: str = "instant"

    @property
    def awaiting_assignment(self) -> bool:
        return self.driver_id is None and self.status in AWAITING_ASSIGNMENT

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition ride from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def assign(self, driver_id: uuid.UUID) -> None:
        if self.driver_id is not None:
            raise InvalidStateTransition("Ride already has a driver")
        self.transition_to(RideStatus.ACCEPTED)
        self.driver_id = driver_id


def check_acceptance(
    offer: Offer, ride: Ride, passenger_id: uuid.UUID, now: datetime
) -> None:
    """Raise the matching domain error if *passenger_id* may not accept *offer*.

    Ownership is checked first so a stranger learns nothing about the
    offer's state.
    """
    if ride.user_id != passenger_id:
        raise Forbidden()
    if not offer.is_pending:
        raise AlreadyResolved(
            f"Offer is no longer pending (status: {offer.status.value})"
        )
    if offer.is_expired(now):
        raise OfferExpired()
    if not ride.awaiting_assignment:
        raise Conflict(
            f"Ride is no longer awaiting a driver (status: {ride.status.value})"
        )


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class AcceptanceResult:
    success: bool
    ride_id: Optional[uuid.UUID] = None
    driver_id: Optional[uuid.UUID] = None
    offer_id: Optional[uuid.UUID] = None
    rejected_driver_ids: tuple[uuid.UUID, ...] = ()
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "AcceptanceResult":
        return cls(success=False, error=kind, message=message)


@dataclass(frozen=True)
class Notification:
    recipient_id: uuid.UUID
    kind: NotificationKind
    title: str
    message: str
    action_url: str
    ride_id: uuid.UUID
    offer_id: Optional[uuid.UUID] = None
    category: str = "offers"
    priority: str = "normal"
    context: dict = field(default_factory=dict)
