"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    REQUESTED = "requested"
    OFFER_PENDING = "offer_pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses in which a ride can still be assigned a driver
AWAITING_ASSIGNMENT: frozenset[RideStatus] = frozenset(
    {RideStatus.REQUESTED, RideStatus.OFFER_PENDING}
)

# Statuses that keep a driver busy
ACTIVE_RIDE_STATUSES: frozenset[RideStatus] = frozenset(
    {RideStatus.ACCEPTED, RideStatus.IN_PROGRESS}
)

# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.REQUESTED: {
        RideStatus.OFFER_PENDING,
        RideStatus.ACCEPTED,
        RideStatus.CANCELLED,
    },
    RideStatus.OFFER_PENDING: {RideStatus.ACCEPTED, RideStatus.CANCELLED},
    RideStatus.ACCEPTED: {RideStatus.IN_PROGRESS, RideStatus.CANCELLED},
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}


class OfferStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


# Offers leave PENDING exactly once and never change again
OFFER_TRANSITIONS: dict[OfferStatus, set[OfferStatus]] = {
    OfferStatus.PENDING: {
        OfferStatus.ACCEPTED,
        OfferStatus.REJECTED,
        OfferStatus.EXPIRED,
    },
    OfferStatus.ACCEPTED: set(),
    OfferStatus.REJECTED: set(),
    OfferStatus.EXPIRED: set(),
}


class RideTiming(str, enum.Enum):
    INSTANT = "instant"
    SCHEDULED = "scheduled"


class NotificationKind(str, enum.Enum):
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
