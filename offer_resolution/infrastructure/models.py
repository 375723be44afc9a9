"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``rides``        -- trips awaiting or holding a driver
* ``ride_offers``  -- one driver's bid on one ride
* ``ride_events``  -- append-only audit trail of ride state changes
* ``driver_availability`` -- one row per driver: free, or engaged on a ride

Indexes
-------
* **B-Tree** on ``status``, ``user_id``, ``driver_id`` for rides, and on
  ``(ride_id, status)`` / ``expires_at`` for offers -- the look-ups used
  by the acceptance transaction and the expiry worker.
* ``uq_ride_offers_ride_driver`` keeps one offer per driver per ride.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)

from .database import Base
from offer_resolution.domain.enums import OfferStatus, RideStatus, RideTiming


def _values(enum_cls):
    return [member.value for member in enum_cls]


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    driver_id = Column(Uuid, nullable=True)

    status = Column(
        Enum(RideStatus, name="ride_status", values_callable=_values),
        default=RideStatus.REQUESTED,
        nullable=False,
    )
    ride_timing = Column(
        Enum(RideTiming, name="ride_timing", values_callable=_values),
        default=RideTiming.INSTANT,
        nullable=False,
    )
    service_type = Column(String(30), default="taxi", nullable=False)

    pickup_address = Column(Text, nullable=True)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff_address = Column(Text, nullable=True)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)

    fare = Column(Float, nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_user", "user_id"),
        Index("idx_rides_driver", "driver_id"),
    )


class OfferModel(Base):
    __tablename__ = "ride_offers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ride_id = Column(Uuid, ForeignKey("rides.id"), nullable=False)
    driver_id = Column(Uuid, nullable=False)
    status = Column(
        Enum(OfferStatus, name="offer_status", values_callable=_values),
        default=OfferStatus.PENDING,
        nullable=False,
    )
    quoted_price = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("ride_id", "driver_id", name="uq_ride_offers_ride_driver"),
        Index("idx_ride_offers_ride_status", "ride_id", "status"),
        Index("idx_ride_offers_expires", "expires_at"),
    )


class RideEventModel(Base):
    __tablename__ = "ride_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Uuid, ForeignKey("rides.id"), nullable=False)
    event_type = Column(String(40), nullable=False)
    actor_role = Column(String(20), nullable=False)
    actor_id = Column(Uuid, nullable=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    payload = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_ride_events_ride", "ride_id"),)


class DriverAvailabilityModel(Base):
    __tablename__ = "driver_availability"

    driver_id = Column(Uuid, primary_key=True)
    active_ride_id = Column(Uuid, ForeignKey("rides.id"), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
