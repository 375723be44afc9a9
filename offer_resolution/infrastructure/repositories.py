"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Reads that feed a state change take row
locks (``SELECT ... FOR UPDATE``); every state-changing write is a
compare-and-swap on the status column and reports whether it won.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DriverAvailabilityModel,
    OfferModel,
    RideEventModel,
    RideModel,
)
from offer_resolution.domain.entities import Offer, Ride
from offer_resolution.domain.enums import (
    ACTIVE_RIDE_STATUSES,
    AWAITING_ASSIGNMENT,
    OfferStatus,
    RideStatus,
    RideTiming,
)


def to_offer(model: OfferModel) -> Offer:
    return Offer(
        id=model.id,
        ride_id=model.ride_id,
        driver_id=model.driver_id,
        status=OfferStatus(model.status),
        quoted_price=model.quoted_price,
        created_at=model.created_at,
        expires_at=model.expires_at,
    )


def to_ride(model: RideModel) -> Ride:
    return Ride(
        id=model.id,
        user_id=model.user_id,
        status=RideStatus(model.status),
        driver_id=model.driver_id,
        ride_timing=RideTiming(model.ride_timing).value,
    )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, ride_id: uuid.UUID) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_for_update(self, ride_id: uuid.UUID) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count_active_instant_rides(
        self, driver_id: uuid.UUID, exclude_ride_id: uuid.UUID
    ) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideModel)
            .where(
                RideModel.driver_id == driver_id,
                RideModel.ride_timing == RideTiming.INSTANT,
                RideModel.status.in_(list(ACTIVE_RIDE_STATUSES)),
                RideModel.id != exclude_ride_id,
            )
        )
        return result.scalar() or 0

    async def assign_driver(
        self,
        ride_id: uuid.UUID,
        driver_id: uuid.UUID,
        fare: Optional[float],
        now: datetime,
    ) -> bool:
        """Attach *driver_id* only if the ride is still unassigned."""
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.driver_id.is_(None),
                RideModel.status.in_(list(AWAITING_ASSIGNMENT)),
            )
            .values(
                driver_id=driver_id,
                status=RideStatus.ACCEPTED,
                fare=fare,
                accepted_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class OfferRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, offer_id: uuid.UUID) -> Optional[OfferModel]:
        return await self.session.get(OfferModel, offer_id)

    async def get_for_update(self, offer_id: uuid.UUID) -> Optional[OfferModel]:
        result = await self.session.execute(
            select(OfferModel)
            .where(OfferModel.id == offer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_ride_id(self, offer_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.session.execute(
            select(OfferModel.ride_id).where(OfferModel.id == offer_id)
        )
        return result.scalar_one_or_none()

    async def list_for_ride(self, ride_id: uuid.UUID) -> list[OfferModel]:
        result = await self.session.execute(
            select(OfferModel)
            .where(OfferModel.ride_id == ride_id)
            .order_by(OfferModel.created_at)
        )
        return list(result.scalars().all())

    async def mark_accepted(self, offer_id: uuid.UUID, now: datetime) -> bool:
        result = await self.session.execute(
            update(OfferModel)
            .where(
                OfferModel.id == offer_id,
                OfferModel.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.ACCEPTED, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def reject_competing(
        self, ride_id: uuid.UUID, winning_offer_id: uuid.UUID, now: datetime
    ) -> list[uuid.UUID]:
        """Reject every other pending offer on the ride; return their drivers."""
        result = await self.session.execute(
            select(OfferModel.id, OfferModel.driver_id)
            .where(
                OfferModel.ride_id == ride_id,
                OfferModel.id != winning_offer_id,
                OfferModel.status == OfferStatus.PENDING,
            )
            .with_for_update()
        )
        rows = result.all()
        if not rows:
            return []

        await self.session.execute(
            update(OfferModel)
            .where(
                OfferModel.id.in_([row.id for row in rows]),
                OfferModel.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.REJECTED, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        return [row.driver_id for row in rows]

    async def expire_stale(self, now: datetime) -> int:
        """Move pending offers past their deadline to EXPIRED."""
        result = await self.session.execute(
            update(OfferModel)
            .where(
                OfferModel.status == OfferStatus.PENDING,
                OfferModel.expires_at.is_not(None),
                OfferModel.expires_at <= now,
            )
            .values(status=OfferStatus.EXPIRED, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class RideEventRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        *,
        ride_id: uuid.UUID,
        event_type: str,
        actor_role: str,
        actor_id: Optional[uuid.UUID],
        from_status: Optional[RideStatus],
        to_status: Optional[RideStatus],
        payload: dict,
    ) -> RideEventModel:
        event = RideEventModel(
            ride_id=ride_id,
            event_type=event_type,
            actor_role=actor_role,
            actor_id=actor_id,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value if to_status else None,
            payload=payload,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_for_ride(self, ride_id: uuid.UUID) -> list[RideEventModel]:
        result = await self.session.execute(
            select(RideEventModel)
            .where(RideEventModel.ride_id == ride_id)
            .order_by(RideEventModel.id)
        )
        return list(result.scalars().all())


class DriverAvailabilityRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, driver_id: uuid.UUID) -> Optional[DriverAvailabilityModel]:
        return await self.session.get(DriverAvailabilityModel, driver_id)

    async def mark_engaged(
        self, driver_id: uuid.UUID, ride_id: uuid.UUID, now: datetime
    ) -> None:
        """Upsert the driver's row as busy on *ride_id*."""
        if self.session.get_bind().dialect.name == "sqlite":
            insert = sqlite_insert
        else:
            insert = pg_insert

        stmt = insert(DriverAvailabilityModel).values(
            driver_id=driver_id,
            active_ride_id=ride_id,
            is_available=False,
            updated_at=now,
        )
        await self.session.execute(
            stmt.on_conflict_do_update(
                index_elements=[DriverAvailabilityModel.driver_id],
                set_={
                    "active_ride_id": stmt.excluded.active_ride_id,
                    "is_available": False,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
        )
