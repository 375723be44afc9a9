"""
Atomic Acceptance Engine
========================

Decides which driver gets a ride.  One call = one database transaction:

1. Resolve the offer's ride, then lock the **ride row first** and the
   offer row second (``SELECT ... FOR UPDATE``).  Every acceptance on a
   ride queues on the same ride lock, so racing acceptances are strictly
   ordered and never deadlock on each other's offer locks.
2. Check preconditions against the locked rows (ownership, offer still
   pending and unexpired, ride still awaiting a driver, driver free).
3. Write with compare-and-swap updates: accept the offer, reject every
   other pending offer on the ride, attach the driver to the ride, mark
   the driver engaged on it, and append an ``offer_accepted`` ride event.

Any raised error inside the ``session.begin()`` block rolls the whole
unit of work back, so a failed call never leaves partial changes.  A
transaction that outlives ``timeout_seconds`` is cancelled and rolled
back as well; it is reported as a storage failure, never as success.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_resolution.domain.entities import (
    AcceptanceResult,
    InvalidStateTransition,
    check_acceptance,
    utcnow,
)
from offer_resolution.domain.enums import OfferStatus, RideTiming
from offer_resolution.domain.errors import (
    EXPECTED_KINDS,
    AlreadyResolved,
    Conflict,
    DriverUnavailable,
    ErrorKind,
    NotFound,
    OfferResolutionError,
    StorageFailure,
)
from offer_resolution.infrastructure.repositories import (
    DriverAvailabilityRepository,
    OfferRepository,
    RideEventRepository,
    RideRepository,
    to_offer,
    to_ride,
)

logger = logging.getLogger(__name__)


class AcceptanceEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout_seconds: float = 10.0,
        clock: Callable = utcnow,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    async def accept(
        self, offer_id: uuid.UUID, passenger_id: uuid.UUID
    ) -> AcceptanceResult:
        """Accept *offer_id* on behalf of *passenger_id*.

        Always returns an ``AcceptanceResult``; expected outcomes of a lost
        race come back as ``already_resolved`` / ``conflict`` failures.
        """
        try:
            return await asyncio.wait_for(
                self._run(offer_id, passenger_id), timeout=self.timeout_seconds
            )
        except OfferResolutionError as exc:
            if exc.kind in EXPECTED_KINDS:
                logger.info(
                    "Offer %s not accepted for %s: %s", offer_id, passenger_id, exc
                )
            else:
                logger.error("Offer %s acceptance failed: %s", offer_id, exc)
            return AcceptanceResult.failure(exc.kind, exc.message)
        except asyncio.TimeoutError:
            logger.error(
                "Acceptance of offer %s timed out after %.1fs; rolled back",
                offer_id,
                self.timeout_seconds,
            )
            return AcceptanceResult.failure(
                ErrorKind.STORAGE_FAILURE, StorageFailure.default_message
            )
        except (SQLAlchemyError, OSError):
            logger.exception("Storage error while accepting offer %s", offer_id)
            return AcceptanceResult.failure(
                ErrorKind.STORAGE_FAILURE, StorageFailure.default_message
            )

    async def _run(
        self, offer_id: uuid.UUID, passenger_id: uuid.UUID
    ) -> AcceptanceResult:
        async with self.session_factory() as session:
            async with session.begin():
                return await self._accept_in_transaction(
                    session, offer_id, passenger_id
                )

    async def _accept_in_transaction(
        self,
        session: AsyncSession,
        offer_id: uuid.UUID,
        passenger_id: uuid.UUID,
    ) -> AcceptanceResult:
        offers = OfferRepository(session)
        rides = RideRepository(session)
        events = RideEventRepository(session)
        drivers = DriverAvailabilityRepository(session)
        now = self.clock()

        # ── Lock ride, then offer ─────────────────────────────────────
        ride_id = await offers.get_ride_id(offer_id)
        if ride_id is None:
            raise NotFound()

        ride_row = await rides.get_for_update(ride_id)
        offer_row = await offers.get_for_update(offer_id)
        if ride_row is None:
            raise NotFound("Ride not found")
        if offer_row is None:
            raise NotFound()

        offer = to_offer(offer_row)
        ride = to_ride(ride_row)

        # ── Preconditions ─────────────────────────────────────────────
        check_acceptance(offer, ride, passenger_id, now)

        if ride.ride_timing == RideTiming.INSTANT.value:
            busy = await rides.count_active_instant_rides(offer.driver_id, ride.id)
            if busy:
                raise DriverUnavailable()

        previous_status = ride.status
        try:
            offer.transition_to(OfferStatus.ACCEPTED)
            ride.assign(offer.driver_id)
        except InvalidStateTransition as exc:
            raise Conflict(str(exc))

        # ── Compare-and-swap writes ───────────────────────────────────
        if not await offers.mark_accepted(offer.id, now):
            raise AlreadyResolved()

        rejected = await offers.reject_competing(ride.id, offer.id, now)

        if not await rides.assign_driver(
            ride.id, offer.driver_id, offer.quoted_price, now
        ):
            raise Conflict()

        await drivers.mark_engaged(offer.driver_id, ride.id, now)

        rejected_driver_ids = tuple(dict.fromkeys(rejected))

        await events.record(
            ride_id=ride.id,
            event_type="offer_accepted",
            actor_role="passenger",
            actor_id=passenger_id,
            from_status=previous_status,
            to_status=ride.status,
            payload={
                "offer_id": str(offer.id),
                "driver_id": str(offer.driver_id),
                "quoted_price": offer.quoted_price,
                "rejected_driver_ids": [str(d) for d in rejected_driver_ids],
            },
        )

        logger.info(
            "Ride %s assigned to driver %s (%d competing offers rejected)",
            ride.id,
            offer.driver_id,
            len(rejected_driver_ids),
        )
        return AcceptanceResult(
            success=True,
            ride_id=ride.id,
            driver_id=offer.driver_id,
            offer_id=offer.id,
            rejected_driver_ids=rejected_driver_ids,
        )
