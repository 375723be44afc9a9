"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 sample rides awaiting a driver, each with 3 pending offers
  - 1 ride already accepted (its driver is busy for instant rides)
  - 1 cancelled ride with a stale offer

Prints the ids so an offer can be accepted straight away.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from offer_resolution.config import settings
from offer_resolution.domain.enums import OfferStatus, RideStatus
from offer_resolution.infrastructure.database import build_engine, build_session_factory
from offer_resolution.infrastructure.models import OfferModel, RideModel

PASSENGERS = [uuid.uuid4() for _ in range(4)]
DRIVERS = [uuid.uuid4() for _ in range(5)]

RIDES = [
    {
        "user_id": PASSENGERS[0],
        "pickup": ("Harare Central", -17.8292, 31.0522),
        "dropoff": ("Avondale Shops", -17.8000, 31.0400),
        "status": RideStatus.REQUESTED,
        "offers": [(DRIVERS[0], 12.0), (DRIVERS[1], 10.5), (DRIVERS[2], 11.0)],
    },
    {
        "user_id": PASSENGERS[1],
        "pickup": ("Belgravia", -17.8150, 31.0420),
        "dropoff": ("Borrowdale", -17.7700, 31.0900),
        "status": RideStatus.OFFER_PENDING,
        "offers": [(DRIVERS[1], 15.0), (DRIVERS[2], 14.0), (DRIVERS[3], 16.5)],
    },
    {
        "user_id": PASSENGERS[2],
        "pickup": ("Eastlea", -17.8300, 31.0700),
        "dropoff": ("Airport", -17.9318, 31.0928),
        "status": RideStatus.REQUESTED,
        "offers": [(DRIVERS[0], 25.0), (DRIVERS[3], 22.0), (DRIVERS[4], 24.0)],
    },
]


async def seed():
    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    now = datetime.now(timezone.utc)

    async with session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM rides"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            await engine.dispose()
            return

        for r in RIDES:
            ride = RideModel(
                user_id=r["user_id"],
                status=r["status"],
                pickup_address=r["pickup"][0],
                pickup_lat=r["pickup"][1],
                pickup_lng=r["pickup"][2],
                dropoff_address=r["dropoff"][0],
                dropoff_lat=r["dropoff"][1],
                dropoff_lng=r["dropoff"][2],
            )
            session.add(ride)
            await session.flush()
            print(f"  Ride {ride.id} (passenger {ride.user_id})")

            for driver_id, price in r["offers"]:
                offer = OfferModel(
                    ride_id=ride.id,
                    driver_id=driver_id,
                    quoted_price=price,
                    expires_at=now + timedelta(minutes=10),
                )
                session.add(offer)
                await session.flush()
                print(f"    offer {offer.id} from driver {driver_id} @ {price:.2f}")

        # Driver 4 is already on an instant ride
        session.add(
            RideModel(
                user_id=PASSENGERS[3],
                driver_id=DRIVERS[4],
                status=RideStatus.ACCEPTED,
                pickup_address="Mbare Musika",
                dropoff_address="Highfield",
                fare=8.0,
                accepted_at=now,
            )
        )

        cancelled = RideModel(
            user_id=PASSENGERS[3],
            status=RideStatus.CANCELLED,
            pickup_address="Msasa",
            dropoff_address="Waterfalls",
        )
        session.add(cancelled)
        await session.flush()
        session.add(
            OfferModel(
                ride_id=cancelled.id,
                driver_id=DRIVERS[0],
                status=OfferStatus.PENDING,
                quoted_price=9.0,
            )
        )

        await session.commit()
        print("\nSeed complete!")

    await engine.dispose()


async def main():
    print("Seeding database...")
    await seed()


if __name__ == "__main__":
    asyncio.run(main())
