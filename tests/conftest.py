"""
Shared test fixtures.

Each test gets its own SQLite database file (via aiosqlite) so tests run
without Docker / PostgreSQL / Redis, and so concurrent sessions really
use separate connections.  ``build_engine`` opens every SQLite
transaction with ``BEGIN IMMEDIATE``, which serialises writers the way
row locks do on PostgreSQL.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_resolution.api.middleware import limiter
from offer_resolution.config import Settings
from offer_resolution.domain.enums import OfferStatus, RideStatus, RideTiming
from offer_resolution.domain.errors import Unauthorized
from offer_resolution.infrastructure.database import (
    Base,
    build_engine,
    build_session_factory,
)
from offer_resolution.infrastructure.models import OfferModel, RideModel


# ── Collaborator fakes ────────────────────────────────────────────────


class FakeIdentityVerifier:
    """Maps known tokens to user ids; everything else is rejected."""

    def __init__(self, tokens: Optional[dict[str, uuid.UUID]] = None):
        self.tokens = dict(tokens or {})
        self.calls: list[str] = []

    async def verify(self, token: str) -> uuid.UUID:
        self.calls.append(token)
        try:
            return self.tokens[token]
        except KeyError:
            raise Unauthorized("Invalid or expired token")


class RecordingNotifier:
    """Keeps every notification; fails for recipients listed in ``fail_for``."""

    def __init__(self, fail_for: Optional[set[uuid.UUID]] = None):
        self.sent = []
        self.fail_for = fail_for or set()

    async def send(self, notification) -> None:
        if notification.recipient_id in self.fail_for:
            raise ConnectionError("push gateway unavailable")
        self.sent.append(notification)


# ── Seeding helpers ───────────────────────────────────────────────────


@dataclass
class SeededRide:
    ride_id: uuid.UUID
    passenger_id: uuid.UUID
    driver_ids: list[uuid.UUID] = field(default_factory=list)
    offer_ids: list[uuid.UUID] = field(default_factory=list)


async def seed_ride(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    offers: int = 3,
    passenger_id: Optional[uuid.UUID] = None,
    driver_ids: Optional[list[uuid.UUID]] = None,
    status: RideStatus = RideStatus.REQUESTED,
    driver_id: Optional[uuid.UUID] = None,
    ride_timing: RideTiming = RideTiming.INSTANT,
    expires_at: Optional[datetime] = None,
) -> SeededRide:
    passenger_id = passenger_id or uuid.uuid4()
    driver_ids = driver_ids or [uuid.uuid4() for _ in range(offers)]

    async with session_factory() as session:
        ride = RideModel(
            user_id=passenger_id,
            driver_id=driver_id,
            status=status,
            ride_timing=ride_timing,
            pickup_address="Harare Central",
            pickup_lat=-17.8292,
            pickup_lng=31.0522,
            dropoff_address="Avondale Shops",
            dropoff_lat=-17.8000,
            dropoff_lng=31.0400,
        )
        session.add(ride)
        await session.flush()

        seeded = SeededRide(ride_id=ride.id, passenger_id=passenger_id)
        for i, d in enumerate(driver_ids):
            offer = OfferModel(
                ride_id=ride.id,
                driver_id=d,
                quoted_price=10.0 + i,
                expires_at=expires_at,
            )
            session.add(offer)
            await session.flush()
            seeded.driver_ids.append(d)
            seeded.offer_ids.append(offer.id)

        await session.commit()
    return seeded


async def fetch_ride(session_factory, ride_id: uuid.UUID) -> RideModel:
    async with session_factory() as session:
        return await session.get(RideModel, ride_id)


async def fetch_offer_statuses(
    session_factory, ride_id: uuid.UUID
) -> dict[uuid.UUID, OfferStatus]:
    async with session_factory() as session:
        result = await session.execute(
            select(OfferModel).where(OfferModel.ride_id == ride_id)
        )
        return {o.id: OfferStatus(o.status) for o in result.scalars().all()}


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create tables in a fresh database file, then dispose the engine."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'offers.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def seeded(session_factory) -> SeededRide:
    """A requested ride with three pending offers from distinct drivers."""
    return await seed_ride(session_factory)


@pytest.fixture
def verifier(seeded) -> FakeIdentityVerifier:
    return FakeIdentityVerifier({"passenger-token": seeded.passenger_id})


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'offers.db'}",
        redis_url="redis://localhost:6379/15",
    )


@pytest.fixture
def app(app_settings, db_engine, verifier, notifier):
    from offer_resolution.api.app import create_app

    limiter.reset()
    return create_app(
        app_settings,
        engine=db_engine,
        identity_verifier=verifier,
        notifier=notifier,
    )


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
