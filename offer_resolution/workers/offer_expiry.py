"""
Background Offer Expiry Worker
==============================

Runs every ``offer_expiry_interval_seconds`` (default 30 s) and moves
pending offers whose ``expires_at`` has passed to EXPIRED.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance runs the sweep at
  a time across multiple API processes.
* The sweep itself is a single compare-and-swap UPDATE on
  ``status = 'pending'``; an offer accepted in the same instant is
  either accepted or expired, never both.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_resolution.domain.entities import utcnow
from offer_resolution.infrastructure.locks import DistributedLock, LockNotAcquired
from offer_resolution.infrastructure.repositories import OfferRepository

logger = logging.getLogger(__name__)


class OfferExpiryWorker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis: aioredis.Redis,
        *,
        interval_seconds: int = 30,
        clock: Callable = utcnow,
    ):
        self.session_factory = session_factory
        self.redis = redis
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    # ── Public API ────────────────────────────────────────────────────

    async def start(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Offer expiry worker started (interval=%ds)", self.interval_seconds
        )

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Offer expiry worker stopped")

    async def run_cycle(self) -> int:
        """Execute one sweep.  Returns the number of offers expired."""
        lock = DistributedLock(
            self.redis, "offer_expiry", ttl_seconds=max(self.interval_seconds, 10)
        )
        try:
            async with lock:
                expired = await self._expire_stale()
        except LockNotAcquired:
            logger.debug("Lock held by another worker - skipping sweep")
            return 0

        if expired:
            logger.info("Offer expiry sweep: %d offers expired", expired)
        return expired

    # ── Internals ─────────────────────────────────────────────────────

    async def _expire_stale(self) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                return await OfferRepository(session).expire_stale(self.clock())

    async def _loop(self) -> None:
        """Periodic loop: run a sweep then sleep."""
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Unhandled error in offer expiry sweep")
            # Wait for the interval or until stop is signalled
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_seconds
                )
                break
            except asyncio.TimeoutError:
                pass
