"""
Redis lease for single-holder background jobs.

The offer expiry worker wraps each sweep in ``async with
DistributedLock(...)`` so that when several API processes run the
worker, a given sweep happens in exactly one of them.  The lease lapses
on its own after ``ttl_seconds`` if its holder dies mid-sweep.

Taking the lease is ``SET key owner NX EX ttl``; giving it back deletes
the key only while it still names this owner, so a holder whose lease
already lapsed never frees someone else's.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

# KEYS[1] = lease key, ARGV[1] = owner token
_DELETE_IF_OWNER = (
    "if redis.call('get', KEYS[1]) == ARGV[1] "
    "then return redis.call('del', KEYS[1]) else return 0 end"
)


class LockNotAcquired(RuntimeError):
    """The lease is currently held by another owner."""


class DistributedLock:
    key_prefix = "lock:"

    def __init__(
        self, client: aioredis.Redis, name: str, ttl_seconds: int = 30
    ):
        self.client = client
        self.key = self.key_prefix + name
        self.ttl_seconds = ttl_seconds
        self.token = uuid.uuid4().hex

    async def acquire(self) -> bool:
        taken = await self.client.set(
            self.key, self.token, nx=True, ex=self.ttl_seconds
        )
        return bool(taken)

    async def release(self) -> bool:
        """Give the lease back; False if it had already lapsed or moved on."""
        deleted = await self.client.eval(_DELETE_IF_OWNER, 1, self.key, self.token)
        return deleted == 1

    async def __aenter__(self) -> "DistributedLock":
        if await self.acquire():
            return self
        raise LockNotAcquired(f"Could not acquire lock: {self.key}")

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()
