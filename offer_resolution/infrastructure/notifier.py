"""
Notification dispatch.

Enqueues one JSON message per recipient onto a Redis list; the delivery
subsystem (push, in-app inbox) drains it.  From this service's point of
view a send is done once the message is on the list.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Protocol

import redis.asyncio as aioredis

from offer_resolution.domain.entities import Notification

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, notification: Notification) -> None: ...


def serialize(notification: Notification) -> str:
    return json.dumps(
        {
            "notification_id": str(uuid.uuid4()),
            "user_id": str(notification.recipient_id),
            "notification_type": notification.kind.value,
            "category": notification.category,
            "priority": notification.priority,
            "title": notification.title,
            "message": notification.message,
            "action_url": notification.action_url,
            "ride_id": str(notification.ride_id),
            "offer_id": str(notification.offer_id) if notification.offer_id else None,
            "context_data": notification.context,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
    )


class RedisNotifier:
    def __init__(self, client: aioredis.Redis, queue: str):
        self.redis = client
        self.queue = queue

    async def send(self, notification: Notification) -> None:
        await self.redis.rpush(self.queue, serialize(notification))
        logger.debug(
            "Queued %s notification for %s",
            notification.kind.value,
            notification.recipient_id,
        )
