"""
Notification fan-out for accepted offers.

Runs after the acceptance transaction has committed.  The passenger gets
one "driver assigned" notification and every rejected driver one "offer
lost" notification.  Sends run concurrently; each is bounded by a
timeout and its failure is logged and dropped.  Nothing here can change
the outcome already reported for the acceptance itself.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from offer_resolution.domain.entities import AcceptanceResult, Notification
from offer_resolution.domain.enums import NotificationKind
from offer_resolution.infrastructure.notifier import Notifier

logger = logging.getLogger(__name__)


def build_notifications(
    result: AcceptanceResult,
    passenger_id: uuid.UUID,
    dropoff_text: Optional[str] = None,
) -> list[Notification]:
    if not result.success or result.ride_id is None:
        return []

    destination = dropoff_text or "your destination"
    notifications = [
        Notification(
            recipient_id=passenger_id,
            kind=NotificationKind.OFFER_ACCEPTED,
            title="Driver assigned",
            message=f"A driver has been assigned to your ride to {destination}.",
            action_url=f"/user/rides/{result.ride_id}",
            ride_id=result.ride_id,
            offer_id=result.offer_id,
            context={"driver_id": str(result.driver_id)},
        )
    ]

    destination = dropoff_text or "the destination"
    for driver_id in result.rejected_driver_ids:
        if driver_id == result.driver_id:
            continue
        notifications.append(
            Notification(
                recipient_id=driver_id,
                kind=NotificationKind.OFFER_REJECTED,
                title="Ride accepted by another driver",
                message=f"The ride to {destination} has been accepted by another driver.",
                action_url="/driver/rides?tab=available",
                ride_id=result.ride_id,
                offer_id=result.offer_id,
            )
        )
    return notifications


class NotificationFanout:
    def __init__(self, notifier: Notifier, *, timeout_seconds: float = 5.0):
        self.notifier = notifier
        self.timeout_seconds = timeout_seconds

    async def broadcast(
        self,
        result: AcceptanceResult,
        passenger_id: uuid.UUID,
        dropoff_text: Optional[str] = None,
    ) -> int:
        """Send every notification for *result*. Returns how many were queued."""
        notifications = build_notifications(result, passenger_id, dropoff_text)
        if not notifications:
            return 0

        outcomes = await asyncio.gather(
            *(self._send_one(n) for n in notifications)
        )
        delivered = sum(outcomes)
        if delivered < len(notifications):
            logger.warning(
                "Ride %s: %d of %d notifications not queued",
                result.ride_id,
                len(notifications) - delivered,
                len(notifications),
            )
        return delivered

    async def _send_one(self, notification: Notification) -> bool:
        try:
            await asyncio.wait_for(
                self.notifier.send(notification), timeout=self.timeout_seconds
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out sending %s notification to %s (ride %s)",
                notification.kind.value,
                notification.recipient_id,
                notification.ride_id,
            )
        except Exception as exc:
            logger.warning(
                "Failed to send %s notification to %s (ride %s): %s",
                notification.kind.value,
                notification.recipient_id,
                notification.ride_id,
                exc,
            )
        return False
