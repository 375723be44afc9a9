"""Unit tests for notification fan-out and the Redis notifier."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from unittest.mock import AsyncMock

import pytest

from offer_resolution.domain.entities import AcceptanceResult, Notification
from offer_resolution.domain.enums import NotificationKind
from offer_resolution.domain.errors import ErrorKind
from offer_resolution.infrastructure.notifier import RedisNotifier, serialize
from offer_resolution.services.fanout import NotificationFanout, build_notifications
from tests.conftest import RecordingNotifier


def make_result(rejected=2, **overrides) -> AcceptanceResult:
    fields = dict(
        success=True,
        ride_id=uuid.uuid4(),
        driver_id=uuid.uuid4(),
        offer_id=uuid.uuid4(),
        rejected_driver_ids=tuple(uuid.uuid4() for _ in range(rejected)),
    )
    fields.update(overrides)
    return AcceptanceResult(**fields)


class TestBuildNotifications:
    def test_one_for_passenger_and_one_per_rejected_driver(self):
        passenger = uuid.uuid4()
        result = make_result(rejected=3)

        notes = build_notifications(result, passenger, "Airport")

        assert len(notes) == 4
        first, *rest = notes
        assert first.recipient_id == passenger
        assert first.kind == NotificationKind.OFFER_ACCEPTED
        assert first.message == "A driver has been assigned to your ride to Airport."
        assert first.action_url == f"/user/rides/{result.ride_id}"
        assert first.context == {"driver_id": str(result.driver_id)}

        assert [n.recipient_id for n in rest] == list(result.rejected_driver_ids)
        for n in rest:
            assert n.kind == NotificationKind.OFFER_REJECTED
            assert n.message == "The ride to Airport has been accepted by another driver."
            assert n.action_url == "/driver/rides?tab=available"
            assert n.ride_id == result.ride_id

    def test_destination_fallback(self):
        notes = build_notifications(make_result(rejected=1), uuid.uuid4())
        assert notes[0].message.endswith("your destination.")
        assert "the destination" in notes[1].message

    def test_winner_is_never_told_it_lost(self):
        winner = uuid.uuid4()
        loser = uuid.uuid4()
        result = make_result(driver_id=winner, rejected_driver_ids=(loser, winner))

        notes = build_notifications(result, uuid.uuid4())

        assert winner not in {n.recipient_id for n in notes}
        assert len(notes) == 2

    def test_failed_result_sends_nothing(self):
        result = AcceptanceResult.failure(ErrorKind.CONFLICT, "nope")
        assert build_notifications(result, uuid.uuid4()) == []


class TestNotificationFanout:
    @pytest.mark.asyncio
    async def test_broadcast_sends_everything(self):
        notifier = RecordingNotifier()
        fanout = NotificationFanout(notifier)

        delivered = await fanout.broadcast(make_result(rejected=2), uuid.uuid4())

        assert delivered == 3
        assert len(notifier.sent) == 3

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_others(self, caplog):
        result = make_result(rejected=3)
        broken = result.rejected_driver_ids[1]
        notifier = RecordingNotifier(fail_for={broken})
        fanout = NotificationFanout(notifier)

        with caplog.at_level(logging.WARNING):
            delivered = await fanout.broadcast(result, uuid.uuid4())

        assert delivered == 3
        assert broken not in {n.recipient_id for n in notifier.sent}
        assert "push gateway unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_slow_send_is_abandoned(self):
        result = make_result(rejected=1)
        slow_driver = result.rejected_driver_ids[0]
        sent = []

        class SlowNotifier:
            async def send(self, notification):
                if notification.recipient_id == slow_driver:
                    await asyncio.sleep(5)
                sent.append(notification)

        fanout = NotificationFanout(SlowNotifier(), timeout_seconds=0.05)
        delivered = await fanout.broadcast(result, uuid.uuid4())

        assert delivered == 1
        assert [n.kind for n in sent] == [NotificationKind.OFFER_ACCEPTED]

    @pytest.mark.asyncio
    async def test_failed_result_broadcasts_nothing(self):
        notifier = RecordingNotifier()
        fanout = NotificationFanout(notifier)

        result = AcceptanceResult.failure(ErrorKind.ALREADY_RESOLVED, "done")
        assert await fanout.broadcast(result, uuid.uuid4()) == 0
        assert notifier.sent == []


class TestRedisNotifier:
    @pytest.mark.asyncio
    async def test_send_pushes_json_onto_queue(self):
        redis = AsyncMock()
        notifier = RedisNotifier(redis, "notifications:outbox")
        note = Notification(
            recipient_id=uuid.uuid4(),
            kind=NotificationKind.OFFER_REJECTED,
            title="Ride accepted by another driver",
            message="The ride to Airport has been accepted by another driver.",
            action_url="/driver/rides?tab=available",
            ride_id=uuid.uuid4(),
            offer_id=uuid.uuid4(),
        )

        await notifier.send(note)

        redis.rpush.assert_awaited_once()
        queue, raw = redis.rpush.await_args.args
        assert queue == "notifications:outbox"
        payload = json.loads(raw)
        assert payload["user_id"] == str(note.recipient_id)
        assert payload["notification_type"] == "offer_rejected"
        assert payload["category"] == "offers"
        assert payload["priority"] == "normal"
        assert payload["ride_id"] == str(note.ride_id)
        assert payload["offer_id"] == str(note.offer_id)
        assert payload["action_url"] == "/driver/rides?tab=available"

    def test_serialize_without_offer(self):
        note = Notification(
            recipient_id=uuid.uuid4(),
            kind=NotificationKind.OFFER_ACCEPTED,
            title="Driver assigned",
            message="A driver has been assigned to your ride to Airport.",
            action_url="/user/rides/x",
            ride_id=uuid.uuid4(),
            context={"driver_id": "abc"},
        )
        payload = json.loads(serialize(note))
        assert payload["offer_id"] is None
        assert payload["context_data"] == {"driver_id": "abc"}
        uuid.UUID(payload["notification_id"])
