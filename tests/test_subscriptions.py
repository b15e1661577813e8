"""Tests for snapshot channels and subscriptions."""

import asyncio

import pytest

from finanzas.services.storage import SnapshotChannel


class TestSnapshotChannel:
    def test_no_snapshot_no_delivery(self):
        channel = SnapshotChannel("cards")
        received = []
        channel.subscribe(received.append)
        assert received == []

    def test_current_snapshot_delivered_on_subscribe(self):
        channel = SnapshotChannel("cards", initial=["a"])
        received = []
        channel.subscribe(received.append)
        assert received == [["a"]]

    def test_every_publish_is_delivered(self):
        channel = SnapshotChannel("cards")
        received = []
        channel.subscribe(received.append)
        channel.publish([1])
        channel.publish([1, 2])
        assert received == [[1], [1, 2]]

    def test_none_is_a_valid_snapshot(self):
        channel = SnapshotChannel("profile")
        channel.publish(None)
        received = []
        channel.subscribe(received.append)
        assert received == [None]

    def test_cancel_is_idempotent(self):
        channel = SnapshotChannel("cards")
        received = []
        subscription = channel.subscribe(received.append)

        subscription.cancel()
        subscription.cancel()
        channel.publish(["late"])

        assert subscription.cancelled
        assert channel.subscriber_count == 0
        assert received == []

    def test_cancel_only_detaches_itself(self):
        channel = SnapshotChannel("cards")
        first, second = [], []
        sub_first = channel.subscribe(first.append)
        channel.subscribe(second.append)

        sub_first.cancel()
        channel.publish(["x"])

        assert first == []
        assert second == [["x"]]

    def test_failing_callback_does_not_block_others(self):
        channel = SnapshotChannel("cards")
        received = []

        def broken(snapshot):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        channel.publish(["x"])

        assert received == [["x"]]

    def test_close_cancels_everyone(self):
        channel = SnapshotChannel("cards")
        subscriptions = [channel.subscribe(lambda s: None) for _ in range(3)]
        channel.close()
        assert all(s.cancelled for s in subscriptions)
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_callback_subscription_cannot_stream(self):
        subscription = SnapshotChannel("cards").subscribe(lambda s: None)
        with pytest.raises(RuntimeError):
            async for _ in subscription.stream():
                pass


class TestStreams:
    @pytest.mark.asyncio
    async def test_stream_yields_snapshots_until_cancelled(self):
        channel = SnapshotChannel("transactions", initial=[])
        subscription = channel.subscribe()

        channel.publish(["t1"])
        channel.publish(["t1", "t2"])
        subscription.cancel()
        channel.publish(["ignored"])

        received = [snapshot async for snapshot in subscription.stream()]
        assert received == [[], ["t1"], ["t1", "t2"]]

    @pytest.mark.asyncio
    async def test_stream_waits_for_changes(self):
        channel = SnapshotChannel("cards")
        subscription = channel.subscribe()

        async def consume():
            return [snapshot async for snapshot in subscription.stream()]

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        channel.publish(["a"])
        await asyncio.sleep(0)
        subscription.cancel()

        assert await asyncio.wait_for(task, timeout=1) == [["a"]]
