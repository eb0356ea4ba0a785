"""Tests for the persisted offline queue and its flush pass."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from kakeibo.client.connectivity import ConnectivityMonitor
from kakeibo.client.notifications import QUEUED_MESSAGE, SYNCED_MESSAGE
from kakeibo.client.offline_queue import OfflineQueue
from kakeibo.client.storage import MemoryStorage

DAY = 24 * 60 * 60


class ScriptedSender:
    """Replays outcomes keyed by URL; records every dispatch call."""

    def __init__(self, outcomes: dict[str, object] | None = None) -> None:
        self.outcomes = outcomes or {}
        self.calls: list[tuple[str, str, bool]] = []
        self.gate: asyncio.Event | None = None

    async def dispatch(self, url, *, method="GET", body=None, headers=None, queue_if_offline=True):
        self.calls.append((url, method, queue_if_offline))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.get(url, 200)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def queue(storage, connectivity, fake_clock, notifications) -> OfflineQueue:
    return OfflineQueue(storage, connectivity=connectivity, clock=fake_clock, notifier=notifications)


def _stored(storage: MemoryStorage) -> list[dict]:
    return json.loads(storage.get_item("offlineQueue") or "[]")


class TestEnqueue:
    def test_enqueue_persists_and_notifies(self, queue, storage, fake_clock, notifications) -> None:
        entry = queue.enqueue("/api/expenses", method="post", body='{"amount": 500}')

        assert entry.method == "POST"
        assert entry.timestamp == int(fake_clock.now * 1000)
        assert _stored(storage) == [
            {
                "url": "/api/expenses",
                "method": "POST",
                "body": '{"amount": 500}',
                "headers": {},
                "timestamp": entry.timestamp,
            }
        ]
        assert notifications.messages == [(QUEUED_MESSAGE, "warning")]

    def test_identical_requests_are_not_deduplicated(self, queue) -> None:
        queue.enqueue("/api/expenses", method="POST", body="{}")
        queue.enqueue("/api/expenses", method="POST", body="{}")

        assert len(queue) == 2

    def test_queue_is_reloaded_from_storage(self, queue, storage, connectivity) -> None:
        queue.enqueue("/api/goals", method="POST", body="{}")
        queue.enqueue("/api/goals/1", method="DELETE")

        reloaded = OfflineQueue(storage, connectivity=connectivity)

        assert [(e.url, e.method) for e in reloaded.pending] == [
            ("/api/goals", "POST"),
            ("/api/goals/1", "DELETE"),
        ]

    @pytest.mark.parametrize("raw", ["not json", '{"url": "x"}', '[{"url": "x"}]'])
    def test_corrupt_storage_yields_empty_queue(self, raw, connectivity) -> None:
        queue = OfflineQueue(MemoryStorage({"offlineQueue": raw}), connectivity=connectivity)

        assert len(queue) == 0

    def test_reads_millisecond_timestamps(self, connectivity) -> None:
        raw = json.dumps(
            [{"url": "/api/incomes", "method": "POST", "body": "{}", "headers": {}, "timestamp": 1700000000000}]
        )

        queue = OfflineQueue(MemoryStorage({"offlineQueue": raw}), connectivity=connectivity)

        assert queue.pending[0].timestamp == 1700000000000


class TestFlush:
    @pytest.mark.asyncio
    async def test_delivered_entries_are_removed_and_sync_notified(
        self, queue, storage, notifications
    ) -> None:
        sender = ScriptedSender()
        queue.bind(sender)
        queue.enqueue("/api/expenses", method="POST", body="{}")
        queue.enqueue("/api/incomes", method="POST", body="{}")

        result = await queue.flush()

        assert result.delivered == 2
        assert result.retained == 0
        assert len(queue) == 0
        assert _stored(storage) == []
        assert notifications.messages[-1] == (SYNCED_MESSAGE, "success")

    @pytest.mark.asyncio
    async def test_replay_preserves_order_and_disables_queueing(self, queue) -> None:
        sender = ScriptedSender()
        queue.bind(sender)
        for url in ["/api/a", "/api/b", "/api/c"]:
            queue.enqueue(url, method="POST")

        await queue.flush()

        assert sender.calls == [
            ("/api/a", "POST", False),
            ("/api/b", "POST", False),
            ("/api/c", "POST", False),
        ]

    @pytest.mark.asyncio
    async def test_failures_are_retained_unchanged(self, queue, storage, fake_clock, notifications) -> None:
        sender = ScriptedSender(
            {
                "/api/down": httpx.ConnectError("refused"),
                "/api/busy": 503,
                "/api/limited": 429,
            }
        )
        queue.bind(sender)
        for url in ["/api/ok", "/api/down", "/api/busy", "/api/limited", "/api/ok2"]:
            queue.enqueue(url, method="POST", body=url)
        before = {e.url: e for e in queue.pending}
        fake_clock.advance(60)

        result = await queue.flush()

        assert result.delivered == 2
        assert result.retained == 3
        assert [e.url for e in queue.pending] == ["/api/down", "/api/busy", "/api/limited"]
        for entry in queue.pending:
            assert entry == before[entry.url]
        assert [item["url"] for item in _stored(storage)] == ["/api/down", "/api/busy", "/api/limited"]
        assert (SYNCED_MESSAGE, "success") not in notifications.messages

    @pytest.mark.asyncio
    async def test_client_errors_count_as_delivered(self, queue) -> None:
        queue.bind(ScriptedSender({"/api/bad": 400}))
        queue.enqueue("/api/bad", method="POST", body="{}")

        result = await queue.flush()

        assert result.delivered == 1
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_failed_entries_older_than_a_day_are_discarded(
        self, queue, fake_clock, notifications
    ) -> None:
        queue.bind(ScriptedSender({"/api/old": httpx.ConnectError("refused"), "/api/new": httpx.ConnectError("refused")}))
        queue.enqueue("/api/old", method="POST")
        fake_clock.advance(DAY - 10)
        queue.enqueue("/api/new", method="POST")
        fake_clock.advance(20)

        result = await queue.flush()

        assert result.discarded == 1
        assert result.retained == 1
        assert [e.url for e in queue.pending] == ["/api/new"]
        assert notifications.levels[-1] == "error"

    @pytest.mark.asyncio
    async def test_stale_entry_that_succeeds_is_removed(self, queue, fake_clock) -> None:
        queue.bind(ScriptedSender())
        queue.enqueue("/api/old", method="POST")
        fake_clock.advance(2 * DAY)

        result = await queue.flush()

        assert result.delivered == 1
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_the_pass(self, queue) -> None:
        sender = ScriptedSender({"/api/first": RuntimeError("boom")})
        queue.bind(sender)
        queue.enqueue("/api/first", method="POST")
        queue.enqueue("/api/second", method="POST")

        result = await queue.flush()

        assert [c[0] for c in sender.calls] == ["/api/first", "/api/second"]
        assert result.delivered == 1
        assert result.retained == 1


class TestFlushGuards:
    @pytest.mark.asyncio
    async def test_empty_queue_is_skipped(self, queue, notifications) -> None:
        queue.bind(ScriptedSender())

        result = await queue.flush()

        assert result.skipped is True
        assert notifications.messages == []

    @pytest.mark.asyncio
    async def test_offline_flush_is_skipped(self, queue, connectivity) -> None:
        sender = ScriptedSender()
        queue.bind(sender)
        queue.enqueue("/api/expenses", method="POST")
        await connectivity.set_online(False)

        result = await queue.flush()

        assert result.skipped is True
        assert sender.calls == []
        assert len(queue) == 1

    @pytest.mark.asyncio
    async def test_flush_before_bind_raises(self, queue) -> None:
        queue.enqueue("/api/expenses", method="POST")

        with pytest.raises(RuntimeError):
            await queue.flush()

    @pytest.mark.asyncio
    async def test_concurrent_flush_is_a_noop(self, queue) -> None:
        sender = ScriptedSender()
        sender.gate = asyncio.Event()
        queue.bind(sender)
        queue.enqueue("/api/expenses", method="POST")

        first = asyncio.create_task(queue.flush())
        await asyncio.sleep(0)
        assert queue.flushing is True

        second = await queue.flush()
        sender.gate.set()
        first_result = await first

        assert second.skipped is True
        assert first_result.delivered == 1
        assert len(sender.calls) == 1
        assert queue.flushing is False

    @pytest.mark.asyncio
    async def test_flag_is_cleared_when_persisting_fails(self, connectivity) -> None:
        class FailingStorage(MemoryStorage):
            fail = False

            def set_item(self, key, value):
                if self.fail:
                    raise OSError("disk full")
                super().set_item(key, value)

        storage = FailingStorage()
        queue = OfflineQueue(storage, connectivity=connectivity)
        queue.bind(ScriptedSender())
        queue.enqueue("/api/expenses", method="POST")
        storage.fail = True

        with pytest.raises(OSError):
            await queue.flush()

        assert queue.flushing is False

    @pytest.mark.asyncio
    async def test_requests_queued_during_flush_are_kept_after_retained(
        self, queue, connectivity
    ) -> None:
        sender = ScriptedSender({"/api/fails": httpx.ConnectError("refused")})
        sender.gate = asyncio.Event()
        queue.bind(sender)
        queue.enqueue("/api/fails", method="POST")

        task = asyncio.create_task(queue.flush())
        await asyncio.sleep(0)
        queue.enqueue("/api/late", method="POST")
        sender.gate.set()
        await task

        assert [e.url for e in queue.pending] == ["/api/fails", "/api/late"]


class TestOnlineSubscription:
    @pytest.mark.asyncio
    async def test_coming_online_triggers_flush(self, queue, connectivity) -> None:
        sender = ScriptedSender()
        queue.bind(sender)
        queue.subscribe_to(connectivity)
        await connectivity.set_online(False)
        queue.enqueue("/api/expenses", method="POST")

        await connectivity.set_online(True)

        assert len(sender.calls) == 1
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_cancelled_subscription_stops_flushing(self, queue, connectivity) -> None:
        sender = ScriptedSender()
        queue.bind(sender)
        subscription = queue.subscribe_to(connectivity)
        await connectivity.set_online(False)
        queue.enqueue("/api/expenses", method="POST")

        subscription.cancel()
        await connectivity.set_online(True)

        assert sender.calls == []
        assert len(queue) == 1
