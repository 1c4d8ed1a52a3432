"""Tests for the scan event channel and the session manager."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from goodbai.application.services.scan_events import (
    DONE_EVENT,
    PROGRESS_EVENT,
    RESULT_EVENT,
    ScanEventChannel,
)
from goodbai.application.services.scan_orchestrator import ScanOptions
from goodbai.application.services.scan_sessions import ScanSessionManager
from goodbai.domain.entities import ScanProgress, ScanResult, ScanState, ScanStatus
from goodbai.domain.exceptions import ScanNotFound


class StubOrchestrator:
    """Orchestrator double; blocks until released when asked to."""

    def __init__(self, block: bool = False) -> None:
        self.release = asyncio.Event()
        if not block:
            self.release.set()
        self.track_source = MagicMock()

    async def run(self, playlist_id, options=None, observer=None, token=None, state=None):
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            state.cancelled = True
            state.status = ScanStatus.COMPLETE
            raise
        state.status = ScanStatus.COMPLETE
        state.cancelled = token.cancelled
        return state


class TestScanEventChannel:
    """Test fan-out to subscribers."""

    async def test_subscriber_receives_events_until_done(self, make_track):
        channel = ScanEventChannel()
        received: list[str] = []

        async def consume():
            async for event in channel.subscribe():
                received.append(event.event)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)

        channel.on_progress(ScanProgress(total_tracks=1))
        channel.on_result(ScanResult(track=make_track("t1")))
        channel.close({"status": "complete"})
        await asyncio.wait_for(consumer, timeout=1)

        assert received == [PROGRESS_EVENT, RESULT_EVENT, DONE_EVENT]

    async def test_late_subscriber_gets_final_event(self):
        channel = ScanEventChannel()
        channel.close({"status": "complete"})

        events = [event async for event in channel.subscribe()]

        assert len(events) == 1
        assert events[0].event == DONE_EVENT
        assert events[0].data == {"status": "complete"}

    async def test_publish_after_close_is_dropped(self):
        channel = ScanEventChannel()
        channel.close({})
        channel.on_progress(ScanProgress())

        assert channel.closed
        assert [e.event async for e in channel.subscribe()] == [DONE_EVENT]


class TestScanSessionManager:
    """Test scan lifecycle management."""

    async def test_start_runs_in_background(self):
        manager = ScanSessionManager()
        on_finished = AsyncMock()

        session = await manager.start("owner", StubOrchestrator(), "pl", on_finished=on_finished)
        await session.task

        assert manager.get(session.scan_id) is session
        assert session.state.status == ScanStatus.COMPLETE
        assert session.events.closed
        assert not session.is_running
        on_finished.assert_awaited_once()

    async def test_snapshot_includes_stats(self, make_track):
        manager = ScanSessionManager()
        session = await manager.start("owner", StubOrchestrator(), "pl")
        await session.task
        session.state.results = [ScanResult.from_blocklist(make_track("t1"), ["X"])]

        snapshot = session.snapshot()

        assert snapshot["scan_id"] == session.scan_id
        assert snapshot["stats"]["high"] == 1
        assert snapshot["results"][0]["track_id"] == "t1"

    async def test_new_scan_replaces_previous_for_owner(self):
        """Test that a second scan cancels the first, hard-cancelling after the timeout."""
        manager = ScanSessionManager(stop_timeout=0.05)
        first_finished = AsyncMock()
        first = await manager.start(
            "owner", StubOrchestrator(block=True), "pl-1", on_finished=first_finished
        )
        await asyncio.sleep(0)

        second = await manager.start("owner", StubOrchestrator(), "pl-2")

        assert first.task.done()
        assert first.token.cancelled
        assert first.state.cancelled
        assert first.events.closed
        first_finished.assert_awaited_once()
        with pytest.raises(ScanNotFound):
            manager.get(first.scan_id)
        assert manager.get(second.scan_id) is second
        await second.task

    async def test_different_owners_run_side_by_side(self):
        manager = ScanSessionManager(stop_timeout=0.05)
        a = await manager.start("a", StubOrchestrator(block=True), "pl")
        b = await manager.start("b", StubOrchestrator(block=True), "pl")

        assert a.is_running
        assert b.is_running

        await manager.shutdown()
        assert not a.is_running
        assert not b.is_running

    async def test_cooperative_cancel(self):
        manager = ScanSessionManager()
        orchestrator = StubOrchestrator(block=True)
        session = await manager.start("owner", orchestrator, "pl")

        manager.cancel(session.scan_id)
        orchestrator.release.set()
        await session.task

        assert session.token.cancelled
        assert session.state.cancelled

    async def test_unknown_scan(self):
        manager = ScanSessionManager()

        with pytest.raises(ScanNotFound):
            manager.get("nope")
        with pytest.raises(ScanNotFound):
            manager.cancel("nope")

    async def test_remove_selected(self, make_track):
        manager = ScanSessionManager()
        session = await manager.start("owner", StubOrchestrator(), "pl", ScanOptions())
        await session.task
        session.state.results = [
            ScanResult.from_blocklist(make_track("t1"), ["X"]),
            ScanResult(track=make_track("t2")),
        ]
        session.state.select_all_flagged()
        track_source = MagicMock()
        track_source.remove_tracks = AsyncMock()

        removed = await manager.remove_selected(session.scan_id, track_source)

        assert removed == ["spotify:track:t1"]
        track_source.remove_tracks.assert_awaited_once_with("pl", ["spotify:track:t1"])
        assert [r.track_id for r in session.state.results] == ["t2"]

    async def test_remove_nothing_selected(self):
        manager = ScanSessionManager()
        session = await manager.start("owner", StubOrchestrator(), "pl")
        await session.task
        session.state = ScanState(playlist_id="pl")
        track_source = MagicMock()
        track_source.remove_tracks = AsyncMock()

        assert await manager.remove_selected(session.scan_id, track_source) == []
        track_source.remove_tracks.assert_not_awaited()


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestSessionRetention:
    """Test that finished sessions do not pile up."""

    async def test_finished_sessions_capped(self):
        """Test that fifty finished scans from fifty logins keep at most max_sessions."""
        manager = ScanSessionManager(max_sessions=10)

        sessions = [
            await manager.start(f"owner-{i}", StubOrchestrator(), "pl") for i in range(50)
        ]
        await asyncio.gather(*(s.task for s in sessions))

        assert len(manager._sessions) <= 10
        assert len(manager._by_owner) <= 10
        # the most recent scans are the ones kept
        assert manager.get(sessions[-1].scan_id) is sessions[-1]
        with pytest.raises(ScanNotFound):
            manager.get(sessions[0].scan_id)

    async def test_finished_session_expires_after_ttl(self):
        clock = FakeClock()
        manager = ScanSessionManager(session_ttl=60.0, clock=clock)
        session = await manager.start("owner", StubOrchestrator(), "pl")
        await session.task

        clock.now += 59.0
        assert manager.get(session.scan_id) is session

        clock.now += 1.0
        with pytest.raises(ScanNotFound):
            manager.get(session.scan_id)
        assert manager._by_owner == {}

    async def test_running_sessions_never_evicted(self):
        clock = FakeClock()
        manager = ScanSessionManager(
            stop_timeout=0.05, session_ttl=1.0, max_sessions=1, clock=clock
        )
        a = await manager.start("a", StubOrchestrator(block=True), "pl")
        b = await manager.start("b", StubOrchestrator(block=True), "pl")
        clock.now += 100.0

        assert manager.get(a.scan_id) is a
        assert manager.get(b.scan_id) is b

        await manager.shutdown()


class TestDiscard:
    """Test consumer-initiated teardown."""

    async def test_discard_finished_scan(self):
        manager = ScanSessionManager()
        session = await manager.start("owner", StubOrchestrator(), "pl")
        await session.task

        await manager.discard(session.scan_id)

        with pytest.raises(ScanNotFound):
            manager.get(session.scan_id)
        assert manager._sessions == {}
        assert manager._by_owner == {}

    async def test_discard_running_scan_stops_it(self):
        manager = ScanSessionManager(stop_timeout=0.05)
        on_finished = AsyncMock()
        session = await manager.start(
            "owner", StubOrchestrator(block=True), "pl", on_finished=on_finished
        )
        await asyncio.sleep(0)

        await manager.discard(session.scan_id)

        assert session.task.done()
        assert session.token.cancelled
        assert session.events.closed
        on_finished.assert_awaited_once()
        with pytest.raises(ScanNotFound):
            manager.get(session.scan_id)

    async def test_discard_unknown(self):
        with pytest.raises(ScanNotFound):
            await ScanSessionManager().discard("nope")
