"""Background scan tasks keyed by scan id, one active scan per owner."""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field

from goodbai.application.services.scan_events import ScanEventChannel
from goodbai.application.services.scan_orchestrator import (
    CancellationToken,
    ScanOptions,
    ScanOrchestrator,
)
from goodbai.domain.entities import ScanState, summarize_results
from goodbai.domain.exceptions import ScanNotFound
from goodbai.domain.ports import ITrackSource
from goodbai.infrastructure.observability.logging import set_scan_id

logger = logging.getLogger(__name__)


@dataclass
class ScanSession:
    """A scan run plus everything needed to observe and stop it."""

    scan_id: str
    owner: str
    state: ScanState
    token: CancellationToken = field(default_factory=CancellationToken)
    events: ScanEventChannel = field(default_factory=ScanEventChannel)
    task: asyncio.Task[None] | None = None
    finished_at: float | None = None
    # Reads the scan client's current refresh token, which Spotify may rotate mid-scan
    refresh_token_source: Callable[[], str | None] | None = None

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    def snapshot(self) -> dict:
        data = self.state.to_dict()
        data["scan_id"] = self.scan_id
        data["stats"] = summarize_results(self.state.results).to_dict()
        return data


# Listen up future me: "one scan per owner" is what keeps the live capture device from being
# shared by two scans. Starting a scan first stops the owner's previous one AND waits for it,
# so its finally-blocks (device release, client close) have run before the new scan begins.
# The stop is cooperative first (token), and only hard-cancels after stop_timeout.
#
# Finished sessions stay readable (results, selection, removal) until the consumer discards
# them, they outlive session_ttl, or the map grows past max_sessions. Eviction only ever
# drops FINISHED sessions, oldest first; running scans are never evicted.
class ScanSessionManager:
    """Starts, tracks, cancels and tears down scan tasks."""

    def __init__(
        self,
        stop_timeout: float = 10.0,
        session_ttl: float = 3600.0,
        max_sessions: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stop_timeout = stop_timeout
        self._session_ttl = session_ttl
        self._max_sessions = max_sessions
        self._clock = clock
        self._sessions: dict[str, ScanSession] = {}
        self._by_owner: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def start(
        self,
        owner: str,
        orchestrator: ScanOrchestrator,
        playlist_id: str,
        options: ScanOptions | None = None,
        on_finished: Callable[[], Awaitable[None]] | None = None,
        refresh_token_source: Callable[[], str | None] | None = None,
    ) -> ScanSession:
        """Stop the owner's previous scan, then start a new one in the background."""
        async with self._lock:
            self._evict_finished()
            previous_id = self._by_owner.pop(owner, None)
            if previous_id is not None:
                previous = self._sessions.pop(previous_id, None)
                if previous is not None:
                    logger.info("Replacing scan %s for new scan request", previous_id)
                    await self._stop(previous)

            session = ScanSession(
                scan_id=uuid.uuid4().hex[:12],
                owner=owner,
                state=ScanState(playlist_id=playlist_id),
                refresh_token_source=refresh_token_source,
            )
            session.task = asyncio.create_task(
                self._run(session, orchestrator, options or ScanOptions(), on_finished),
                name=f"scan-{session.scan_id}",
            )
            self._sessions[session.scan_id] = session
            self._by_owner[owner] = session.scan_id
            return session

    async def _run(
        self,
        session: ScanSession,
        orchestrator: ScanOrchestrator,
        options: ScanOptions,
        on_finished: Callable[[], Awaitable[None]] | None,
    ) -> None:
        # Tasks copy the context, so this only tags log lines of THIS scan
        set_scan_id(session.scan_id)
        try:
            await orchestrator.run(
                session.state.playlist_id,
                options,
                observer=session.events,
                token=session.token,
                state=session.state,
            )
        finally:
            session.finished_at = self._clock()
            session.events.close(session.snapshot())
            if on_finished is not None:
                try:
                    await on_finished()
                except Exception:
                    logger.warning("Scan cleanup failed", exc_info=True)
            self._evict_finished()

    async def _stop(self, session: ScanSession) -> None:
        session.token.cancel()
        task = session.task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._stop_timeout)
        except TimeoutError:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    def _forget(self, session: ScanSession) -> None:
        self._sessions.pop(session.scan_id, None)
        if self._by_owner.get(session.owner) == session.scan_id:
            del self._by_owner[session.owner]

    def _evict_finished(self) -> None:
        finished = sorted(
            (s for s in self._sessions.values() if s.finished_at is not None),
            key=lambda s: s.finished_at or 0.0,
        )
        now = self._clock()
        overflow = len(self._sessions) - self._max_sessions
        for session in finished:
            expired = now - (session.finished_at or now) >= self._session_ttl
            if not expired and overflow <= 0:
                break
            self._forget(session)
            overflow -= 1
            logger.debug("Evicted finished scan %s", session.scan_id)

    def get(self, scan_id: str) -> ScanSession:
        self._evict_finished()
        session = self._sessions.get(scan_id)
        if session is None:
            raise ScanNotFound(scan_id)
        return session

    def cancel(self, scan_id: str) -> ScanSession:
        """Request cooperative cancellation; the scan stops before its next track."""
        session = self.get(scan_id)
        session.token.cancel()
        logger.info("Cancellation requested for scan %s", scan_id)
        return session

    async def discard(self, scan_id: str) -> None:
        """Tear a scan down: stop it if it is still running and drop its results.

        Raises:
            ScanNotFound: If no such scan is held
        """
        async with self._lock:
            session = self.get(scan_id)
            self._forget(session)
        await self._stop(session)
        logger.info("Discarded scan %s", scan_id)

    async def remove_selected(self, scan_id: str, track_source: ITrackSource) -> list[str]:
        """Remove the selected tracks upstream, then drop them from the result set.

        Returns:
            The removed track URIs
        """
        session = self.get(scan_id)
        uris = session.state.selected_uris()
        if not uris:
            return []
        await track_source.remove_tracks(session.state.playlist_id, uris)
        session.state.drop_results(uris)
        logger.info("Removed %d tracks from %s", len(uris), session.state.playlist_id)
        return uris

    async def shutdown(self) -> None:
        """Stop every running scan (app shutdown)."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._by_owner.clear()
        for session in sessions:
            await self._stop(session)
