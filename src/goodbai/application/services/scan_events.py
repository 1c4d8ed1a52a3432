"""In-process event channel turning orchestrator callbacks into a stream."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from goodbai.domain.entities import ScanProgress, ScanResult
from goodbai.domain.ports import IScanObserver

PROGRESS_EVENT = "progress"
RESULT_EVENT = "result"
DONE_EVENT = "done"


@dataclass(frozen=True)
class ScanEvent:
    """One message for stream consumers (SSE event name + JSON payload)."""

    event: str
    data: dict[str, Any]


# Hey future me - observers must never block the scan, so publishing is put_nowait on
# unbounded per-subscriber queues. Subscribers that join late miss earlier events, which
# is fine: the SSE route sends the current state snapshot first. After close() every
# subscriber (current and future) gets the final "done" event and its iterator ends.
class ScanEventChannel(IScanObserver):
    """Fan-out of scan progress/result events to any number of subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[ScanEvent]] = []
        self._final: ScanEvent | None = None

    @property
    def closed(self) -> bool:
        return self._final is not None

    def on_progress(self, progress: ScanProgress) -> None:
        self.publish(ScanEvent(PROGRESS_EVENT, progress.to_dict()))

    def on_result(self, result: ScanResult) -> None:
        self.publish(ScanEvent(RESULT_EVENT, result.to_dict()))

    def publish(self, event: ScanEvent) -> None:
        if self._final is not None:
            return
        for queue in self._subscribers:
            queue.put_nowait(event)

    def close(self, final_state: dict[str, Any]) -> None:
        """Send the terminal "done" event and stop accepting new events."""
        if self._final is not None:
            return
        self._final = ScanEvent(DONE_EVENT, final_state)
        for queue in self._subscribers:
            queue.put_nowait(self._final)

    async def subscribe(self) -> AsyncIterator[ScanEvent]:
        """Yield events until (and including) the "done" event."""
        if self._final is not None:
            yield self._final
            return

        queue: asyncio.Queue[ScanEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.event == DONE_EVENT:
                    return
        finally:
            self._subscribers.remove(queue)
