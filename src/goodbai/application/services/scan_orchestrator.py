"""Two-phase playlist scan: blocklist pass, then per-track audio analysis."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass

import numpy as np

from goodbai.application.services.audio_source_resolver import AudioSourceResolver
from goodbai.application.services.blocklist_matcher import BlocklistMatcher
from goodbai.application.services.inference_queue import InferenceQueue
from goodbai.domain.entities import (
    AudioSource,
    ScanPhase,
    ScanProgress,
    ScanResult,
    ScanState,
    ScanStatus,
    Track,
)
from goodbai.domain.exceptions import DomainException
from goodbai.domain.ports import (
    IAudioDecoder,
    IAudioFetcher,
    ILiveCaptureDevice,
    IScanObserver,
    ITrackSource,
)
from goodbai.infrastructure.observability.log_messages import LogMessages

logger = logging.getLogger(__name__)

DEFAULT_TRACK_DELAY_SECONDS = 0.2
DEFAULT_CAPTURE_DURATION_MS = 6000


@dataclass(frozen=True)
class ScanOptions:
    """Per-scan feature switches."""

    enable_audio_analysis: bool = True
    enable_fallback_preview: bool = True
    enable_live_capture: bool = False


class CancellationToken:
    """Cooperative cancellation flag shared between the scan and whoever may stop it."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class NullScanObserver(IScanObserver):
    """Observer that drops everything."""

    def on_progress(self, progress: ScanProgress) -> None:
        pass

    def on_result(self, result: ScanResult) -> None:
        pass


def unique_tracks(tracks: list[Track]) -> list[Track]:
    """Drop repeated track ids, keeping the first occurrence and playlist order."""
    seen: set[str] = set()
    unique: list[Track] = []
    for track in tracks:
        if track.id in seen:
            continue
        seen.add(track.id)
        unique.append(track)
    return unique


# Hey future me - this is THE scan state machine:
#
#   idle -> loading_tracks -> scanning(blocklist) -> scanning(audio) -> complete
#                 \________________ error _______________/
#
# Rules that are easy to break when touching this:
# - A failure while LISTING tracks is list-level: status=error, no results at all.
# - A failure on ONE track is per-track: logged, track keeps its blocklist result, loop goes on.
# - Cancellation is cooperative: checked before each audio track. The track in flight is
#   allowed to finish. Cancelled scans end as COMPLETE with cancelled=True, never "scanning".
# - The live capture device is released exactly once, in the finally of the audio phase.
# - No loadable classifier means no audio phase at all (checked once, before the loop).
# - flagged_count only grows when a result FIRST becomes high/medium.
class ScanOrchestrator:
    """Runs one scan at a time over injected collaborators.

    Build one per scan (the track source carries the user's token). The inference queue,
    resolver and fetcher are safe to share between orchestrators.
    """

    def __init__(
        self,
        track_source: ITrackSource,
        blocklist: BlocklistMatcher,
        resolver: AudioSourceResolver,
        audio_fetcher: IAudioFetcher,
        decoder: IAudioDecoder,
        inference: InferenceQueue,
        live_capture_factory: Callable[[], ILiveCaptureDevice] | None = None,
        track_delay_seconds: float = DEFAULT_TRACK_DELAY_SECONDS,
        capture_duration_ms: int = DEFAULT_CAPTURE_DURATION_MS,
    ) -> None:
        self.track_source = track_source
        self._blocklist = blocklist
        self._resolver = resolver
        self._audio_fetcher = audio_fetcher
        self._decoder = decoder
        self._inference = inference
        self._live_capture_factory = live_capture_factory
        self._track_delay = track_delay_seconds
        self._capture_duration_ms = capture_duration_ms

    async def run(
        self,
        playlist_id: str,
        options: ScanOptions | None = None,
        observer: IScanObserver | None = None,
        token: CancellationToken | None = None,
        state: ScanState | None = None,
    ) -> ScanState:
        """Scan a playlist and return the final state.

        Never raises for scan failures: list-level errors end in status ERROR with a
        message, per-track errors are absorbed. Only task cancellation propagates.
        """
        options = options or ScanOptions()
        observer = observer or NullScanObserver()
        token = token or CancellationToken()
        state = state or ScanState(playlist_id=playlist_id)

        logger.info(LogMessages.scan_started(playlist_id, asdict(options)))
        state.status = ScanStatus.LOADING_TRACKS
        state.progress = ScanProgress(phase=ScanPhase.BLOCKLIST)
        observer.on_progress(state.progress.snapshot())

        try:
            tracks = unique_tracks(await self.track_source.list_playlist_tracks(playlist_id))
            if token.cancelled:
                self._finish(state, observer, cancelled=True)
                return state

            state.status = ScanStatus.SCANNING
            self._run_blocklist_phase(state, tracks, observer)

            if (
                options.enable_audio_analysis
                and not token.cancelled
                and await self._classifier_available()
            ):
                await self._run_audio_phase(state, options, observer, token)
        except asyncio.CancelledError:
            # Hard stop from the session manager; leave a terminal state behind
            self._finish(state, observer, cancelled=True)
            raise
        except Exception as e:
            self._fail(state, observer, e)
            return state

        self._finish(state, observer, cancelled=token.cancelled)
        return state

    # =========================================================================
    # PHASES
    # =========================================================================

    def _run_blocklist_phase(
        self, state: ScanState, tracks: list[Track], observer: IScanObserver
    ) -> None:
        # No await in here: the whole result array exists before anything else can run
        progress = ScanProgress(phase=ScanPhase.BLOCKLIST, total_tracks=len(tracks))
        state.progress = progress
        state.results = []
        observer.on_progress(progress.snapshot())

        for track in tracks:
            match = self._blocklist.check(track.artists)
            result = ScanResult.from_blocklist(track, match.matched_names)
            state.results.append(result)
            progress.processed_tracks += 1
            if result.is_flagged:
                progress.flagged_count += 1
                observer.on_result(result)

        observer.on_progress(progress.snapshot())

    # Hey future me - without a model every track would still be resolved, fetched and decoded
    # only for predict() to fail at the end (and retry the load each time). One warmup up front
    # settles it: no classifier means no audio phase, the scan ends with blocklist results.
    async def _classifier_available(self) -> bool:
        try:
            await self._inference.warmup()
        except DomainException as e:
            logger.warning(LogMessages.classifier_unavailable(e.message))
            return False
        except Exception as e:
            logger.warning(
                LogMessages.classifier_unavailable(f"{type(e).__name__}: {e}"), exc_info=True
            )
            return False
        return True

    async def _run_audio_phase(
        self,
        state: ScanState,
        options: ScanOptions,
        observer: IScanObserver,
        token: CancellationToken,
    ) -> None:
        results = list(state.results)
        progress = state.progress
        progress.phase = ScanPhase.AUDIO
        progress.total_tracks = len(results)
        progress.processed_tracks = 0
        progress.current_track = None
        observer.on_progress(progress.snapshot())

        live_capture = await self._open_live_capture() if options.enable_live_capture else None
        try:
            for index, result in enumerate(results):
                if token.cancelled:
                    logger.info("Scan cancelled before track %d/%d", index + 1, len(results))
                    break

                progress.current_track = result.track.label
                observer.on_progress(progress.snapshot())

                was_flagged = result.is_flagged
                await self._analyze_track(result, options, live_capture)
                if result.is_flagged and not was_flagged:
                    progress.flagged_count += 1

                observer.on_result(result)
                progress.processed_tracks += 1
                observer.on_progress(progress.snapshot())

                if index < len(results) - 1 and not token.cancelled:
                    await asyncio.sleep(self._track_delay)
        finally:
            if live_capture is not None:
                await self._release_live_capture(live_capture)

    # =========================================================================
    # PER TRACK
    # =========================================================================

    async def _analyze_track(
        self,
        result: ScanResult,
        options: ScanOptions,
        live_capture: ILiveCaptureDevice | None,
    ) -> None:
        track = result.track
        stage = "resolve"
        try:
            resolved = await self._resolver.resolve(
                track,
                enable_fallback=options.enable_fallback_preview,
                live_capture=live_capture,
            )

            waveform: np.ndarray | None = None
            if resolved.url is not None:
                stage = "fetch"
                data = await self._audio_fetcher.fetch(resolved.url)
                stage = "decode"
                waveform = await self._decoder.decode(data)
            elif resolved.source == AudioSource.LIVE_CAPTURE and live_capture is not None:
                stage = "capture"
                waveform = await live_capture.capture_window(
                    track.uri, self._capture_duration_ms
                )

            if waveform is None or np.asarray(waveform).size == 0:
                result.audio_source = AudioSource.NONE
                return

            stage = "inference"
            score = await self._inference.predict(waveform)
            result.apply_score(score, resolved.source)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = e.message if isinstance(e, DomainException) else f"{type(e).__name__}: {e}"
            logger.warning(
                LogMessages.track_analysis_failed(track.label, stage, reason),
                exc_info=not isinstance(e, DomainException),
            )

    # =========================================================================
    # LIVE CAPTURE LIFECYCLE
    # =========================================================================

    async def _open_live_capture(self) -> ILiveCaptureDevice | None:
        if self._live_capture_factory is None:
            logger.info(LogMessages.live_capture_unavailable("No capture device configured"))
            return None

        device = self._live_capture_factory()
        try:
            await device.initialize()
        except asyncio.CancelledError:
            await self._release_live_capture(device)
            raise
        except Exception as e:
            logger.warning(LogMessages.live_capture_unavailable(str(e)))
            await self._release_live_capture(device)
            return None
        return device

    async def _release_live_capture(self, device: ILiveCaptureDevice) -> None:
        try:
            await device.release()
        except Exception:
            logger.warning("Failed to release live capture device", exc_info=True)

    # =========================================================================
    # TERMINAL STATES
    # =========================================================================

    def _finish(self, state: ScanState, observer: IScanObserver, cancelled: bool) -> None:
        state.cancelled = cancelled
        state.status = ScanStatus.COMPLETE
        state.progress.phase = ScanPhase.COMPLETE
        state.progress.current_track = None
        observer.on_progress(state.progress.snapshot())
        logger.info(
            LogMessages.scan_completed(
                state.playlist_id, len(state.results), state.progress.flagged_count, cancelled
            )
        )

    def _fail(self, state: ScanState, observer: IScanObserver, error: Exception) -> None:
        if isinstance(error, DomainException):
            message = error.message
            logger.error(LogMessages.scan_failed(state.playlist_id, message))
        else:
            message = str(error) or "An unexpected error occurred"
            logger.error(LogMessages.scan_failed(state.playlist_id, message), exc_info=True)

        state.status = ScanStatus.ERROR
        state.error = message
        state.progress.current_track = None
        observer.on_progress(state.progress.snapshot())
