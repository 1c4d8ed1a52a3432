"""Application services: detection pipeline and scan lifecycle."""

from goodbai.application.services.audio_source_resolver import (
    AudioSourceResolver,
    ResolvedAudio,
)
from goodbai.application.services.blocklist_matcher import (
    DEFAULT_BLOCKLIST,
    BlocklistMatch,
    BlocklistMatcher,
)
from goodbai.application.services.inference_queue import (
    WINDOW_LENGTH,
    InferenceQueue,
    extract_center_window,
)
from goodbai.application.services.scan_events import ScanEvent, ScanEventChannel
from goodbai.application.services.scan_orchestrator import (
    CancellationToken,
    ScanOptions,
    ScanOrchestrator,
)
from goodbai.application.services.scan_sessions import ScanSession, ScanSessionManager

__all__ = [
    "DEFAULT_BLOCKLIST",
    "WINDOW_LENGTH",
    "AudioSourceResolver",
    "BlocklistMatch",
    "BlocklistMatcher",
    "CancellationToken",
    "InferenceQueue",
    "ResolvedAudio",
    "ScanEvent",
    "ScanEventChannel",
    "ScanOptions",
    "ScanOrchestrator",
    "ScanSession",
    "ScanSessionManager",
    "extract_center_window",
]
