"""FastAPI application factory and lifespan."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from goodbai import __version__
from goodbai.api.exception_handlers import register_exception_handlers
from goodbai.api.routers import api_router
from goodbai.application.services.audio_source_resolver import AudioSourceResolver
from goodbai.application.services.blocklist_matcher import BlocklistMatcher
from goodbai.application.services.inference_queue import InferenceQueue
from goodbai.application.services.scan_sessions import ScanSessionManager
from goodbai.config import Settings, get_settings
from goodbai.domain.exceptions import ConfigurationError
from goodbai.infrastructure.audio.decoder import LibrosaAudioDecoder
from goodbai.infrastructure.audio.onnx_runtime import OnnxClassifierRuntime
from goodbai.infrastructure.integrations.audio_proxy import AudioProxy
from goodbai.infrastructure.integrations.deezer_client import DeezerClient
from goodbai.infrastructure.observability import configure_logging

logger = logging.getLogger(__name__)


def init_state(app: FastAPI, settings: Settings) -> None:
    """Create the process-wide components and attach them to app.state.

    Everything here is shared by all scans: the classifier (one model in memory), the
    proxy and Deezer clients (pooled connections) and the blocklist. Per-user things
    (Spotify client, orchestrator) are built per request.
    """
    deezer = DeezerClient(settings.deezer)
    app.state.settings = settings
    app.state.audio_proxy = AudioProxy(settings.proxy)
    app.state.deezer = deezer
    app.state.resolver = AudioSourceResolver(deezer if settings.deezer.enabled else None)
    app.state.blocklist = BlocklistMatcher.from_settings(
        settings.scan.extra_blocklist, settings.scan.blocklist_file
    )
    app.state.decoder = LibrosaAudioDecoder(sample_rate=settings.inference.sample_rate)
    app.state.inference = InferenceQueue(
        OnnxClassifierRuntime(settings.inference),
        window_length=settings.inference.window_length,
    )
    app.state.scan_sessions = ScanSessionManager(
        stop_timeout=settings.scan.stop_timeout_seconds,
        session_ttl=settings.scan.session_ttl_seconds,
        max_sessions=settings.scan.max_sessions,
    )
    # No server-side playback device exists; a deployment with one sets a factory here
    app.state.live_capture_factory = None


# Listen future me, everything before `yield` runs at STARTUP, everything after at SHUTDOWN.
# A missing model file is NOT fatal: the app starts degraded (see /api/health) and scans
# still do the blocklist pass.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s %s", settings.app_name, __version__)

    init_state(app, settings)
    try:
        await app.state.inference.warmup()
    except ConfigurationError as e:
        logger.warning("Classifier not loaded, audio analysis disabled: %s", e.message)

    try:
        yield
    finally:
        logger.info("Shutting down application")
        try:
            await app.state.scan_sessions.shutdown()
        except Exception as e:
            logger.exception("Error stopping scans: %s", e)
        await app.state.audio_proxy.close()
        await app.state.deezer.close()


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="goodbAI",
        description="Find and remove AI-generated tracks from Spotify playlists",
        version=__version__,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "goodbai.api.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
