"""Structured logging configuration with JSON formatting and scan ids."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the scan id is what ties all log lines of ONE scan together. A scan runs as
# its own asyncio task, and contextvars are task-local, so setting it once at the top of the
# scan is enough - every await inside inherits it. Don't replace this with a global!
scan_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("scan_id", default="")


def get_scan_id() -> str:
    """Get the current scan id from context, or "" outside a scan."""
    return scan_id_var.get()


def set_scan_id(scan_id: str | None = None) -> str:
    """Set the scan id in context, generating a short UUID if None.

    Returns:
        The scan id that was set
    """
    if scan_id is None:
        scan_id = uuid.uuid4().hex[:12]
    scan_id_var.set(scan_id)
    return scan_id


class ScanIdFilter(logging.Filter):
    """Add scan_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.scan_id = get_scan_id()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Formatter that shows compact exception chains, root cause first.

    Only frames from our own package are printed; httpx/numpy internals are skipped.

    Example output:
    12:00:01 │ WARNING │ goodbai.application...:140 │ [3f2a] Failed to analyze track
    ╰─► ConnectError: All connection attempts failed
    ╰─► AudioUnavailable: Failed to fetch preview audio
        File "audio_proxy.py", line 88, in fetch
          raise AudioUnavailable("Failed to fetch preview audio") from e
    """

    def format(self, record: logging.LogRecord) -> str:
        scan_id = getattr(record, "scan_id", "")
        record.scan_prefix = f"[{scan_id}] " if scan_id else ""
        return super().format(record)

    def formatException(self, ei: Any) -> str:
        _, exc_value, _ = ei
        if exc_value is None:
            return ""

        chain: list[BaseException] = []
        current: BaseException | None = exc_value
        while current is not None and current not in chain:
            chain.append(current)
            current = current.__cause__ or current.__context__
        chain.reverse()

        lines: list[str] = []
        for exc in chain:
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")
            if exc.__traceback__ is None:
                continue
            for frame in traceback.extract_tb(exc.__traceback__):
                if "/site-packages/" in frame.filename or "goodbai" not in frame.filename:
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")
        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """JSON formatter with a fixed set of extra fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        scan_id = getattr(record, "scan_id", "")
        if scan_id:
            log_record["scan_id"] = scan_id

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


# Listen future me, call this ONCE at startup (the FastAPI lifespan does it). It wipes existing
# root handlers first so reloads and tests don't stack duplicate handlers.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "goodbai",
) -> None:
    """Configure root logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format for logs (recommended for production)
        app_name: Application name to include in the startup log
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ScanIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(scan_prefix)s%(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # HTTP libraries log every request at INFO - far more than our own code
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"app_name": app_name, "log_level": log_level, "json_format": json_format},
    )
