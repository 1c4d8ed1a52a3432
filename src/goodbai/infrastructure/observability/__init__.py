"""Observability infrastructure for structured logging."""

from goodbai.infrastructure.observability.log_messages import LogMessages, LogTemplate
from goodbai.infrastructure.observability.logging import (
    configure_logging,
    get_scan_id,
    set_scan_id,
)

__all__ = [
    "LogMessages",
    "LogTemplate",
    "configure_logging",
    "get_scan_id",
    "set_scan_id",
]
