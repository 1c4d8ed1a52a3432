"""Structured log message templates for consistent, human-readable logging.

Hey future me - instead of "Error: All connection attempts failed" we log:

    ⚠️ Track Analysis Failed
    ├─ Track: The Velvet Sundown – Dust on the Wind
    ├─ Stage: fetch
    ├─ Reason: Upstream error: 404
    └─ 💡 Track keeps its blocklist-only classification

Format: icon first, then a title, then a tree of context fields, then an optional hint.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class LogTemplate:
    """A reusable log message template with placeholders."""

    icon: str
    title: str
    fields: dict[str, str]
    hint: str | None = None

    def format(self, **kwargs: Any) -> str:
        """Format the template, filling {placeholders} from kwargs."""
        lines = [f"{self.icon} {self.title}"]

        field_items = list(self.fields.items())
        for i, (key, value_template) in enumerate(field_items):
            prefix = "└─" if i == len(field_items) - 1 and not self.hint else "├─"
            try:
                value = value_template.format(**kwargs)
            except (KeyError, IndexError) as e:
                value = f"<missing: {e}>"
            lines.append(f"{prefix} {key}: {value}")

        if self.hint:
            try:
                hint_text = self.hint.format(**kwargs)
            except (KeyError, IndexError) as e:
                hint_text = f"<missing: {e}>"
            lines.append(f"└─ 💡 {hint_text}")

        return "\n".join(lines)


def _literal(value: object) -> str:
    # Escape braces so user data (track names!) is never treated as a placeholder
    return str(value).replace("{", "{{").replace("}", "}}")


class LogMessages:
    """Collection of standardized log messages for the scan pipeline."""

    # === Scan lifecycle ===

    @staticmethod
    def scan_started(playlist_id: str, options: dict[str, Any]) -> str:
        fields = {"Playlist": _literal(playlist_id)}
        for key, value in options.items():
            fields[key] = _literal(value)
        return LogTemplate(icon="🔄", title="Scan Started", fields=fields).format()

    @staticmethod
    def scan_completed(
        playlist_id: str, total: int, flagged: int, cancelled: bool = False
    ) -> str:
        return LogTemplate(
            icon="⏹️" if cancelled else "✅",
            title="Scan Stopped" if cancelled else "Scan Completed",
            fields={
                "Playlist": _literal(playlist_id),
                "Tracks": str(total),
                "Flagged": str(flagged),
            },
        ).format()

    @staticmethod
    def scan_failed(playlist_id: str, error: str) -> str:
        return LogTemplate(
            icon="🔴",
            title="Scan Failed",
            fields={"Playlist": _literal(playlist_id), "Reason": _literal(error)},
            hint="No results were recorded for this scan",
        ).format()

    # === Per-track ===

    @staticmethod
    def track_analysis_failed(track_label: str, stage: str, error: str) -> str:
        return LogTemplate(
            icon="⚠️",
            title="Track Analysis Failed",
            fields={
                "Track": _literal(track_label),
                "Stage": stage,
                "Reason": _literal(error),
            },
            hint="Track keeps its blocklist-only classification",
        ).format()

    # === Upstream ===

    @staticmethod
    def rate_limited(
        url: str, wait_seconds: float, attempt: int, max_attempts: int, giving_up: bool
    ) -> str:
        return LogTemplate(
            icon="⏱️",
            title="Spotify Rate Limited (429)",
            fields={
                "URL": _literal(url),
                "Wait": f"{wait_seconds:.1f}s",
                "Attempt": f"{attempt}/{max_attempts}",
                "Action": "Giving up" if giving_up else "Sleeping, then retrying",
            },
        ).format()

    @staticmethod
    def token_refresh_failed(error: str) -> str:
        return LogTemplate(
            icon="🔑",
            title="Spotify Token Refresh Failed",
            fields={"Reason": _literal(error)},
            hint="User must log in again",
        ).format()

    @staticmethod
    def proxy_host_rejected(url: str, host: str | None) -> str:
        return LogTemplate(
            icon="🚫",
            title="Audio Proxy Rejected Host",
            fields={"URL": _literal(url), "Host": _literal(host or "<unparsable>")},
            hint="Only known audio CDN hosts are proxied",
        ).format()

    @staticmethod
    def live_capture_unavailable(error: str) -> str:
        return LogTemplate(
            icon="🎧",
            title="Live Capture Unavailable",
            fields={"Reason": _literal(error)},
            hint="Tracks without a preview stay unscored",
        ).format()

    @staticmethod
    def classifier_unavailable(error: str) -> str:
        return LogTemplate(
            icon="🧠",
            title="Classifier Unavailable",
            fields={"Reason": _literal(error)},
            hint="Audio phase skipped, results are blocklist-only",
        ).format()
