"""Artist-name blocklist for known AI-generated music projects."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from goodbai.domain.entities import Artist

logger = logging.getLogger(__name__)

# Curated list of artists publicly identified as AI-generated projects.
DEFAULT_BLOCKLIST: tuple[str, ...] = (
    "The Velvet Sundown",
    "Breaking Rust",
    "Xania Monet",
    "Aventhis",
    "Cain Walker",
)


def normalize_name(name: str) -> str:
    """Casefold and collapse whitespace."""
    return " ".join(name.casefold().split())


def load_blocklist_file(path: Path) -> list[str]:
    """Read one artist name per line; blank lines and # comments are ignored."""
    names: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        entry = line.split("#", 1)[0].strip()
        if entry:
            names.append(entry)
    return names


@dataclass(frozen=True)
class BlocklistMatch:
    """Outcome of checking a track's artist credits."""

    matched: bool
    matched_names: list[str] = field(default_factory=list)


# Hey future me - an artist matches when its normalized name EQUALS an entry or CONTAINS
# one ("The Velvet Sundown feat. X" still matches). Never the other way round: a short
# artist name like "Rust" must not match "Breaking Rust".
class BlocklistMatcher:
    """Pure, synchronous cross-reference of artist names against the blocklist."""

    def __init__(self, names: Iterable[str] = DEFAULT_BLOCKLIST) -> None:
        entries: list[str] = []
        for name in names:
            normalized = normalize_name(name)
            if normalized and normalized not in entries:
                entries.append(normalized)
        self._entries = tuple(entries)

    @classmethod
    def from_settings(
        cls, extra_names: Iterable[str] = (), blocklist_file: Path | None = None
    ) -> "BlocklistMatcher":
        """Default list extended with configured names and an optional file."""
        names = [*DEFAULT_BLOCKLIST, *extra_names]
        if blocklist_file is not None:
            file_names = load_blocklist_file(blocklist_file)
            logger.info("Loaded %d blocklist entries from %s", len(file_names), blocklist_file)
            names.extend(file_names)
        return cls(names)

    @property
    def entries(self) -> tuple[str, ...]:
        return self._entries

    def is_blocklisted(self, artist_name: str) -> bool:
        normalized = normalize_name(artist_name)
        if not normalized:
            return False
        return any(entry == normalized or entry in normalized for entry in self._entries)

    def check(self, artists: Iterable[Artist]) -> BlocklistMatch:
        """Return matched artist names in credit order."""
        matched_names = [artist.name for artist in artists if self.is_blocklisted(artist.name)]
        return BlocklistMatch(matched=bool(matched_names), matched_names=matched_names)
