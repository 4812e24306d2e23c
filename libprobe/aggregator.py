"""
Cross-page aggregation of library observations.

The aggregator is owned by a single scan and mutated only from the
event loop between awaits, so it needs no locking.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from libprobe.detectors import DetectedLibrary
from libprobe.models import Ecosystem, LibraryRecord

logger = structlog.get_logger(__name__)

DEFAULT_PROVENANCE_CAP = 50


@dataclass
class _Entry:
    ecosystem: Ecosystem | None
    name: str
    version: str | None
    occurrences: int = 0
    # dicts used as insertion-ordered sets
    pages: dict[str, None] = field(default_factory=dict)
    sources: dict[str, None] = field(default_factory=dict)


class LibraryAggregator:
    """
    Merge detections by identity key across all scanned pages.

    Occurrences always increase; the page and source sets stop growing
    once they reach ``provenance_cap`` entries.
    """

    def __init__(self, provenance_cap: int = DEFAULT_PROVENANCE_CAP) -> None:
        self.provenance_cap = provenance_cap
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, page_url: str, detected: DetectedLibrary) -> None:
        """Record one observation of a library on a page."""
        entry = self._entries.get(detected.key)
        if entry is None:
            entry = _Entry(ecosystem=detected.ecosystem, name=detected.name, version=detected.version)
            self._entries[detected.key] = entry
            logger.debug("library_detected", key=detected.key, page=page_url)

        entry.occurrences += 1
        if len(entry.pages) < self.provenance_cap:
            entry.pages.setdefault(page_url, None)
        if len(entry.sources) < self.provenance_cap:
            entry.sources.setdefault(detected.source_url, None)

    def add_page(self, page_url: str, detections: Iterable[DetectedLibrary]) -> int:
        """
        Record the detections of one page.

        The same asset URL repeated on a page is a single observation.

        Returns:
            Number of observations recorded
        """
        seen: set[tuple[str, str]] = set()
        for detected in detections:
            marker = (detected.key, detected.source_url)
            if marker in seen:
                continue
            seen.add(marker)
            self.add(page_url, detected)
        return len(seen)

    def records(self) -> list[LibraryRecord]:
        """Snapshot the aggregate as fresh LibraryRecord objects."""
        return [
            LibraryRecord(
                ecosystem=entry.ecosystem,
                name=entry.name,
                version=entry.version,
                occurrences=entry.occurrences,
                pages=list(entry.pages),
                sources=list(entry.sources),
            )
            for entry in self._entries.values()
        ]
