"""
Shared types for library detection.

A matcher is a pure function from a :class:`ParsedAsset` to a
:class:`DetectedLibrary` or None. Matchers are tried in order and the
first non-None result wins.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from libprobe.models import Ecosystem, library_key


@dataclass(frozen=True, slots=True)
class DetectedLibrary:
    """A single library observation from one asset URL."""

    ecosystem: Ecosystem | None
    name: str
    version: str | None
    source_url: str

    @property
    def key(self) -> str:
        return library_key(self.ecosystem, self.name, self.version)


@dataclass(frozen=True, slots=True)
class ParsedAsset:
    """An absolute asset URL split into the pieces matchers look at."""

    url: str
    host: str
    path_parts: tuple[str, ...]
    query: dict[str, list[str]]

    @classmethod
    def parse(cls, url: str) -> "ParsedAsset | None":
        """Parse an absolute URL, returning None when it has no host."""
        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError:
            return None
        if not host:
            return None
        return cls(
            url=url,
            host=host.lower(),
            path_parts=tuple(p for p in parts.path.split("/") if p),
            query=parse_qs(parts.query),
        )

    @property
    def filename(self) -> str:
        """Last path segment, or an empty string for a bare host."""
        return self.path_parts[-1] if self.path_parts else ""

    def query_value(self, name: str) -> str | None:
        values = self.query.get(name)
        return values[0] if values else None

    def npm(self, name: str, version: str | None) -> DetectedLibrary:
        """Build an npm observation sourced from this asset."""
        return DetectedLibrary(ecosystem=Ecosystem.NPM, name=name, version=version, source_url=self.url)


Matcher = Callable[[ParsedAsset], "DetectedLibrary | None"]


def split_at_last_at(value: str) -> tuple[str, str | None]:
    """
    Split ``name@version`` on the last ``@``.

    A leading ``@`` (scope marker) is not a separator, and an empty
    version is reported as missing.
    """
    idx = value.rfind("@")
    if idx <= 0:
        return value, None
    return value[:idx], value[idx + 1 :] or None


_FILENAME_SUFFIX_RE = re.compile(r"\.(min|bundle|umd|prod|production)\b", re.IGNORECASE)
_FILENAME_EXT_RE = re.compile(r"\.(js|css)\b", re.IGNORECASE)


def infer_name_from_filename(filename: str) -> str | None:
    """Strip build suffixes and the extension from an asset filename."""
    cleaned = filename.split("?", 1)[0].split("#", 1)[0]
    cleaned = _FILENAME_SUFFIX_RE.sub("", cleaned)
    cleaned = _FILENAME_EXT_RE.sub("", cleaned).strip()
    return cleaned or None
