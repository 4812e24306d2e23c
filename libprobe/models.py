"""
Pydantic models for the LibProbe library scanner.

Defines the scan request with its clamped options, the per-library
aggregate records, vulnerability summaries, page errors, and the final
scan report. Every model accepts and emits the camelCase wire names
(``baseUrl``, ``vulnerabilityCount``...) used by dashboard callers.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, field_validator, model_serializer
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from libprobe.scope import ScopeError, normalize_base_url, origin_of
from libprobe.utils import clamp_int, is_valid_target


class Ecosystem(StrEnum):
    """Package namespaces understood by the vulnerability database."""

    NPM = "npm"


def library_key(ecosystem: str | None, name: str, version: str | None) -> str:
    """Identity key used to merge observations of the same library."""
    return f"{ecosystem or 'unknown'}:{name}@{version or 'unknown'}"


class WireModel(BaseModel):
    """Base model serialising to camelCase while accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Optional fields left out of the output when unset; every other None is emitted as null
    omit_when_none: ClassVar[frozenset[str]] = frozenset()

    @model_serializer(mode="wrap")
    def drop_unset_optionals(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        for name in self.omit_when_none:
            for key in (name, to_camel(name)):
                if key in data and data[key] is None:
                    del data[key]
        return data

    def to_wire(self) -> dict[str, Any]:
        """Dump with wire names; optional values that are unset are omitted."""
        return self.model_dump(mode="json", by_alias=True)


class ScanRequest(WireModel):
    """Scan options with validation.

    Numeric options are clamped to their allowed range instead of being
    rejected; a missing or malformed base URL is the only hard error.
    """

    base_url: str = Field(default="", validate_default=True, description="Site to scan")
    urls: list[str] = Field(default_factory=list, description="Explicit seed pages")
    max_pages: int = Field(default=60, description="Page budget (1-500)")
    max_sitemaps: int = Field(default=20, description="Sitemap document budget (1-100)")
    concurrency: int = Field(default=6, description="Pages fetched in parallel (1-20)")
    request_timeout_ms: int = Field(default=12_000, description="Per-request deadline (2000-60000)")
    check_vulnerabilities: bool = Field(default=True, description="Query OSV for detected libraries")

    @field_validator("base_url", mode="before")
    @classmethod
    def validate_base_url(cls, v: Any) -> str:
        """Run the conservative character check, then normalise."""
        raw = v.strip() if isinstance(v, str) else ""
        if not raw:
            raise PydanticCustomError("base_url_missing", "Base URL is required.")
        if not is_valid_target(raw):
            raise PydanticCustomError("base_url_chars", "Base URL contains invalid characters.")
        try:
            return normalize_base_url(raw)
        except ScopeError as e:
            raise PydanticCustomError("base_url_invalid", str(e)) from e

    @field_validator("urls", mode="before")
    @classmethod
    def keep_string_urls(cls, v: Any) -> list[str]:
        if not isinstance(v, (list, tuple)):
            return []
        return [item for item in v if isinstance(item, str)]

    @field_validator("max_pages", mode="before")
    @classmethod
    def clamp_max_pages(cls, v: Any) -> int:
        return clamp_int(v, 60, 1, 500)

    @field_validator("max_sitemaps", mode="before")
    @classmethod
    def clamp_max_sitemaps(cls, v: Any) -> int:
        return clamp_int(v, 20, 1, 100)

    @field_validator("concurrency", mode="before")
    @classmethod
    def clamp_concurrency(cls, v: Any) -> int:
        return clamp_int(v, 6, 1, 20)

    @field_validator("request_timeout_ms", mode="before")
    @classmethod
    def clamp_timeout(cls, v: Any) -> int:
        return clamp_int(v, 12_000, 2_000, 60_000)

    @field_validator("check_vulnerabilities", mode="before")
    @classmethod
    def default_check(cls, v: Any) -> Any:
        return True if v is None else v

    @property
    def origin(self) -> str:
        """Scheme and authority of the base URL."""
        return origin_of(self.base_url)

    @property
    def timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000


class PageError(WireModel):
    """A page that failed to fetch or was skipped."""

    url: str
    status: int | None = None
    error: str


class VulnSummary(WireModel):
    """Read-only projection of an OSV vulnerability record."""

    omit_when_none = frozenset({"summary", "aliases", "modified", "published", "references"})

    id: str
    summary: str | None = None
    aliases: list[str] | None = None
    modified: str | None = None
    published: str | None = None
    references: list[str] | None = None

    @classmethod
    def from_osv(cls, record: dict[str, Any]) -> "VulnSummary":
        """Build a summary from a raw OSV record, tolerating odd shapes."""
        aliases = record.get("aliases")
        references = record.get("references")
        return cls(
            id=str(record.get("id", "")),
            summary=record.get("summary") if isinstance(record.get("summary"), str) else None,
            aliases=[str(a) for a in aliases] if isinstance(aliases, list) else None,
            modified=record.get("modified") if isinstance(record.get("modified"), str) else None,
            published=record.get("published") if isinstance(record.get("published"), str) else None,
            references=(
                [
                    ref["url"]
                    for ref in references
                    if isinstance(ref, dict) and isinstance(ref.get("url"), str) and ref["url"]
                ]
                if isinstance(references, list)
                else None
            ),
        )


class LibraryRecord(WireModel):
    """One detected library@version aggregated across every scanned page."""

    omit_when_none = frozenset({"vulnerabilities", "vulnerability_error"})

    ecosystem: Ecosystem | None = None
    name: str = Field(min_length=1)
    version: str | None = None
    occurrences: int = Field(default=0, ge=0)
    pages: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    vulnerability_count: int = Field(default=0, ge=0)
    vulnerability_ids: list[str] = Field(default_factory=list)
    vulnerabilities: list[VulnSummary] | None = None
    vulnerability_error: str | None = None

    @property
    def key(self) -> str:
        return library_key(self.ecosystem, self.name, self.version)

    @property
    def label(self) -> str:
        """``name@version`` with an empty version when unknown."""
        return f"{self.name}@{self.version or ''}"


class PagesSummary(WireModel):
    """Page counters for one scan."""

    discovered: int = 0
    scanned: int = 0
    ok: int = 0
    failed: int = 0


class ScanReport(WireModel):
    """Terminal output of one scan invocation."""

    omit_when_none = frozenset({"completed_at", "error"})

    base_url: str = Field(default="", description="Normalised base URL")
    scan_id: str = Field(default="", description="Unique scan identifier")
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    duration_seconds: float = 0.0
    pages: PagesSummary = Field(default_factory=PagesSummary)
    sitemaps_fetched: int = 0
    page_errors: list[PageError] = Field(default_factory=list)
    libraries: list[LibraryRecord] = Field(default_factory=list)
    log: str = ""
    error: str | None = None

    def model_post_init(self, __context: Any) -> None:
        if not self.scan_id:
            content = f"{self.base_url}:{self.started_at.isoformat()}"
            self.scan_id = hashlib.sha256(content.encode()).hexdigest()[:12]

    @property
    def vulnerable_libraries(self) -> list[LibraryRecord]:
        return [lib for lib in self.libraries if lib.vulnerability_count > 0]

    @property
    def total_vulnerabilities(self) -> int:
        return sum(lib.vulnerability_count for lib in self.libraries)

    @property
    def lookup_errors(self) -> list[LibraryRecord]:
        """Libraries whose vulnerability count cannot be trusted."""
        return [lib for lib in self.libraries if lib.vulnerability_error]
