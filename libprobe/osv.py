"""
OSV vulnerability lookups for detected libraries.

Eligible libraries (npm with a numeric version) are sent to the OSV
``querybatch`` endpoint in fixed-size batches. Failures are recorded
per library in ``vulnerability_error``; a zero count without an error
means OSV knows of no vulnerabilities for that version.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from libprobe.config import DEFAULT_OSV_URL, DEFAULT_USER_AGENT
from libprobe.crawler import FETCH_ERRORS, describe_error
from libprobe.models import Ecosystem, LibraryRecord, VulnSummary
from libprobe.utils import looks_like_version

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_VULNS = 10

MISSING_RESULT_ERROR = "OSV response missing result."


@dataclass(slots=True)
class OSVResult:
    """Vulnerability records for one query, or the reason there are none."""

    vulns: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None


class OSVClient:
    """Thin async wrapper around the OSV batch query endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str = DEFAULT_OSV_URL,
        *,
        timeout: float = 12.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._client = client
        self.endpoint = endpoint
        self.timeout = timeout
        self.user_agent = user_agent

    async def query_batch(self, queries: Sequence[dict[str, Any]]) -> list[OSVResult]:
        """
        Submit one batch query.

        The response is aligned 1:1 with ``queries``. A transport or HTTP
        failure marks every item with the same error; a missing entry in
        an otherwise good response marks only that item.

        Args:
            queries: ``{"package": {...}, "version": ...}`` objects

        Returns:
            One OSVResult per query, in order
        """
        if not queries:
            return []

        try:
            async with asyncio.timeout(self.timeout):
                response = await self._client.post(
                    self.endpoint,
                    json={"queries": list(queries)},
                    headers={
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                        "User-Agent": self.user_agent,
                    },
                    timeout=self.timeout,
                )
        except FETCH_ERRORS as e:
            return self._fail_all(queries, describe_error(e, self.timeout))

        if not response.is_success:
            return self._fail_all(queries, f"OSV request failed ({response.status_code}).")

        try:
            data = response.json()
        except ValueError as e:
            return self._fail_all(queries, f"Invalid OSV response: {e}")

        raw_results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(raw_results, list):
            raw_results = []

        results: list[OSVResult] = []
        for idx in range(len(queries)):
            item = raw_results[idx] if idx < len(raw_results) else None
            if not isinstance(item, dict):
                results.append(OSVResult(error=MISSING_RESULT_ERROR))
                continue
            vulns = item.get("vulns")
            results.append(
                OSVResult(vulns=[v for v in vulns if isinstance(v, dict)] if isinstance(vulns, list) else [])
            )
        return results

    def _fail_all(self, queries: Sequence[dict[str, Any]], message: str) -> list[OSVResult]:
        logger.warning("osv_batch_failed", endpoint=self.endpoint, queries=len(queries), error=message)
        return [OSVResult(error=message) for _ in queries]


def is_eligible(library: LibraryRecord) -> bool:
    """Only npm packages with a numeric version can be looked up."""
    return library.ecosystem == Ecosystem.NPM and looks_like_version(library.version)


def build_query(library: LibraryRecord) -> dict[str, Any]:
    return {
        "package": {"ecosystem": Ecosystem.NPM.value, "name": library.name},
        "version": library.version,
    }


def apply_result(library: LibraryRecord, result: OSVResult, max_vulns: int = DEFAULT_MAX_VULNS) -> None:
    """Copy one OSV result onto its library record.

    A record that cannot be summarised marks only this library with an
    error; the count stays at zero.
    """
    if result.error:
        library.vulnerability_error = result.error
        return
    try:
        summaries = [VulnSummary.from_osv(v) for v in result.vulns[:max_vulns]]
    except ValueError as e:
        logger.warning("osv_result_invalid", library=library.key, error=str(e))
        library.vulnerability_error = f"Invalid OSV response: {e}"
        return
    library.vulnerability_count = len(result.vulns)
    library.vulnerability_ids = [str(v.get("id", "")) for v in result.vulns]
    library.vulnerabilities = summaries or None


async def reconcile_vulnerabilities(
    libraries: Sequence[LibraryRecord],
    osv: OSVClient,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_vulns: int = DEFAULT_MAX_VULNS,
) -> int:
    """
    Annotate eligible libraries with their known vulnerabilities.

    Batches are sent one after another. Ineligible libraries are left
    untouched (count 0, no error).

    Args:
        libraries: Aggregated library records, updated in place
        osv: OSV client
        batch_size: Queries per batch request
        max_vulns: Maximum summaries kept per library

    Returns:
        Number of libraries queried
    """
    eligible = [lib for lib in libraries if is_eligible(lib)]

    for start in range(0, len(eligible), batch_size):
        chunk = eligible[start : start + batch_size]
        results = await osv.query_batch([build_query(lib) for lib in chunk])
        for lib, result in zip(chunk, results, strict=True):
            apply_result(lib, result, max_vulns)
        logger.debug(
            "osv_batch_complete",
            batch=start // batch_size + 1,
            size=len(chunk),
            vulnerable=sum(1 for lib in chunk if lib.vulnerability_count),
        )

    return len(eligible)
