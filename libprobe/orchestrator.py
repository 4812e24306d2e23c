"""
Scan Orchestrator for LibProbe.

Drives one library scan end to end: page discovery, bounded page
fetching with per-page asset detection, cross-page aggregation, OSV
reconciliation and report assembly. A scan always produces a report;
partial failures are recorded in it rather than raised.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from libprobe.aggregator import LibraryAggregator
from libprobe.config import Settings, load_settings
from libprobe.crawler import fetch_page, map_with_concurrency
from libprobe.detectors import DetectedLibrary, detect_library
from libprobe.extractors import extract_html_assets, resolve_asset_urls
from libprobe.models import PageError, PagesSummary, ScanReport, ScanRequest
from libprobe.osv import OSVClient, reconcile_vulnerabilities
from libprobe.reports import ScanLog, sort_libraries
from libprobe.scope import filter_urls, merge_page_lists
from libprobe.sitemap import discover_sitemap_urls, load_sitemap_pages

logger = structlog.get_logger(__name__)


class ScanRequestError(ValueError):
    """Raised when scan options fail validation; the scan never starts."""


def build_request(payload: dict[str, Any] | ScanRequest) -> ScanRequest:
    """
    Validate caller options into a ScanRequest.

    Args:
        payload: Wire-format dict (camelCase or snake_case keys) or a request

    Returns:
        Validated request with clamped options

    Raises:
        ScanRequestError: With the first validation message
    """
    if isinstance(payload, ScanRequest):
        return payload
    if not isinstance(payload, dict):
        raise ScanRequestError("Request body must be an object.")
    try:
        return ScanRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        message = first["msg"]
        if not first["type"].startswith("base_url"):
            field = ".".join(str(part) for part in first["loc"]) or "request"
            message = f"Invalid {field}: {message}"
        raise ScanRequestError(message) from e


class ScanOrchestrator:
    """
    Main scan orchestrator.

    Coordinates the scan lifecycle:
    1. Page discovery (caller URLs, robots.txt, sitemaps)
    2. Bounded-concurrency page fetching and library detection
    3. Aggregation by library identity
    4. OSV vulnerability reconciliation
    5. Report assembly
    """

    def __init__(
        self,
        request: ScanRequest,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize scan orchestrator.

        Args:
            request: Validated scan request
            settings: Process settings (loaded from the environment if omitted)
            transport: Optional httpx transport, used by tests
        """
        self.request = request
        self.settings = settings or load_settings()
        self.transport = transport
        self.reset()

    def reset(self) -> None:
        """Start a fresh transcript, aggregate and error list for the next run."""
        self.log = ScanLog()
        self.aggregator = LibraryAggregator(self.settings.provenance_cap)
        self.page_errors: list[PageError] = []
        self.started_at = datetime.now(timezone.utc)

    async def scan(self) -> ScanReport:
        """
        Execute the library scan.

        Returns:
            Complete scan report; ``error`` is set only if the scan could
            not run at all
        """
        self.reset()
        req = self.request
        logger.info("scan_started", target=req.base_url)
        t0 = time.monotonic()

        try:
            async with self._client() as client:
                report = await self._run(client)
        except Exception as e:
            logger.error("scan_error", target=req.base_url, error=str(e))
            self.log.warning(f"Scan aborted: {e}")
            report = ScanReport(base_url=req.base_url, started_at=self.started_at, error=str(e) or type(e).__name__)

        report.completed_at = datetime.now(timezone.utc)
        report.duration_seconds = time.monotonic() - t0
        report.log = self.log.text

        logger.info(
            "scan_completed",
            target=req.base_url,
            pages_ok=report.pages.ok,
            pages_failed=report.pages.failed,
            libraries=len(report.libraries),
            vulnerable=len(report.vulnerable_libraries),
            duration=f"{report.duration_seconds:.2f}s",
        )
        return report

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            verify=bool(self.settings.verify_ssl),
            timeout=self.request.timeout_seconds,
            transport=self.transport,
        )

    async def _run(self, client: httpx.AsyncClient) -> ScanReport:
        req = self.request
        timeout = req.timeout_seconds
        user_agent = self.settings.user_agent

        self.log.info(f"Base: {req.origin}")
        self.log.info(
            f"Options: maxPages={req.max_pages}, concurrency={req.concurrency}, "
            f"timeoutMs={req.request_timeout_ms}, maxSitemaps={req.max_sitemaps}, "
            f"osv={'true' if req.check_vulnerabilities else 'false'}"
        )

        provided_pages: list[str] = []
        if req.urls:
            provided_pages = filter_urls(req.base_url, req.urls, req.origin)
            self.log.info(f"URL list provided: {len(req.urls)}")
            self.log.info(f"URL list after filtering: {len(provided_pages)}")

        sitemap_urls = await discover_sitemap_urls(client, req.origin, timeout=timeout, user_agent=user_agent)
        self.log.info(f"Sitemap candidates: {len(sitemap_urls)}")

        loaded = await load_sitemap_pages(
            client,
            req.base_url,
            sitemap_urls,
            max_sitemaps=req.max_sitemaps,
            timeout=timeout,
            user_agent=user_agent,
        )
        self.log.info(f"Sitemaps fetched: {loaded.sitemap_count}{' (truncated)' if loaded.truncated else ''}")
        self.log.info(f"Pages discovered (sitemap): {len(loaded.page_urls)}")

        discovered = merge_page_lists(provided_pages, loaded.page_urls)
        if not discovered:
            self.log.warning(
                "No pages discovered from provided URLs or sitemap. Falling back to scanning base URL only."
            )
            discovered = [req.base_url]

        truncated = len(discovered) > req.max_pages
        pages_to_scan = discovered[: req.max_pages]
        self.log.info(f"Pages to scan: {len(pages_to_scan)}{' (truncated)' if truncated else ''}")

        async def scan_one(page_url: str, _index: int) -> bool:
            return await self._scan_page(client, page_url)

        outcomes = await map_with_concurrency(pages_to_scan, req.concurrency, scan_one)
        pages_ok = sum(1 for ok in outcomes if ok)

        libraries = self.aggregator.records()
        if req.check_vulnerabilities:
            osv = OSVClient(client, self.settings.osv_url, timeout=timeout, user_agent=user_agent)
            queried = await reconcile_vulnerabilities(
                libraries,
                osv,
                batch_size=self.settings.osv_batch_size,
                max_vulns=self.settings.max_vulns_per_library,
            )
            self.log.info(f"OSV queries: {queried}")
        else:
            self.log.info("OSV disabled")

        return ScanReport(
            base_url=req.base_url,
            started_at=self.started_at,
            pages=PagesSummary(
                discovered=len(discovered),
                scanned=len(pages_to_scan),
                ok=pages_ok,
                failed=len(pages_to_scan) - pages_ok,
            ),
            sitemaps_fetched=loaded.sitemap_count,
            page_errors=self.page_errors,
            libraries=sort_libraries(libraries),
        )

    async def _scan_page(self, client: httpx.AsyncClient, page_url: str) -> bool:
        """Fetch one page and feed its detections to the aggregator."""
        try:
            result = await fetch_page(
                client,
                page_url,
                timeout=self.request.timeout_seconds,
                user_agent=self.settings.user_agent,
            )
            if result.error is not None:
                self.page_errors.append(result.error)
                return False

            detections: list[DetectedLibrary] = []
            for asset_url in resolve_asset_urls(extract_html_assets(result.html), page_url):
                detected = detect_library(asset_url)
                if detected is not None:
                    detections.append(detected)

            observed = self.aggregator.add_page(page_url, detections)
            logger.debug("page_scanned", url=page_url, libraries=observed)
            return True
        except Exception as e:
            logger.error("page_scan_failed", url=page_url, error=str(e))
            self.page_errors.append(PageError(url=page_url, status=None, error=str(e) or "Unexpected fetch error"))
            return False


async def scan_site(
    payload: dict[str, Any] | ScanRequest,
    *,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ScanReport:
    """
    Run a library scan from caller options.

    Never raises for bad input: a validation failure returns a report with
    ``error`` set and zeroed page counters.

    Args:
        payload: Scan options in wire format, or a ScanRequest
        settings: Process settings (loaded from the environment if omitted)
        transport: Optional httpx transport, used by tests

    Returns:
        ScanReport
    """
    try:
        request = build_request(payload)
    except ScanRequestError as e:
        logger.warning("scan_request_invalid", error=str(e))
        now = datetime.now(timezone.utc)
        return ScanReport(started_at=now, completed_at=now, error=str(e))

    return await ScanOrchestrator(request, settings=settings, transport=transport).scan()
