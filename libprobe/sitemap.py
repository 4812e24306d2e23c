"""
Sitemap discovery and loading.

Candidate sitemaps come from ``Sitemap:`` directives in robots.txt plus
a fixed set of well-known paths. Sitemap indexes are expanded
breadth-first until a document budget is spent. Unreachable or
unparsable sitemaps are skipped; finding nothing is a valid outcome.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from urllib.parse import urljoin

import httpx
import structlog

from libprobe.config import ROBOTS_ACCEPT, SITEMAP_ACCEPT, SITEMAP_FALLBACK_PATHS
from libprobe.crawler import FETCH_ERRORS, describe_error, fetch_text
from libprobe.scope import ALLOWED_SCHEMES, filter_urls, normalize_url, origin_of

logger = structlog.get_logger(__name__)

ROBOTS_SITEMAP_RE = re.compile(r"^\s*sitemap\s*:\s*(\S+)\s*$", re.IGNORECASE)
LOC_RE = re.compile(r"<loc>([\s\S]*?)</loc>", re.IGNORECASE)
SITEMAP_INDEX_RE = re.compile(r"<sitemapindex\b", re.IGNORECASE)
CDATA_OPEN_RE = re.compile(r"^<!\[CDATA\[", re.IGNORECASE)
CDATA_CLOSE_RE = re.compile(r"\]\]>$")

XML_ENTITIES = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
)


@dataclass
class SitemapLoadResult:
    """Pages collected from sitemaps and the number of documents visited."""

    page_urls: list[str] = field(default_factory=list)
    sitemap_count: int = 0
    # Unvisited sitemaps were still queued when the budget ran out
    truncated: bool = False


def decode_xml_text(raw: str) -> str:
    """Strip a CDATA wrapper and decode the basic XML character entities."""
    text = CDATA_CLOSE_RE.sub("", CDATA_OPEN_RE.sub("", raw.strip()))
    for entity, char in XML_ENTITIES:
        text = text.replace(entity, char)
    return text.strip()


def extract_sitemap_locs(xml: str) -> list[str]:
    """Return every non-empty ``<loc>`` value in document order."""
    locs: list[str] = []
    for match in LOC_RE.finditer(xml):
        value = decode_xml_text(match.group(1) or "")
        if value:
            locs.append(value)
    return locs


def looks_like_sitemap_index(xml: str) -> bool:
    return bool(SITEMAP_INDEX_RE.search(xml))


def parse_robots_sitemaps(robots_text: str, origin: str) -> list[str]:
    """
    Pull ``Sitemap:`` directives out of robots.txt.

    Args:
        robots_text: robots.txt body
        origin: Site origin used to resolve relative directives

    Returns:
        Absolute sitemap URLs in file order; malformed lines are ignored
    """
    urls: list[str] = []
    for line in robots_text.splitlines():
        match = ROBOTS_SITEMAP_RE.match(line)
        if not match:
            continue
        resolved = normalize_url(match.group(1), origin)
        if resolved is not None:
            urls.append(resolved)
    return urls


async def discover_sitemap_urls(
    client: httpx.AsyncClient,
    origin: str,
    *,
    timeout: float,
    user_agent: str,
) -> list[str]:
    """
    Build the de-duplicated, ordered list of candidate sitemap URLs.

    robots.txt directives come first, followed by the fallback paths.
    A robots.txt failure only removes the directive-based candidates.

    Args:
        client: Shared async client
        origin: Site origin (scheme and authority)
        timeout: Deadline in seconds for the robots.txt request
        user_agent: User-Agent header value

    Returns:
        Candidate sitemap URLs
    """
    candidates: list[str] = []
    robots_url = urljoin(origin, "/robots.txt")

    try:
        robots = await fetch_text(client, robots_url, timeout=timeout, accept=ROBOTS_ACCEPT, user_agent=user_agent)
    except FETCH_ERRORS as e:
        logger.info("robots_fetch_failed", url=robots_url, error=describe_error(e, timeout))
    else:
        if robots.ok:
            directives = parse_robots_sitemaps(robots.text, origin)
            logger.debug("robots_sitemaps", url=robots_url, count=len(directives))
            candidates.extend(directives)
        else:
            logger.debug("robots_unavailable", url=robots_url, status=robots.status)

    candidates.extend(urljoin(origin, path) for path in SITEMAP_FALLBACK_PATHS)
    return list(dict.fromkeys(candidates))


async def load_sitemap_pages(
    client: httpx.AsyncClient,
    base_url: str,
    sitemap_urls: list[str],
    *,
    max_sitemaps: int,
    timeout: float,
    user_agent: str,
) -> SitemapLoadResult:
    """
    Fetch sitemaps breadth-first and collect in-scope page URLs.

    Index entries are queued as further sitemaps; ``urlset`` entries are
    resolved against the base origin, scope-filtered and collected. The
    walk stops once ``max_sitemaps`` distinct documents have been
    visited, even with work still queued.

    Args:
        client: Shared async client
        base_url: Normalised base URL defining the scope
        sitemap_urls: Initial candidates, in priority order
        max_sitemaps: Maximum number of sitemap documents to visit
        timeout: Deadline in seconds per sitemap request
        user_agent: User-Agent header value

    Returns:
        De-duplicated page URLs plus the number of sitemaps visited
    """
    origin = origin_of(base_url)
    queue: deque[str] = deque(sitemap_urls)
    seen: set[str] = set()
    page_urls: list[str] = []

    while queue and len(seen) < max_sitemaps:
        candidate = queue.popleft()
        next_url = normalize_url(candidate) or candidate
        if next_url in seen:
            continue
        seen.add(next_url)

        try:
            result = await fetch_text(client, next_url, timeout=timeout, accept=SITEMAP_ACCEPT, user_agent=user_agent)
        except FETCH_ERRORS as e:
            logger.info("sitemap_fetch_failed", url=next_url, error=describe_error(e, timeout))
            continue
        if not result.ok:
            logger.debug("sitemap_unavailable", url=next_url, status=result.status)
            continue

        locs = extract_sitemap_locs(result.text)
        if not locs:
            continue

        if looks_like_sitemap_index(result.text):
            for loc in locs:
                nested = normalize_url(loc, origin)
                if nested is not None and nested.split(":", 1)[0] in ALLOWED_SCHEMES:
                    queue.append(nested)
            logger.debug("sitemap_index_expanded", url=next_url, children=len(locs))
            continue

        in_scope_pages = filter_urls(base_url, locs, origin)
        logger.debug("sitemap_pages", url=next_url, locs=len(locs), in_scope=len(in_scope_pages))
        page_urls.extend(in_scope_pages)

    pending = [url for url in queue if (normalize_url(url) or url) not in seen]
    if pending:
        logger.info("sitemap_budget_exhausted", visited=len(seen), pending=len(pending))

    return SitemapLoadResult(
        page_urls=list(dict.fromkeys(page_urls)),
        sitemap_count=len(seen),
        truncated=bool(pending),
    )
