"""
HTTP fetching and the bounded page worker pool.

Every network call made by the scanner goes through :func:`fetch_text`,
which enforces a hard per-call deadline on top of the httpx client
timeout. Page fetches are classified into ok / non-2xx / non-HTML /
network failure outcomes and never raise.
"""

from __future__ import annotations

import asyncio
import gzip
import re
import zlib
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

import httpx
import structlog

from libprobe.config import PAGE_ACCEPT
from libprobe.models import PageError

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

HTML_CONTENT_TYPE_RE = re.compile(r"text/html|application/xhtml\+xml", re.IGNORECASE)

# Failures that belong to a single resource and are reported as data
FETCH_ERRORS: tuple[type[BaseException], ...] = (httpx.HTTPError, httpx.InvalidURL, TimeoutError)


@dataclass(slots=True)
class FetchResult:
    """Body and status of one completed HTTP request."""

    url: str
    status: int
    ok: bool
    content_type: str | None
    text: str


@dataclass(slots=True)
class PageResult:
    """Outcome of fetching one page: HTML on success, a PageError otherwise."""

    url: str
    ok: bool
    html: str = ""
    error: PageError | None = None


def describe_error(exc: BaseException, timeout: float) -> str:
    """
    Turn a fetch exception into a short human-readable message.

    Args:
        exc: Exception raised by the fetch
        timeout: Deadline that applied to the call, in seconds

    Returns:
        Error message suitable for a report
    """
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return f"Request timed out after {round(timeout * 1000)}ms"
    return str(exc) or type(exc).__name__


def decode_gzip(url: str, content: bytes) -> str:
    """Gunzip a ``.gz`` document, falling back to the raw bytes as text."""
    try:
        content = gzip.decompress(content)
    except (OSError, EOFError, zlib.error):
        logger.debug("gzip_decode_failed", url=url)
    return content.decode("utf-8", errors="replace")


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    accept: str,
    user_agent: str,
) -> FetchResult:
    """
    GET a URL under a hard deadline and return its decoded body.

    Args:
        client: Shared async client (follows redirects)
        url: Absolute URL to fetch
        timeout: Deadline in seconds for the whole call
        accept: Accept header value
        user_agent: User-Agent header value

    Returns:
        FetchResult for any HTTP status

    Raises:
        httpx.HTTPError, httpx.InvalidURL: On transport failure
        TimeoutError: When the deadline expires
    """
    async with asyncio.timeout(timeout):
        response = await client.get(
            url,
            headers={"Accept": accept, "User-Agent": user_agent},
            timeout=timeout,
        )

    if url.lower().endswith(".gz"):
        text = decode_gzip(url, response.content)
    else:
        text = response.text

    return FetchResult(
        url=url,
        status=response.status_code,
        ok=response.is_success,
        content_type=response.headers.get("content-type"),
        text=text,
    )


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    user_agent: str,
) -> PageResult:
    """
    Fetch one page and classify the outcome.

    Args:
        client: Shared async client
        url: Page URL
        timeout: Deadline in seconds
        user_agent: User-Agent header value

    Returns:
        PageResult; failures carry a PageError instead of raising
    """
    try:
        result = await fetch_text(client, url, timeout=timeout, accept=PAGE_ACCEPT, user_agent=user_agent)
    except FETCH_ERRORS as e:
        message = describe_error(e, timeout)
        logger.info("page_fetch_error", url=url, error=message)
        return PageResult(url=url, ok=False, error=PageError(url=url, status=None, error=message))

    if not result.ok:
        logger.info("page_non_2xx", url=url, status=result.status)
        return PageResult(
            url=url,
            ok=False,
            error=PageError(url=url, status=result.status, error="Non-2xx response"),
        )

    content_type = result.content_type or ""
    if content_type and not HTML_CONTENT_TYPE_RE.search(content_type):
        logger.debug("page_not_html", url=url, content_type=content_type)
        return PageResult(
            url=url,
            ok=False,
            error=PageError(
                url=url,
                status=result.status,
                error=f"Skipped non-HTML content-type: {content_type}",
            ),
        )

    return PageResult(url=url, ok=True, html=result.text)


async def map_with_concurrency(
    items: Sequence[T],
    concurrency: int,
    mapper: Callable[[T, int], Awaitable[R]],
) -> list[R]:
    """
    Run ``mapper`` over ``items`` with at most ``concurrency`` calls in flight.

    A fixed pool of workers shares one cursor over the items; a worker
    that finishes claims the next unclaimed index immediately. Results
    are returned in input order regardless of completion order.

    Args:
        items: Items to process
        concurrency: Maximum number of simultaneous mapper calls
        mapper: Coroutine function taking ``(item, index)``

    Returns:
        Mapper results aligned with ``items``
    """
    results: list[R | None] = [None] * len(items)
    cursor = iter(enumerate(items))

    async def worker() -> None:
        for index, item in cursor:
            results[index] = await mapper(item, index)

    worker_count = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(worker() for _ in range(worker_count)))
    return results  # type: ignore[return-value]
