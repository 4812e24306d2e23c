"""
URL scope enforcement.

A URL is in scope when it uses http(s) and its hostname, with any
leading ``www.`` removed, equals the base hostname or is a subdomain of
it. Every page URL the scanner fetches passes through this module.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urljoin, urlsplit, urlunsplit

import structlog

logger = structlog.get_logger(__name__)

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


class ScopeError(ValueError):
    """Raised when a base URL cannot be used as a scan target."""


def strip_www(hostname: str) -> str:
    """Lower-case a hostname and drop one leading ``www.``."""
    host = hostname.lower()
    return host[4:] if host.startswith("www.") else host


def normalize_url(raw: str, base: str | None = None) -> str | None:
    """
    Resolve and normalise a URL.

    Relative references are resolved against ``base``. Scheme and host
    are lower-cased, default ports and the fragment are dropped, and an
    empty path becomes ``/``.

    Args:
        raw: URL or reference to normalise
        base: Optional base URL for resolution

    Returns:
        Normalised absolute URL, or None if it cannot be parsed
    """
    candidate = raw.strip()
    if not candidate:
        return None
    try:
        resolved = urljoin(base, candidate) if base else candidate
        parts = urlsplit(resolved)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if not scheme or not hostname:
        return None

    netloc = hostname
    if ":" in hostname:
        netloc = f"[{hostname}]"
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{netloc}:{port}"
    if "@" in parts.netloc:
        netloc = f"{parts.netloc.rsplit('@', 1)[0]}@{netloc}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))


def origin_of(url: str) -> str:
    """Scheme and authority of an absolute URL, e.g. ``https://example.com``."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def normalize_base_url(raw: str) -> str:
    """
    Normalise a caller-supplied base URL, assuming https when no scheme.

    Args:
        raw: Base URL as typed by the caller

    Returns:
        Normalised base URL

    Raises:
        ScopeError: If the URL is unparsable or not http(s)
    """
    trimmed = raw.strip()
    with_scheme = trimmed if _SCHEME_RE.match(trimmed) else f"https://{trimmed}"
    normalized = normalize_url(with_scheme)
    if normalized is None:
        raise ScopeError("Base URL is invalid.")
    if urlsplit(normalized).scheme not in ALLOWED_SCHEMES:
        raise ScopeError("Only http/https URLs are supported.")
    return normalized


def is_allowed_host(base_url: str, candidate_url: str) -> bool:
    """
    Check whether a candidate URL's host belongs to the base host scope.

    Args:
        base_url: Normalised base URL
        candidate_url: Absolute candidate URL

    Returns:
        True for the same host or a strict subdomain of it
    """
    try:
        base_host = strip_www(urlsplit(base_url).hostname or "")
        candidate_host = strip_www(urlsplit(candidate_url).hostname or "")
    except ValueError:
        return False
    if not base_host or not candidate_host:
        return False
    if candidate_host == base_host:
        return True
    if "." not in base_host:
        return False
    return candidate_host.endswith(f".{base_host}")


def in_scope(base_url: str, raw: str, resolve_against: str | None = None) -> str | None:
    """
    Normalise a URL and return it only if it is an in-scope http(s) URL.

    Args:
        base_url: Normalised base URL defining the scope
        raw: URL or reference to test
        resolve_against: Base for relative references (defaults to base_url)

    Returns:
        Normalised URL, or None when out of scope or unparsable
    """
    normalized = normalize_url(raw, resolve_against or base_url)
    if normalized is None:
        return None
    if urlsplit(normalized).scheme not in ALLOWED_SCHEMES:
        return None
    if not is_allowed_host(base_url, normalized):
        logger.debug("url_out_of_scope", url=normalized)
        return None
    return normalized


def filter_urls(base_url: str, raw_urls: Iterable[str], origin: str | None = None) -> list[str]:
    """
    Scope-filter and de-duplicate a list of URLs, keeping first-seen order.

    Args:
        base_url: Normalised base URL defining the scope
        raw_urls: Candidate URLs, possibly relative
        origin: Base for relative references (defaults to base_url)

    Returns:
        Ordered list of unique in-scope URLs
    """
    out: list[str] = []
    seen: set[str] = set()
    for raw in raw_urls:
        if not isinstance(raw, str):
            continue
        normalized = in_scope(base_url, raw, origin)
        if normalized is None or normalized in seen:
            continue
        seen.add(normalized)
        out.append(normalized)
    return out


def merge_page_lists(*lists: Iterable[str]) -> list[str]:
    """Union already-normalised URL lists in order, dropping repeats."""
    merged: list[str] = []
    seen: set[str] = set()
    for urls in lists:
        for url in urls:
            if url in seen:
                continue
            seen.add(url)
            merged.append(url)
    return merged
