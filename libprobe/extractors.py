"""
Static HTML asset extraction.

Finds ``<script src>`` references and stylesheet ``<link href>``
references with tag-level regular expressions. No DOM is built and no
JavaScript is executed, so injected assets are invisible by design.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from libprobe.scope import normalize_url

SCRIPT_TAG_RE = re.compile(r"<script\b[^>]*>", re.IGNORECASE)
LINK_TAG_RE = re.compile(r"<link\b[^>]*>", re.IGNORECASE)
CSS_HREF_RE = re.compile(r"\.css(?:\?|#|$)", re.IGNORECASE)


class AssetKind(StrEnum):
    SCRIPT = "script"
    STYLE = "style"


@dataclass(frozen=True, slots=True)
class Asset:
    """An asset reference found on a page (URL may still be relative)."""

    url: str
    kind: AssetKind


def get_attr(tag: str, name: str) -> str | None:
    """
    Read an attribute value from a single HTML start tag.

    Values may be double-quoted, single-quoted, or bare up to whitespace
    or ``>``. Empty values are reported as missing.

    Args:
        tag: Raw start tag text
        name: Attribute name (case-insensitive)

    Returns:
        Trimmed attribute value, or None
    """
    pattern = rf"\b{re.escape(name)}\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s>]+))"
    match = re.search(pattern, tag, re.IGNORECASE)
    if not match:
        return None
    value = (match.group(1) or match.group(2) or match.group(3) or "").strip()
    return value or None


def extract_html_assets(html: str) -> list[Asset]:
    """
    Extract script and stylesheet references from page HTML.

    A ``<link>`` counts as a stylesheet when its ``rel`` token list
    contains ``stylesheet`` or its ``href`` ends in ``.css`` (optionally
    followed by a query or fragment).

    Args:
        html: Page HTML

    Returns:
        Scripts first, then stylesheets, each in document order
    """
    assets: list[Asset] = []

    for match in SCRIPT_TAG_RE.finditer(html):
        src = get_attr(match.group(0), "src")
        if src:
            assets.append(Asset(url=src, kind=AssetKind.SCRIPT))

    for match in LINK_TAG_RE.finditer(html):
        tag = match.group(0)
        href = get_attr(tag, "href")
        if not href:
            continue
        rel_tokens = (get_attr(tag, "rel") or "").lower().split()
        if "stylesheet" not in rel_tokens and not CSS_HREF_RE.search(href):
            continue
        assets.append(Asset(url=href, kind=AssetKind.STYLE))

    return assets


def resolve_asset_urls(assets: list[Asset], page_url: str) -> list[str]:
    """Resolve asset references against their page, silently dropping bad ones."""
    resolved: list[str] = []
    for asset in assets:
        absolute = normalize_url(asset.url, page_url)
        if absolute is not None:
            resolved.append(absolute)
    return resolved
