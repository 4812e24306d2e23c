"""
Host-specific CDN heuristics.

Each public CDN encodes package and version differently in its paths:

- jsDelivr: ``/npm/<name>@<version>/...`` and ``/npm/@scope/<name>@<version>/...``
- unpkg: ``/<name>@<version>/...`` and ``/@scope/<name>@<version>/...``
- cdnjs / Google Hosted Libraries: ``/ajax/libs/<name>/<version>/...``
- code.jquery.com: ``/jquery-<version>(.min).js``
- BootstrapCDN: ``/<name>/<version>/...``
"""

from __future__ import annotations

import re

from libprobe.detectors.base import DetectedLibrary, ParsedAsset, split_at_last_at
from libprobe.utils import VERSION_PATTERN, looks_like_version

JQUERY_FILE_RE = re.compile(rf"^jquery-({VERSION_PATTERN})\b", re.IGNORECASE)

AJAX_LIBS_HOSTS = frozenset({"cdnjs.cloudflare.com", "ajax.googleapis.com"})


def _scoped_or_plain(asset: ParsedAsset, start: int) -> DetectedLibrary | None:
    """Parse ``name@version`` or ``@scope/name@version`` starting at a path index."""
    parts = asset.path_parts
    if start >= len(parts):
        return None
    first = parts[start]
    if first.startswith("@") and start + 1 < len(parts):
        name, version = split_at_last_at(parts[start + 1])
        return asset.npm(f"{first}/{name}", version)
    name, version = split_at_last_at(first)
    return asset.npm(name, version)


def match_jsdelivr(asset: ParsedAsset) -> DetectedLibrary | None:
    if asset.host != "cdn.jsdelivr.net" or "npm" not in asset.path_parts:
        return None
    return _scoped_or_plain(asset, asset.path_parts.index("npm") + 1)


def match_unpkg(asset: ParsedAsset) -> DetectedLibrary | None:
    if asset.host != "unpkg.com":
        return None
    return _scoped_or_plain(asset, 0)


def match_ajax_libs(asset: ParsedAsset) -> DetectedLibrary | None:
    """cdnjs and Google Hosted Libraries; only numeric versions are kept."""
    if asset.host not in AJAX_LIBS_HOSTS:
        return None
    parts = asset.path_parts
    if "ajax" not in parts or "libs" not in parts:
        return None
    ajax_idx = parts.index("ajax")
    if parts.index("libs") != ajax_idx + 1:
        return None
    start = ajax_idx + 2
    if start + 1 >= len(parts):
        return None
    name, version = parts[start], parts[start + 1]
    return asset.npm(name, version if looks_like_version(version) else None)


def match_jquery(asset: ParsedAsset) -> DetectedLibrary | None:
    if asset.host != "code.jquery.com":
        return None
    match = JQUERY_FILE_RE.match(asset.filename)
    if not match:
        return None
    return asset.npm("jquery", match.group(1))


def match_bootstrapcdn(asset: ParsedAsset) -> DetectedLibrary | None:
    if not asset.host.endswith("bootstrapcdn.com") or len(asset.path_parts) < 2:
        return None
    name, version = asset.path_parts[0], asset.path_parts[1]
    return asset.npm(name, version if looks_like_version(version) else None)
