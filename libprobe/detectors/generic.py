"""
Host-independent heuristics: cache-busting version parameters and
versioned filenames. Both are permissive and will also pick up
first-party bundles such as ``app-1.2.3.min.js``.
"""

from __future__ import annotations

import re

from libprobe.detectors.base import DetectedLibrary, ParsedAsset, infer_name_from_filename
from libprobe.utils import VERSION_PATTERN, looks_like_version

VERSION_PARAMS = ("ver", "version", "v")

_BUILD_SUFFIX_RE = re.compile(r"\.(min|bundle)\.(js|css)$", re.IGNORECASE)
_EXTENSION_RE = re.compile(r"\.(js|css)$", re.IGNORECASE)
VERSIONED_STEM_RE = re.compile(rf"^(.+?)[-_]v?({VERSION_PATTERN})$", re.IGNORECASE)


def match_version_param(asset: ParsedAsset) -> DetectedLibrary | None:
    """``jquery.min.js?ver=3.6.0`` style references (WordPress and friends)."""
    version = None
    for param in VERSION_PARAMS:
        version = asset.query_value(param)
        if version:
            break
    if not version or not looks_like_version(version):
        return None
    name = infer_name_from_filename(asset.filename)
    if not name:
        return None
    return asset.npm(name, version)


def match_versioned_filename(asset: ParsedAsset) -> DetectedLibrary | None:
    """``select2-4.0.13.min.js`` or ``plugin_v2.1.css``; only for .js/.css files."""
    filename = asset.filename
    if not filename.lower().endswith((".js", ".css")):
        return None
    stem = _BUILD_SUFFIX_RE.sub(r".\2", filename)
    stem = _EXTENSION_RE.sub("", stem)
    match = VERSIONED_STEM_RE.match(stem)
    if not match:
        return None
    return asset.npm(match.group(1), match.group(2))
