"""
Library detectors for LibProbe.

Maps an asset URL to a best-guess (ecosystem, name, version). Detection
is a heuristic, not a package registry lookup: host-specific CDN
matchers run first, then the generic ones, and the first match wins.
"""

from libprobe.detectors.base import DetectedLibrary, Matcher, ParsedAsset
from libprobe.detectors.cdn import (
    match_ajax_libs,
    match_bootstrapcdn,
    match_jquery,
    match_jsdelivr,
    match_unpkg,
)
from libprobe.detectors.generic import match_version_param, match_versioned_filename

MATCHERS: tuple[Matcher, ...] = (
    match_jsdelivr,
    match_unpkg,
    match_ajax_libs,
    match_jquery,
    match_bootstrapcdn,
    match_version_param,
    match_versioned_filename,
)


def detect_library(asset_url: str, matchers: tuple[Matcher, ...] = MATCHERS) -> DetectedLibrary | None:
    """
    Infer the library behind an absolute asset URL.

    Args:
        asset_url: Absolute script or stylesheet URL
        matchers: Ordered matcher functions (defaults to the built-in set)

    Returns:
        The first matcher's result, or None if nothing matched
    """
    asset = ParsedAsset.parse(asset_url)
    if asset is None:
        return None
    for matcher in matchers:
        detected = matcher(asset)
        if detected is not None:
            return detected
    return None


__all__ = [
    "DetectedLibrary",
    "Matcher",
    "MATCHERS",
    "ParsedAsset",
    "detect_library",
]
