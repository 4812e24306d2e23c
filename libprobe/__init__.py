"""
LibProbe - third-party library version scanner.

Discovers a site's pages through robots.txt and sitemaps, detects the
JavaScript/CSS libraries referenced from CDN and versioned asset URLs,
and annotates each library version with known OSV vulnerabilities.
"""

__version__ = "1.0.0"

from libprobe.models import (
    Ecosystem,
    LibraryRecord,
    PageError,
    PagesSummary,
    ScanReport,
    ScanRequest,
    VulnSummary,
)
from libprobe.orchestrator import ScanOrchestrator, ScanRequestError, scan_site
from libprobe.reports import ReportGenerator

__all__ = [
    "__version__",
    "Ecosystem",
    "LibraryRecord",
    "PageError",
    "PagesSummary",
    "ReportGenerator",
    "ScanOrchestrator",
    "ScanReport",
    "ScanRequest",
    "ScanRequestError",
    "VulnSummary",
    "scan_site",
]
