"""Process-level settings and protocol constants for LibProbe."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_USER_AGENT = "LibProbe/1.0 (library-scan)"
DEFAULT_OSV_URL = "https://api.osv.dev/v1/querybatch"

PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
SITEMAP_ACCEPT = "application/xml,text/xml,*/*"
ROBOTS_ACCEPT = "text/plain,*/*"

SITEMAP_FALLBACK_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap-index.xml")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass
class Settings:
    """Scanner settings; blank fields are filled from the environment."""

    user_agent: str = ""
    osv_url: str = ""
    osv_batch_size: int = 0
    max_vulns_per_library: int = 0
    provenance_cap: int = 0
    verify_ssl: bool | None = None

    def __post_init__(self) -> None:
        if not self.user_agent:
            self.user_agent = os.environ.get("LIBPROBE_USER_AGENT", DEFAULT_USER_AGENT)
        if not self.osv_url:
            self.osv_url = os.environ.get("LIBPROBE_OSV_URL", DEFAULT_OSV_URL)
        if self.osv_batch_size <= 0:
            self.osv_batch_size = max(1, _env_int("LIBPROBE_OSV_BATCH_SIZE", 50))
        if self.max_vulns_per_library <= 0:
            self.max_vulns_per_library = max(1, _env_int("LIBPROBE_MAX_VULNS_PER_LIBRARY", 10))
        if self.provenance_cap <= 0:
            self.provenance_cap = max(1, _env_int("LIBPROBE_PROVENANCE_CAP", 50))
        if self.verify_ssl is None:
            self.verify_ssl = _env_bool("LIBPROBE_VERIFY_SSL", True)


def load_settings() -> Settings:
    """Load ``.env`` (if present) and build settings from the environment."""
    load_dotenv()
    return Settings()
