"""Tests for sorting, the scan transcript and report rendering."""

from __future__ import annotations

import json
from pathlib import Path

from libprobe.models import LibraryRecord, PageError, PagesSummary, ScanReport, VulnSummary
from libprobe.reports import ReportGenerator, ScanLog, sort_libraries


def _lib(name: str, version: str | None = "1.0.0", vulns: int = 0, occurrences: int = 1) -> LibraryRecord:
    return LibraryRecord(
        name=name,
        version=version,
        occurrences=occurrences,
        vulnerability_count=vulns,
        vulnerability_ids=[f"GHSA-{name}-{i}" for i in range(vulns)],
    )


def _report(**kwargs) -> ScanReport:
    defaults = {
        "base_url": "https://example.com/",
        "pages": PagesSummary(discovered=3, scanned=2, ok=1, failed=1),
        "sitemaps_fetched": 1,
        "page_errors": [PageError(url="https://example.com/down", status=503, error="Non-2xx response")],
        "libraries": [_lib("jquery", "1.4.2", vulns=2, occurrences=4), _lib("lodash", "4.17.21")],
        "log": "[*] Base: https://example.com",
    }
    defaults.update(kwargs)
    return ScanReport(**defaults)


class TestSortLibraries:
    """Display ordering."""

    def test_sort_order(self) -> None:
        libs = [
            _lib("b", occurrences=5),
            _lib("a", occurrences=5),
            _lib("z", vulns=1),
            _lib("c", occurrences=9),
            _lib("a", version=None, occurrences=5),
        ]
        assert [lib.label for lib in sort_libraries(libs)] == ["z@1.0.0", "c@1.0.0", "a@", "a@1.0.0", "b@1.0.0"]

    def test_tie_break_is_plain_string_order(self) -> None:
        libs = [_lib("jquery"), _lib("Zepto"), _lib("angular")]
        assert [lib.name for lib in sort_libraries(libs)] == ["Zepto", "angular", "jquery"]


class TestScanLog:
    """Transcript prefixes."""

    def test_prefixes(self) -> None:
        log = ScanLog()
        log.info("Sitemap candidates: 3")
        log.warning("Falling back")
        assert log.text == "[*] Sitemap candidates: 3\n[!] Falling back"
        assert len(log) == 2
        assert log.lines == ["[*] Sitemap candidates: 3", "[!] Falling back"]


class TestReportGenerator:
    """Rendering."""

    def test_json_uses_wire_names(self, tmp_path: Path) -> None:
        out = tmp_path / "report.json"
        text = ReportGenerator(_report()).generate_json(out)

        data = json.loads(text)
        assert data == json.loads(out.read_text())
        assert data["pages"] == {"discovered": 3, "scanned": 2, "ok": 1, "failed": 1}
        assert data["pageErrors"][0] == {"url": "https://example.com/down", "status": 503, "error": "Non-2xx response"}
        assert data["libraries"][0]["vulnerabilityCount"] == 2
        assert data["sitemapsFetched"] == 1
        assert "error" not in data

    def test_json_keeps_null_status_and_version(self) -> None:
        """Null identity and status fields stay in the JSON as null."""
        report = _report(
            page_errors=[PageError(url="https://example.com/slow", status=None, error="Request timed out after 2000ms")],
            libraries=[_lib("app", version=None)],
        )
        data = json.loads(ReportGenerator(report).generate_json())

        assert data["pageErrors"][0] == {
            "url": "https://example.com/slow",
            "status": None,
            "error": "Request timed out after 2000ms",
        }
        lib = data["libraries"][0]
        assert lib["version"] is None
        assert lib["ecosystem"] is None
        assert "vulnerabilities" not in lib
        assert "vulnerabilityError" not in lib

    def test_html_is_escaped(self) -> None:
        hostile = LibraryRecord(
            name="<script>alert(1)</script>",
            version="1.0.0",
            occurrences=1,
            vulnerability_count=1,
            vulnerability_ids=["X-1"],
            vulnerabilities=[VulnSummary(id="X-1", summary="<img src=x onerror=alert(2)>")],
        )
        html = ReportGenerator(_report(libraries=[hostile])).generate_html()

        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html
        assert "<img src=x" not in html
        assert "Library Version Scan" in html

    def test_html_with_error(self) -> None:
        html = ReportGenerator(ScanReport(error="Base URL is required.")).generate_html()
        assert "Base URL is required." in html
        assert "No libraries detected." in html

    def test_text_summary(self) -> None:
        lookup_failed = _lib("vue", "2.6.0")
        lookup_failed.vulnerability_error = "OSV request failed (500)."
        report = _report(libraries=[*_report().libraries, lookup_failed])

        text = ReportGenerator(report).generate_text(include_log=True)

        assert "LibProbe scan of https://example.com/" in text
        assert "Pages: 3 discovered, 2 scanned, 1 ok, 1 failed" in text
        assert "jquery@1.4.2" in text
        assert "2 vulns: GHSA-jquery-0, GHSA-jquery-1" in text
        assert "no known vulns" in text
        assert "lookup failed: OSV request failed (500)." in text
        assert "[503] https://example.com/down: Non-2xx response" in text
        assert text.rstrip().endswith("[*] Base: https://example.com")

    def test_text_without_log(self) -> None:
        text = ReportGenerator(_report()).generate_text()
        assert "[*] Base" not in text
