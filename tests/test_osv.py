"""
Tests for OSV vulnerability reconciliation.

All OSV traffic is served by an httpx MockTransport.
"""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import OSV_TEST_URL
from libprobe.models import Ecosystem, LibraryRecord, VulnSummary
from libprobe.osv import OSVClient, is_eligible, reconcile_vulnerabilities


def _record(name: str, version: str | None = "1.0.0", ecosystem: Ecosystem | None = Ecosystem.NPM) -> LibraryRecord:
    return LibraryRecord(ecosystem=ecosystem, name=name, version=version, occurrences=1)


def _vuln(i: int) -> dict:
    return {
        "id": f"GHSA-{i:04d}",
        "summary": f"Issue {i}",
        "aliases": [f"CVE-2024-{i:04d}"],
        "modified": "2024-01-02T00:00:00Z",
        "published": "2023-12-01T00:00:00Z",
        "references": [{"type": "WEB", "url": f"https://example.org/{i}"}, {"type": "PACKAGE"}],
    }


async def _reconcile(site, libraries: list[LibraryRecord], **kwargs) -> int:
    async with site.client() as client:
        osv = OSVClient(client, OSV_TEST_URL, timeout=5, user_agent="LibProbe-test/1.0")
        return await reconcile_vulnerabilities(libraries, osv, **kwargs)


class TestEligibility:
    """Only npm packages with numeric versions are queried."""

    @pytest.mark.parametrize(
        ("record", "eligible"),
        [
            (_record("lodash", "4.17.20"), True),
            (_record("react", "18.3.0-canary.1"), True),
            (_record("bundle", "abcdef123"), False),
            (_record("vue", None), False),
            (_record("thing", "latest"), False),
            (_record("other", "1.0.0", ecosystem=None), False),
        ],
    )
    def test_is_eligible(self, record: LibraryRecord, eligible: bool) -> None:
        assert is_eligible(record) is eligible


class TestReconcile:
    """Batch query handling."""

    @pytest.mark.asyncio
    async def test_success(self, site) -> None:
        site.add_osv(lambda queries: [{"vulns": [_vuln(1)]}, {}])
        libs = [_record("lodash", "4.17.20"), _record("left-pad", "1.3.0")]

        queried = await _reconcile(site, libs)

        assert queried == 2
        vulnerable, clean = libs
        assert vulnerable.vulnerability_count == 1
        assert vulnerable.vulnerability_ids == ["GHSA-0001"]
        summary = vulnerable.vulnerabilities[0]
        assert summary.aliases == ["CVE-2024-0001"]
        assert summary.references == ["https://example.org/1"]
        assert vulnerable.vulnerability_error is None
        assert clean.vulnerability_count == 0
        assert clean.vulnerabilities is None
        assert clean.vulnerability_error is None

    @pytest.mark.asyncio
    async def test_request_body(self, site) -> None:
        bodies: list[dict] = []

        def respond(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            assert request.method == "POST"
            assert request.headers["content-type"] == "application/json"
            return httpx.Response(200, json={"results": [{}]})

        site.add_handler(OSV_TEST_URL, respond)
        await _reconcile(site, [_record("@popperjs/core", "2.11.8")])

        assert bodies == [{"queries": [{"package": {"ecosystem": "npm", "name": "@popperjs/core"}, "version": "2.11.8"}]}]

    @pytest.mark.asyncio
    async def test_summaries_capped_at_ten(self, site) -> None:
        site.add_osv(lambda queries: [{"vulns": [_vuln(i) for i in range(15)]}])
        [lib] = libs = [_record("jquery", "1.4.2")]

        await _reconcile(site, libs)

        assert lib.vulnerability_count == 15
        assert len(lib.vulnerability_ids) == 15
        assert len(lib.vulnerabilities) == 10

    @pytest.mark.asyncio
    async def test_http_failure_marks_whole_batch(self, site) -> None:
        site.add(OSV_TEST_URL, "boom", status=500)
        libs = [_record("a"), _record("b"), _record("c")]

        await _reconcile(site, libs)

        for lib in libs:
            assert lib.vulnerability_error == "OSV request failed (500)."
            assert lib.vulnerability_count == 0

    @pytest.mark.asyncio
    async def test_missing_result_marks_only_that_item(self, site) -> None:
        site.add_osv(lambda queries: [{"vulns": [_vuln(1)]}])
        libs = [_record("a"), _record("b")]

        await _reconcile(site, libs)

        assert libs[0].vulnerability_count == 1
        assert libs[0].vulnerability_error is None
        assert libs[1].vulnerability_error == "OSV response missing result."

    @pytest.mark.asyncio
    async def test_invalid_json(self, site) -> None:
        site.add(OSV_TEST_URL, "<html>maintenance</html>", content_type="text/html")
        libs = [_record("a")]

        await _reconcile(site, libs)

        assert libs[0].vulnerability_error.startswith("Invalid OSV response:")

    @pytest.mark.asyncio
    async def test_transport_error(self, site) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed", request=request)

        site.add_handler(OSV_TEST_URL, refuse)
        libs = [_record("a"), _record("b")]

        await _reconcile(site, libs)

        assert [lib.vulnerability_error for lib in libs] == ["name resolution failed"] * 2

    @pytest.mark.asyncio
    async def test_batches_sent_in_order(self, site) -> None:
        sizes: list[int] = []

        def handler(queries: list[dict]) -> list[dict]:
            sizes.append(len(queries))
            return [{} for _ in queries]

        site.add_osv(handler)
        libs = [_record(f"pkg-{i}") for i in range(120)]

        queried = await _reconcile(site, libs, batch_size=50)

        assert queried == 120
        assert sizes == [50, 50, 20]

    @pytest.mark.asyncio
    async def test_one_failed_batch_does_not_affect_others(self, site) -> None:
        calls = 0

        def respond(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(502)
            queries = json.loads(request.content)["queries"]
            return httpx.Response(200, json={"results": [{} for _ in queries]})

        site.add_handler(OSV_TEST_URL, respond)
        libs = [_record(f"pkg-{i}") for i in range(4)]

        await _reconcile(site, libs, batch_size=2)

        assert [lib.vulnerability_error for lib in libs] == ["OSV request failed (502).", "OSV request failed (502).", None, None]

    @pytest.mark.asyncio
    async def test_ineligible_never_queried(self, site) -> None:
        libs = [_record("bundle", "abcdef123"), _record("vue", None)]

        queried = await _reconcile(site, libs)

        assert queried == 0
        assert site.requests == []
        assert all(lib.vulnerability_error is None and lib.vulnerability_count == 0 for lib in libs)

    @pytest.mark.asyncio
    async def test_non_string_reference_url_is_dropped(self, site) -> None:
        """A reference with a numeric url is skipped without failing the record."""
        site.add_osv(lambda queries: [{"vulns": [{"id": "GHSA-1", "references": [{"url": 5}, {"url": None}]}]}])
        [lib] = libs = [_record("lodash", "4.17.20")]

        await _reconcile(site, libs)

        assert lib.vulnerability_error is None
        assert lib.vulnerability_count == 1
        assert lib.vulnerability_ids == ["GHSA-1"]
        assert lib.vulnerabilities[0].references == []

    @pytest.mark.asyncio
    async def test_unusable_record_marks_only_its_library(self, site, monkeypatch) -> None:
        """A record that cannot be summarised sets an error on that library alone."""
        original = VulnSummary.from_osv

        def from_osv(record: dict) -> VulnSummary:
            if record.get("id") == "BAD-1":
                raise ValueError("unusable record")
            return original(record)

        monkeypatch.setattr(VulnSummary, "from_osv", from_osv)
        site.add_osv(lambda queries: [{"vulns": [{"id": "BAD-1"}]}, {"vulns": [_vuln(2)]}])
        bad, good = libs = [_record("a"), _record("b")]

        await _reconcile(site, libs)

        assert bad.vulnerability_error == "Invalid OSV response: unusable record"
        assert bad.vulnerability_count == 0
        assert bad.vulnerability_ids == []
        assert bad.vulnerabilities is None
        assert good.vulnerability_error is None
        assert good.vulnerability_count == 1
        assert good.vulnerabilities[0].id == "GHSA-0002"
